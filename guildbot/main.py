"""
Alternate entrypoint that delegates to the guildcord script.

Allows `python -m guildbot.main` to run the bot.
"""

import asyncio

from guildcord import main as bot_main


def main() -> None:
    try:
        asyncio.run(bot_main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
