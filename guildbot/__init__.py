"""
Top-level package for the guild tracking Discord bot.

This package hosts:
- config loading, validation and scraper settings
- guild ranking scraping and parallel character lookup
- SQLite-backed character cache, history log and progress ranking
- Discord embeds, error reporting and the scheduled tracking job
"""
