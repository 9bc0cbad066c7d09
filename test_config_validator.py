#!/usr/bin/env python3
"""
Tests for config.yaml validation and loading.

Usage:
    python -m pytest test_config_validator.py
"""

import os
import tempfile
import unittest
from unittest import mock

import yaml

from guildbot.config.loader import get_config
from guildbot.config.settings import DEFAULT_GUILDS, ScraperSettings, scraper_settings_from_config
from guildbot.config.validator import ConfigValidationError, validate_config


def valid_config(**overrides):
    cfg = {
        "bot_token": "token",
        "database": {"path": "guildbot.db"},
        "scraper": {
            "guilds": ["G1", "G2", "G3"],
            "primary_guilds": ["G1"],
            "pages": [1, 2],
            "timeout_seconds": 5,
            "primary_timeout_seconds": 3,
            "retries": 2,
        },
        "cache": {"ttl_seconds": 300, "history_window_days": 30},
        "tracking": {"enabled": True, "interval_minutes": 5},
        "permissions": {"admin_ids": [123456789]},
    }
    cfg.update(overrides)
    return cfg


class ValidateConfigTests(unittest.TestCase):
    def assertInvalid(self, cfg):
        with self.assertLogs(level="ERROR"):
            with self.assertRaises(ConfigValidationError):
                validate_config(cfg)

    def test_valid_config_passes(self):
        validate_config(valid_config())

    def test_missing_token(self):
        self.assertInvalid(valid_config(bot_token=""))

    def test_empty_guild_list(self):
        self.assertInvalid(valid_config(scraper={"guilds": []}))

    def test_bad_pages(self):
        self.assertInvalid(valid_config(scraper={"pages": [0]}))

    def test_non_positive_timeout(self):
        self.assertInvalid(valid_config(scraper={"timeout_seconds": 0}))

    def test_negative_retries(self):
        self.assertInvalid(valid_config(scraper={"retries": -1}))

    def test_bad_ttl(self):
        self.assertInvalid(valid_config(cache={"ttl_seconds": "soon"}))

    def test_bad_tracking_interval(self):
        self.assertInvalid(valid_config(tracking={"interval_minutes": 0}))

    def test_bad_tracking_cron(self):
        self.assertInvalid(valid_config(tracking={"cron": "every minute"}))

    def test_admin_ids_must_be_integers(self):
        self.assertInvalid(valid_config(permissions={"admin_ids": ["123"]}))

    def test_unlisted_primary_guild_only_warns(self):
        cfg = valid_config(scraper={"guilds": ["G1"], "primary_guilds": ["G9"]})
        with self.assertLogs(level="WARNING") as logs:
            validate_config(cfg)
        self.assertTrue(any("G9" in line for line in logs.output))


class ScraperSettingsTests(unittest.TestCase):
    def test_defaults(self):
        settings = scraper_settings_from_config({"bot_token": "t"})
        self.assertEqual(settings, ScraperSettings())
        self.assertEqual(settings.guilds, DEFAULT_GUILDS)
        self.assertEqual(settings.cache_ttl, 300.0)

    def test_overrides(self):
        settings = scraper_settings_from_config(valid_config())
        self.assertEqual(settings.guilds, ("G1", "G2", "G3"))
        self.assertEqual(settings.primary_guilds, ("G1",))
        self.assertEqual((settings.timeout, settings.primary_timeout), (5, 3))


class GetConfigTests(unittest.TestCase):
    def write_config(self, cfg):
        fd, path = tempfile.mkstemp(suffix=".yaml")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            yaml.safe_dump(cfg, f)
        self.addCleanup(os.remove, path)
        return path

    def test_environment_token_overrides_file(self):
        path = self.write_config(valid_config(bot_token="from-file"))
        with mock.patch.dict(os.environ, {"DISCORD_TOKEN": "from-env"}):
            cfg = get_config(path)
        self.assertEqual(cfg["bot_token"], "from-env")

    def test_invalid_config_exits(self):
        path = self.write_config(valid_config(bot_token=""))
        with mock.patch.dict(os.environ, {}, clear=False):
            os.environ.pop("DISCORD_TOKEN", None)
            with self.assertLogs(level="ERROR"), self.assertRaises(SystemExit) as ctx:
                get_config(path)
        self.assertEqual(ctx.exception.code, 1)

    def test_missing_file_exits(self):
        with self.assertLogs(level="ERROR"), self.assertRaises(SystemExit):
            get_config("/nonexistent/config.yaml")


if __name__ == "__main__":
    unittest.main()
