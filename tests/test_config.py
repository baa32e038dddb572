"""Tests for environment-driven settings."""

import unittest

from fetchcore.config import Settings
from fetchcore.errors import ConfigurationError


class TestSettingsFromEnv(unittest.TestCase):
    """Verify parsing and validation of environment variables."""

    def test_defaults_with_empty_environment(self):
        """No variables means native only, memory storage and cost mode."""
        settings = Settings.from_env({})
        self.assertIsNone(settings.firecrawl_api_key)
        self.assertIsNone(settings.brightdata_api_key)
        self.assertEqual(settings.optimize_for, "cost")
        self.assertEqual(settings.resource_storage, "memory")
        self.assertEqual(settings.brightdata_zone, "unblocker")
        self.assertEqual(settings.fetch_timeout, 30.0)
        self.assertIsNone(settings.llm_provider)

    def test_reads_credentials_and_choices(self):
        """Values are trimmed and choice values are case-insensitive."""
        settings = Settings.from_env(
            {
                "FIRECRAWL_API_KEY": " fc ",
                "BRIGHTDATA_API_KEY": "bd",
                "BRIGHTDATA_ZONE": "zone2",
                "OPTIMIZE_FOR": "Speed",
                "RESOURCE_STORAGE": "filesystem",
                "RESOURCE_STORAGE_ROOT": "/tmp/res",
                "STRATEGY_CONFIG_PATH": "/tmp/strategies.md",
                "LLM_PROVIDER": "anthropic",
                "LLM_API_KEY": "llm",
                "FETCH_TIMEOUT": "12.5",
            }
        )
        self.assertEqual(settings.firecrawl_api_key, "fc")
        self.assertEqual(settings.brightdata_zone, "zone2")
        self.assertEqual(settings.optimize_for, "speed")
        self.assertEqual(settings.resource_storage, "filesystem")
        self.assertEqual(settings.resource_storage_root, "/tmp/res")
        self.assertEqual(settings.strategy_config_path, "/tmp/strategies.md")
        self.assertEqual(settings.llm_provider, "anthropic")
        self.assertEqual(settings.fetch_timeout, 12.5)

    def test_blank_values_count_as_unset(self):
        """Whitespace-only keys do not enable a backend."""
        self.assertIsNone(Settings.from_env({"FIRECRAWL_API_KEY": "   "}).firecrawl_api_key)

    def test_invalid_choice_raises(self):
        """Unknown modes and backends are configuration errors."""
        with self.assertRaises(ConfigurationError):
            Settings.from_env({"OPTIMIZE_FOR": "quality"})
        with self.assertRaises(ConfigurationError):
            Settings.from_env({"RESOURCE_STORAGE": "s3"})
        with self.assertRaises(ConfigurationError):
            Settings.from_env({"LLM_PROVIDER": "unknown"})

    def test_invalid_timeout_raises(self):
        """Timeouts must be positive numbers."""
        with self.assertRaises(ConfigurationError):
            Settings.from_env({"FETCH_TIMEOUT": "soon"})
        with self.assertRaises(ConfigurationError):
            Settings.from_env({"FETCH_TIMEOUT": "0"})


if __name__ == "__main__":
    unittest.main()
