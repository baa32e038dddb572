"""Tests for the strategy config table and its stores."""

import tempfile
import threading
import unittest
from pathlib import Path

from fetchcore.models import ScrapingStrategy, StrategyConfigEntry
from fetchcore.strategy_config import (
    FilesystemStrategyConfigStore,
    MemoryStrategyConfigStore,
    extract_url_pattern,
    parse_strategy_table,
    render_strategy_table,
)


def _make_entry(prefix, strategy=ScrapingStrategy.NATIVE, notes=None):
    """Helper to build a StrategyConfigEntry."""
    return StrategyConfigEntry(prefix=prefix, default_strategy=strategy, notes=notes)


class TestExtractUrlPattern(unittest.TestCase):
    """Verify the prefix a learned strategy is stored under."""

    def test_drops_last_path_segment(self):
        """Sibling pages share the parent path as their prefix."""
        self.assertEqual(extract_url_pattern("https://yelp.com/biz/some-shop"), "yelp.com/biz/")
        self.assertEqual(extract_url_pattern("https://example.com/blog/2024/post"), "example.com/blog/2024/")

    def test_single_segment_and_root_use_host(self):
        """Top-level pages are keyed by host alone."""
        self.assertEqual(extract_url_pattern("https://example.com/about"), "example.com")
        self.assertEqual(extract_url_pattern("https://example.com/"), "example.com")
        self.assertEqual(extract_url_pattern("https://example.com"), "example.com")

    def test_keeps_port(self):
        """Non-default ports are part of the host key."""
        self.assertEqual(extract_url_pattern("http://localhost:8080/a/b"), "localhost:8080/a/")

    def test_unparseable_url_returned_unchanged(self):
        """Garbage in, garbage out rather than an exception."""
        self.assertEqual(extract_url_pattern("not a url"), "not a url")


class TestStrategyTable(unittest.TestCase):
    """Verify the markdown table format."""

    def test_parse_skips_prose_and_separator(self):
        """Only rows after the header are entries; the table ends at the first non-row line."""
        text = (
            "# Strategies\n\nSome prose.\n\n"
            "| prefix | default_strategy | notes |\n"
            "|--------|------------------|-------|\n"
            "| yelp.com/biz/ | brightdata | Heavy anti-bot |\n"
            "| example.com | native | |\n"
            "\nTrailing text\n"
            "| ignored.com | native | after table |\n"
        )
        entries = parse_strategy_table(text)
        self.assertEqual(
            entries,
            [
                _make_entry("yelp.com/biz/", ScrapingStrategy.BRIGHTDATA, "Heavy anti-bot"),
                _make_entry("example.com"),
            ],
        )

    def test_parse_drops_unknown_strategies(self):
        """Rows naming an unknown backend are ignored."""
        text = "| prefix | default_strategy | notes |\n| --- | --- | --- |\n| a.com | selenium | |\n"
        self.assertEqual(parse_strategy_table(text), [])

    def test_parse_without_header_is_empty(self):
        """A file without the header row yields no entries."""
        self.assertEqual(parse_strategy_table("| a.com | native | |\n"), [])

    def test_render_then_parse_preserves_entries(self):
        """Rendered tables parse back, with pipes in notes replaced."""
        entries = [_make_entry("a.com/x/", ScrapingStrategy.FIRECRAWL, "js | heavy"), _make_entry("a.com")]
        parsed = parse_strategy_table(render_strategy_table(entries))
        self.assertEqual(parsed[0].notes, "js / heavy")
        self.assertEqual([e.prefix for e in parsed], ["a.com/x/", "a.com"])


class StrategyStoreContract:
    """Behaviour shared by every StrategyConfigStore implementation."""

    def make_store(self):
        raise NotImplementedError

    def setUp(self):
        self.store = self.make_store()

    def test_empty_store_has_no_strategy(self):
        """Unknown hosts have no remembered strategy."""
        self.assertIsNone(self.store.get_strategy_for_url("https://example.com/page"))

    def test_longest_prefix_wins(self):
        """A path prefix beats the bare host it lives under."""
        self.store.upsert_entry(_make_entry("yelp.com", ScrapingStrategy.NATIVE))
        self.store.upsert_entry(_make_entry("yelp.com/biz/", ScrapingStrategy.BRIGHTDATA))
        self.assertEqual(self.store.get_strategy_for_url("https://yelp.com/biz/shop"), ScrapingStrategy.BRIGHTDATA)
        self.assertEqual(self.store.get_strategy_for_url("https://yelp.com/search"), ScrapingStrategy.NATIVE)

    def test_host_prefix_matches_www_and_subdomains(self):
        """A host entry covers www and other subdomains but not lookalikes."""
        self.store.upsert_entry(_make_entry("example.com", ScrapingStrategy.FIRECRAWL))
        self.assertEqual(self.store.get_strategy_for_url("https://www.example.com/"), ScrapingStrategy.FIRECRAWL)
        self.assertEqual(self.store.get_strategy_for_url("https://shop.example.com/x"), ScrapingStrategy.FIRECRAWL)
        self.assertIsNone(self.store.get_strategy_for_url("https://badexample.com/"))

    def test_upsert_replaces_same_prefix(self):
        """One prefix holds one entry; the latest write wins."""
        self.store.upsert_entry(_make_entry("a.com", ScrapingStrategy.NATIVE))
        self.store.upsert_entry(_make_entry("a.com", ScrapingStrategy.FIRECRAWL, "changed"))
        entries = self.store.load_config()
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].default_strategy, ScrapingStrategy.FIRECRAWL)

    def test_upsert_is_idempotent(self):
        """Applying the same entry twice leaves exactly one entry."""
        entry = _make_entry("a.com/docs/", ScrapingStrategy.FIRECRAWL)
        self.store.upsert_entry(entry)
        self.store.upsert_entry(entry)
        self.assertEqual(self.store.load_config(), [entry])

    def test_load_config_is_sorted_longest_first(self):
        """Entries come back longest prefix first."""
        for prefix in ("a.com", "a.com/b/c/", "a.com/b/"):
            self.store.upsert_entry(_make_entry(prefix))
        self.assertEqual([e.prefix for e in self.store.load_config()], ["a.com/b/c/", "a.com/b/", "a.com"])

    def test_concurrent_upserts_keep_every_entry(self):
        """Parallel upserts for distinct prefixes must not lose updates."""
        threads = [
            threading.Thread(target=self.store.upsert_entry, args=(_make_entry(f"site{i}.com"),))
            for i in range(20)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(len(self.store.load_config()), 20)

    def test_reset_forgets_everything(self):
        """Reset clears all entries."""
        self.store.upsert_entry(_make_entry("a.com"))
        self.store.reset()
        self.assertEqual(self.store.load_config(), [])

    def test_invalid_url_has_no_strategy(self):
        """URLs without a host never match."""
        self.store.upsert_entry(_make_entry("a.com"))
        self.assertIsNone(self.store.get_strategy_for_url("not a url"))


class TestMemoryStrategyConfigStore(StrategyStoreContract, unittest.TestCase):
    """Run the store contract against the in-memory store."""

    def make_store(self):
        return MemoryStrategyConfigStore()


class TestFilesystemStrategyConfigStore(StrategyStoreContract, unittest.TestCase):
    """Run the store contract against the markdown file store."""

    def make_store(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        return FilesystemStrategyConfigStore(str(Path(self._tmp.name) / "nested" / "strategies.md"))

    def test_missing_file_is_empty(self):
        """No file yet means no entries, not an error."""
        self.assertEqual(self.store.load_config(), [])

    def test_file_is_human_readable_markdown(self):
        """The saved file is a titled markdown table."""
        self.store.upsert_entry(_make_entry("yelp.com/biz/", ScrapingStrategy.BRIGHTDATA, "Auto-discovered"))
        text = self.store.path.read_text(encoding="utf-8")
        self.assertTrue(text.startswith("# "))
        self.assertIn("| prefix | default_strategy | notes |", text)
        self.assertIn("| yelp.com/biz/ | brightdata | Auto-discovered |", text)

    def test_hand_edits_are_picked_up(self):
        """Entries added to the file by hand are seen on the next lookup."""
        self.store.upsert_entry(_make_entry("a.com"))
        with open(self.store.path, "a", encoding="utf-8") as f:
            f.write("| b.com | firecrawl | manual |\n")
        self.assertEqual(self.store.get_strategy_for_url("https://b.com/x"), ScrapingStrategy.FIRECRAWL)

    def test_entries_survive_a_new_store_instance(self):
        """The table persists across store instances on the same path."""
        self.store.upsert_entry(_make_entry("a.com", ScrapingStrategy.FIRECRAWL))
        again = FilesystemStrategyConfigStore(str(self.store.path))
        self.assertEqual(again.get_strategy_for_url("https://a.com/"), ScrapingStrategy.FIRECRAWL)


if __name__ == "__main__":
    unittest.main()
