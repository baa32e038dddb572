from __future__ import annotations

import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlsplit

from .models import ScrapingStrategy, StrategyConfigEntry

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = "scraping-strategies.md"

_TABLE_TITLE = "# Scraping Strategy Configuration"
_TABLE_PROSE = (
    "This file records which scraping strategy to use for each URL prefix "
    "(native, firecrawl, brightdata). Longer prefixes take precedence."
)
_TABLE_HEADER = "| prefix | default_strategy | notes |"
_TABLE_SEPARATOR = "| ------ | ---------------- | ----- |"


def default_config_path() -> Path:
    env_path = os.environ.get("STRATEGY_CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return Path(tempfile.gettempdir()) / "fetchcore" / DEFAULT_CONFIG_FILENAME


def extract_url_pattern(url: str) -> str:
    """Return the prefix under which a learned strategy for ``url`` is stored.

    The path is kept up to (not including) its last segment, so sibling pages
    share one entry:

        https://yelp.com/biz/some-shop       -> yelp.com/biz/
        https://example.com/blog/2024/post   -> example.com/blog/2024/
        https://example.com/about            -> example.com
    """
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
        port = parts.port
    except ValueError:
        return url
    if not hostname:
        return url

    host = f"{hostname}:{port}" if port else hostname
    segments = [s for s in parts.path.split("/") if s]
    if len(segments) <= 1:
        return host
    return host + "/" + "/".join(segments[:-1]) + "/"


def matches_prefix(hostname: str, path: str, prefix: str) -> bool:
    if "/" in prefix:
        full = hostname + path
        return full.startswith(prefix) or full.startswith("www." + prefix)
    return hostname == prefix or hostname == "www." + prefix or hostname.endswith("." + prefix)


def sort_entries(entries: List[StrategyConfigEntry]) -> List[StrategyConfigEntry]:
    return sorted(entries, key=lambda e: len(e.prefix), reverse=True)


def parse_strategy_table(text: str) -> List[StrategyConfigEntry]:
    """Parse the markdown strategy table embedded in ``text``.

    Lines before the header row are ignored, separator rows are skipped, and
    the table ends at the first non-table line. Rows naming an unknown
    strategy are dropped."""
    entries: List[StrategyConfigEntry] = []
    header_found = False

    for line in text.splitlines():
        row = line.strip()
        if not row:
            continue
        is_row = row.startswith("|") and row.endswith("|")
        if not is_row:
            if header_found:
                break
            continue
        if not header_found:
            lowered = row.lower()
            if "prefix" in lowered and "default_strategy" in lowered and "notes" in lowered:
                header_found = True
            continue
        if "---" in row:
            continue
        entry = _parse_row(row)
        if entry is not None:
            entries.append(entry)
    return entries


def _parse_row(row: str) -> Optional[StrategyConfigEntry]:
    cells = [cell.strip() for cell in row[1:-1].split("|")]
    if len(cells) < 2 or not cells[0]:
        return None
    strategy = ScrapingStrategy.parse(cells[1])
    if strategy is None:
        return None
    notes = cells[2] if len(cells) > 2 and cells[2] else None
    return StrategyConfigEntry(prefix=cells[0], default_strategy=strategy, notes=notes)


def render_strategy_table(entries: List[StrategyConfigEntry]) -> str:
    lines = [_TABLE_TITLE, "", _TABLE_PROSE, "", _TABLE_HEADER, _TABLE_SEPARATOR]
    for entry in entries:
        notes = (entry.notes or "").replace("|", "/")
        lines.append(f"| {entry.prefix} | {entry.default_strategy.value} | {notes} |")
    return "\n".join(lines) + "\n"


class StrategyConfigStore(ABC):
    """Maps URL prefixes to the fetch strategy that last worked for them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @abstractmethod
    def load_config(self) -> List[StrategyConfigEntry]:
        """Return all entries, longest prefix first."""

    @abstractmethod
    def save_config(self, entries: List[StrategyConfigEntry]) -> None:
        """Replace the persisted entry set."""

    @abstractmethod
    def reset(self) -> None:
        """Forget every entry."""

    def upsert_entry(self, entry: StrategyConfigEntry) -> None:
        """Insert or replace the entry for ``entry.prefix``.

        The load/modify/save cycle runs under the store lock so parallel
        requests cannot drop each other's updates."""
        with self._lock:
            entries = [e for e in self.load_config() if e.prefix != entry.prefix]
            entries.append(entry)
            self.save_config(sort_entries(entries))

    def get_strategy_for_url(self, url: str) -> Optional[ScrapingStrategy]:
        try:
            parts = urlsplit(url)
            hostname = parts.hostname
        except ValueError:
            return None
        if not hostname:
            return None

        path = parts.path or "/"
        for entry in self.load_config():
            if matches_prefix(hostname, path, entry.prefix):
                return entry.default_strategy
        return None


class MemoryStrategyConfigStore(StrategyConfigStore):
    def __init__(self, entries: Optional[List[StrategyConfigEntry]] = None) -> None:
        super().__init__()
        self._entries: List[StrategyConfigEntry] = sort_entries(list(entries or []))

    def load_config(self) -> List[StrategyConfigEntry]:
        return list(self._entries)

    def save_config(self, entries: List[StrategyConfigEntry]) -> None:
        self._entries = sort_entries(list(entries))

    def reset(self) -> None:
        with self._lock:
            self._entries = []


class FilesystemStrategyConfigStore(StrategyConfigStore):
    """Keeps the strategy table in a human-editable markdown file."""

    def __init__(self, path: Optional[str] = None) -> None:
        super().__init__()
        self._path = Path(path) if path else default_config_path()

    @property
    def path(self) -> Path:
        return self._path

    def load_config(self) -> List[StrategyConfigEntry]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        return sort_entries(parse_strategy_table(text))

    def save_config(self, entries: List[StrategyConfigEntry]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(render_strategy_table(entries), encoding="utf-8")
        os.replace(tmp_path, self._path)
        logger.debug("saved %d strategy entries to %s", len(entries), self._path)

    def reset(self) -> None:
        with self._lock:
            try:
                self._path.unlink()
            except FileNotFoundError:
                pass
