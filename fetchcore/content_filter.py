"""Content type detection and filters that reduce fetched content to its
relevant text.

HTML is cleaned with BeautifulSoup and rendered as markdown by markdownify;
structured formats (JSON, XML) and plain text pass through untouched. Every
filter applies the same optional length limit via :func:`truncate`.
"""

from __future__ import annotations

import json
import logging
import re
import warnings
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from bs4 import BeautifulSoup, Comment, Tag, XMLParsedAsHTMLWarning
from markdownify import markdownify as md

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n[Content truncated at {limit} characters]"


class ContentType(str, Enum):
    HTML = "html"
    JSON = "json"
    XML = "xml"
    TEXT = "text"


_MIME_TYPES = {
    ContentType.HTML: "text/html",
    ContentType.JSON: "application/json",
    ContentType.XML: "application/xml",
    ContentType.TEXT: "text/plain",
}

_HTML_HINT = re.compile(
    r"<!doctype\s+html|<html[\s>]|<head[\s>]|<body[\s>]|<div[\s>]|<p[\s>]|<article[\s>]|<main[\s>]",
    re.IGNORECASE,
)
_XML_ROOT = re.compile(r"^<(rss|feed|urlset|sitemapindex)[\s>]", re.IGNORECASE)

# Always dropped, whatever the extraction mode.
NON_CONTENT_TAGS = ["script", "style", "noscript", "template", "iframe", "svg", "canvas", "object", "embed"]
# Dropped when only the main content is wanted.
BOILERPLATE_TAGS = ["nav", "header", "footer", "aside", "form", "button", "dialog"]
BOILERPLATE_PATTERN = re.compile(
    r"(^|[\s_-])(nav|navbar|navigation|menu|footer|sidebar|ads?|advert\w*|sponsor\w*|promo\w*|"
    r"cookie\w*|consent|banner|social|share|newsletter|popup|modal|breadcrumbs?)($|[\s_-])",
    re.IGNORECASE,
)
MAIN_SELECTORS = ("main", "article", "[role=main]", "#content", "#main")
_DEAD_LINK = re.compile(r"^\s*(javascript:|#)", re.IGNORECASE)


def detect_content_type(content: str) -> ContentType:
    stripped = content.lstrip()
    if not stripped:
        return ContentType.TEXT

    if stripped[0] in "{[":
        try:
            parsed = json.loads(stripped)
        except ValueError:
            parsed = None
        if isinstance(parsed, (dict, list)):
            return ContentType.JSON

    head = stripped[:2048]
    if head.startswith("<?xml"):
        if re.search(r"<html[\s>]", head, re.IGNORECASE):
            return ContentType.HTML
        return ContentType.XML
    if _XML_ROOT.match(head):
        return ContentType.XML
    if _HTML_HINT.search(head):
        return ContentType.HTML
    return ContentType.TEXT


def mime_type_for(content_type: ContentType) -> str:
    return _MIME_TYPES.get(content_type, "text/plain")


def truncate(content: str, max_length: Optional[int]) -> str:
    """Cut ``content`` to ``max_length`` characters and append one marker.

    The cut is a plain substring cut, not word-boundary aware."""
    if max_length is None or len(content) <= max_length:
        return content
    return content[:max_length] + TRUNCATION_MARKER.format(limit=max_length)


class ContentFilter(ABC):
    """Reduces raw content of one family of content types."""

    handles: tuple = ()

    def __init__(self, max_length: Optional[int] = None) -> None:
        self._max_length = max_length

    def can_handle(self, content_type: ContentType) -> bool:
        return content_type in self.handles

    def output_mime_type(self, content_type: ContentType) -> str:
        return mime_type_for(content_type)

    def filter(self, content: str, url: str) -> str:
        return truncate(self._reduce(content, url), self._max_length)

    @abstractmethod
    def _reduce(self, content: str, url: str) -> str:
        ...


class PassthroughFilter(ContentFilter):
    handles = (ContentType.JSON, ContentType.XML, ContentType.TEXT)

    def _reduce(self, content: str, url: str) -> str:
        return content


class HtmlFilter(ContentFilter):
    """Strips page chrome and renders the remaining content as markdown.

    Headings, paragraphs, lists, blockquotes, emphasis, code and links are
    kept; scripts and styles are always removed. With ``only_main_content``
    navigation, headers, footers, asides and ad/cookie/social blocks are
    removed too and rendering starts from the main region of the page."""

    handles = (ContentType.HTML,)

    def __init__(self, max_length: Optional[int] = None, only_main_content: bool = True) -> None:
        super().__init__(max_length)
        self._only_main_content = only_main_content

    def output_mime_type(self, content_type: ContentType) -> str:
        return "text/markdown"

    def _reduce(self, content: str, url: str) -> str:
        try:
            # xhtml parses fine as html; keep the warning filter scoped to this call
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", XMLParsedAsHTMLWarning)
                soup = BeautifulSoup(content, "html.parser")
                root = self._prepare(soup)
                return html_to_markdown(str(root))
        except Exception as exc:  # noqa: BLE001
            logger.warning("html cleanup failed for %s (%s); returning content unchanged", url, type(exc).__name__)
            return content

    def _prepare(self, soup: BeautifulSoup) -> Tag:
        for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
            comment.extract()
        _drop(soup.find_all(NON_CONTENT_TAGS))
        for link in soup.find_all("a", href=_DEAD_LINK):
            link.unwrap()

        if not self._only_main_content:
            return soup.body or soup

        _drop(soup.find_all(BOILERPLATE_TAGS))
        _drop(soup.find_all(_is_boilerplate))

        for selector in MAIN_SELECTORS:
            region = soup.select_one(selector)
            if region is not None and region.get_text(strip=True):
                return region
        return soup.body or soup


def _drop(tags: List[Tag]) -> None:
    # a tag nested inside an already removed one is gone with it
    for tag in tags:
        if not tag.decomposed:
            tag.decompose()


def _is_boilerplate(tag: Tag) -> bool:
    if tag.name in ("html", "body", "main", "article"):
        return False
    attrs = getattr(tag, "attrs", None) or {}
    classes = attrs.get("class") or []
    if isinstance(classes, str):
        classes = [classes]
    marker = " ".join(classes) + " " + str(attrs.get("id") or "")
    if attrs.get("role") in ("navigation", "banner", "contentinfo", "complementary"):
        return True
    return bool(BOILERPLATE_PATTERN.search(marker))


def html_to_markdown(html: str) -> str:
    """Render an HTML fragment as markdown with at most one blank line between blocks."""
    markdown = md(
        html,
        heading_style="ATX",
        bullets="-",
        escape_asterisks=False,
        escape_underscores=False,
    )
    lines = [line.rstrip() for line in markdown.splitlines()]
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


def create_filter(
    content_type: ContentType,
    max_length: Optional[int] = None,
    only_main_content: bool = True,
) -> ContentFilter:
    if content_type == ContentType.HTML:
        return HtmlFilter(max_length=max_length, only_main_content=only_main_content)
    return PassthroughFilter(max_length=max_length)
