"""PDF responses rendered as page-sectioned markdown.

Raw resources are text, so a PDF body is converted once, when it is
fetched. Text comes from PyMuPDF; a light pass over each page's lines marks
short capitalised lines as headings, normalises bullet glyphs and rejoins
wrapped paragraph lines.
"""

from __future__ import annotations

import logging
import re
from typing import Any, List, Optional

import fitz  # PyMuPDF

from .errors import ProviderFailure

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
PDF_MAGIC = b"%PDF-"

_BULLET = re.compile(r"^[•·▪▫◦‣⁃]\s+")
_NUMBERED = re.compile(r"^\d+[.)]\s+")
_SENTENCE = re.compile(r"^[A-Z].*[.!?]$")


def is_pdf_response(response: Any) -> bool:
    headers = getattr(response, "headers", None) or {}
    if PDF_MIME_TYPE in str(headers.get("content-type") or "").lower():
        return True
    body = getattr(response, "content", None)
    return isinstance(body, bytes) and body.startswith(PDF_MAGIC)


def pdf_to_markdown(data: bytes) -> str:
    """Convert PDF bytes to markdown.

    Multi-page documents get one ``## Page N`` section per page with text,
    separated by horizontal rules; a single page is rendered bare.
    """
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:  # noqa: BLE001
        raise ProviderFailure(f"Failed to parse PDF: {exc}") from exc

    try:
        pages = [page.get_text() for page in doc]
    finally:
        doc.close()
    logger.debug("extracted text from %d pdf pages", len(pages))

    if len(pages) == 1:
        return page_to_markdown(pages[0])
    sections = []
    for number, text in enumerate(pages, start=1):
        body = page_to_markdown(text)
        if body:
            sections.append(f"## Page {number}\n\n{body}")
    return "\n\n---\n\n".join(sections)


def _looks_like_heading(line: str, next_line: Optional[str]) -> bool:
    return (
        len(line) < 60
        and not line.endswith((".", ",", ":"))
        and line[:1].isupper()
        and (next_line is None or len(next_line) > len(line) * 1.5)
    )


def _continues_paragraph(previous: str, line: str) -> bool:
    return (
        bool(previous)
        and not previous.startswith(("#", "-"))
        and not _NUMBERED.match(previous)
        and len(line) > 20
        and not _SENTENCE.match(line)
    )


def page_to_markdown(text: str) -> str:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    out: List[str] = []
    for i, line in enumerate(lines):
        next_line = lines[i + 1] if i + 1 < len(lines) else None
        if _looks_like_heading(line, next_line):
            out.extend(["", f"### {line}", ""])
        elif _BULLET.match(line):
            out.append("- " + _BULLET.sub("", line))
        elif _NUMBERED.match(line):
            out.append(line)
        elif out and _continues_paragraph(out[-1], line):
            out[-1] += " " + line
        else:
            out.append(line)

        if line.endswith(".") and next_line and not next_line[:1].islower():
            out.append("")
    return re.sub(r"\n{3,}", "\n\n", "\n".join(out)).strip()
