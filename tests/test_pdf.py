"""Tests for PDF detection and markdown conversion, with PyMuPDF mocked out."""

import unittest
from unittest import mock

from fetchcore.errors import ProviderFailure
from fetchcore.pdf import is_pdf_response, page_to_markdown, pdf_to_markdown


def _make_page(text):
    """Helper to build a fake PyMuPDF page."""
    page = mock.Mock()
    page.get_text.return_value = text
    return page


def _make_document(*texts):
    """Helper to build a fake PyMuPDF document iterating over pages."""
    doc = mock.MagicMock()
    doc.__iter__.return_value = iter([_make_page(t) for t in texts])
    return doc


class TestIsPdfResponse(unittest.TestCase):
    """Verify PDF detection on fetched responses."""

    def test_content_type_header(self):
        """The declared content type is enough."""
        response = mock.Mock(headers={"content-type": "application/pdf; qs=0.001"}, content=b"")
        self.assertTrue(is_pdf_response(response))

    def test_magic_bytes_without_header(self):
        """Mislabelled PDFs are caught by their signature."""
        response = mock.Mock(headers={"content-type": "application/octet-stream"}, content=b"%PDF-1.7\n")
        self.assertTrue(is_pdf_response(response))

    def test_html_is_not_pdf(self):
        """Ordinary pages are left alone."""
        response = mock.Mock(headers={"content-type": "text/html"}, content=b"<html></html>")
        self.assertFalse(is_pdf_response(response))


class TestPageToMarkdown(unittest.TestCase):
    """Verify the per-page text cleanup."""

    def test_headings_bullets_and_numbered_items(self):
        """Short capitalised lines become headings and bullet glyphs become dashes."""
        text = (
            "Introduction\n"
            "This document explains how the fetch chain picks a backend for each site.\n"
            "• First point\n"
            "• Second point\n"
            "1. Numbered step\n"
        )
        self.assertEqual(
            page_to_markdown(text),
            "### Introduction\n\n"
            "This document explains how the fetch chain picks a backend for each site.\n\n"
            "- First point\n"
            "- Second point\n"
            "1. Numbered step",
        )

    def test_wrapped_lines_are_joined(self):
        """A paragraph broken across lines reads as one line."""
        text = "the fetch chain tries the cheapest backend\nfirst and falls back to paid ones on failure\n"
        self.assertEqual(
            page_to_markdown(text),
            "the fetch chain tries the cheapest backend first and falls back to paid ones on failure",
        )

    def test_blank_page(self):
        """Whitespace-only pages render as nothing."""
        self.assertEqual(page_to_markdown("  \n\n \n"), "")


class TestPdfToMarkdown(unittest.TestCase):
    """Verify whole-document conversion."""

    @mock.patch("fetchcore.pdf.fitz.open")
    def test_pages_become_sections(self, fitz_open):
        """Each page with text gets its own numbered section."""
        doc = _make_document("first page text here", "", "third page text here")
        fitz_open.return_value = doc
        markdown = pdf_to_markdown(b"%PDF-1.7")
        self.assertEqual(
            markdown,
            "## Page 1\n\nfirst page text here\n\n---\n\n## Page 3\n\nthird page text here",
        )
        fitz_open.assert_called_once_with(stream=b"%PDF-1.7", filetype="pdf")
        doc.close.assert_called_once()

    @mock.patch("fetchcore.pdf.fitz.open")
    def test_single_page_has_no_section_header(self, fitz_open):
        """A one-page document is rendered bare."""
        fitz_open.return_value = _make_document("only page text here")
        self.assertEqual(pdf_to_markdown(b"%PDF-1.7"), "only page text here")

    @mock.patch("fetchcore.pdf.fitz.open")
    def test_unparseable_document_raises_provider_failure(self, fitz_open):
        """Parser errors surface as a backend failure."""
        fitz_open.side_effect = RuntimeError("cannot open broken document")
        with self.assertRaises(ProviderFailure) as ctx:
            pdf_to_markdown(b"%PDF-broken")
        self.assertIn("Failed to parse PDF", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
