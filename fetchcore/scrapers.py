from __future__ import annotations

from typing import Any, Optional

import requests
from curl_cffi import requests as curl_requests

from .base import BaseFetcher
from .errors import ProviderFailure
from .models import ScrapingStrategy
from .pdf import is_pdf_response, pdf_to_markdown

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

_AUTH_HINTS = ("unauthorized", "invalid token", "authentication", "token expired", "api key")


def _error_message(response: Any) -> Optional[str]:
    try:
        payload = response.json()
    except Exception:  # noqa: BLE001
        text = (getattr(response, "text", "") or "").strip()
        return text[:200] or None
    if isinstance(payload, dict):
        return payload.get("error") or payload.get("message")
    return None


def _describe_paid_error(response: Any) -> str:
    status = getattr(response, "status_code", None)
    message = _error_message(response) or f"HTTP {status}"
    if status in (401, 403) or any(h in message.lower() for h in _AUTH_HINTS):
        return f"Authentication failed: {message}"
    return message if message.startswith("HTTP") else f"HTTP {status}: {message}"


def _body_text(response: Any) -> Optional[str]:
    if is_pdf_response(response):
        return pdf_to_markdown(response.content)
    return getattr(response, "text", None)


class NativeFetcher(BaseFetcher):
    """Direct fetch with a browser TLS fingerprint, free of charge."""

    strategy = ScrapingStrategy.NATIVE

    def __init__(self, timeout: float = 30.0, impersonate: str = "chrome120") -> None:
        super().__init__(timeout)
        self._impersonate = impersonate

    def fetch(self, url: str, timeout: float) -> Any:
        session = curl_requests.Session()
        try:
            return session.get(
                url,
                headers=DEFAULT_HEADERS,
                impersonate=self._impersonate,
                timeout=timeout,
                allow_redirects=True,
            )
        finally:
            session.close()

    def parse(self, response: Any) -> Optional[str]:
        return _body_text(response)


class FirecrawlFetcher(BaseFetcher):
    """General-purpose scraping API; renders JavaScript and returns HTML."""

    strategy = ScrapingStrategy.FIRECRAWL

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.firecrawl.dev",
        timeout: float = 60.0,
        only_main_content: bool = False,
    ) -> None:
        super().__init__(timeout)
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._only_main_content = only_main_content

    def fetch(self, url: str, timeout: float) -> Any:
        return requests.post(
            f"{self._base_url}/v1/scrape",
            json={
                "url": url,
                "formats": ["html"],
                "onlyMainContent": self._only_main_content,
                "timeout": int(timeout * 1000),
            },
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=timeout,
        )

    def parse(self, response: Any) -> Optional[str]:
        payload = response.json()
        if not isinstance(payload, dict) or not payload.get("success"):
            error = payload.get("error") if isinstance(payload, dict) else None
            raise ProviderFailure(error or "Firecrawl request failed without error details")
        data = payload.get("data") or {}
        return data.get("html") or data.get("rawHtml") or data.get("markdown")

    def describe_http_error(self, response: Any) -> str:
        return _describe_paid_error(response)


class BrightDataFetcher(BaseFetcher):
    """Web Unlocker API for heavily protected pages."""

    strategy = ScrapingStrategy.BRIGHTDATA

    def __init__(
        self,
        api_key: str,
        zone: str = "unblocker",
        data_format: str = "raw",
        base_url: str = "https://api.brightdata.com",
        timeout: float = 90.0,
    ) -> None:
        super().__init__(timeout)
        self._api_key = api_key
        self._zone = zone
        self._format = data_format
        self._base_url = base_url.rstrip("/")

    def fetch(self, url: str, timeout: float) -> Any:
        return requests.post(
            f"{self._base_url}/request",
            json={"zone": self._zone, "url": url, "format": self._format},
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=timeout,
        )

    def parse(self, response: Any) -> Optional[str]:
        return _body_text(response)

    def describe_http_error(self, response: Any) -> str:
        return _describe_paid_error(response)
