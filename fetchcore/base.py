from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import urlsplit

from .models import FetchResult, ScrapingStrategy


class BaseFetcher(ABC):
    """Abstract base class for one fetch backend.

    ``run`` never raises: a non-2xx status, an unusable payload or any
    exception from ``fetch``/``parse`` comes back as a failed FetchResult,
    with the HTTP code or the exception class in ``error``. There is no
    retry loop here; the orchestrator's fallback chain is the retry.
    """

    strategy: ScrapingStrategy

    def __init__(self, timeout: float = 30.0) -> None:
        self._timeout = timeout

    def run(self, url: str, timeout: Optional[float] = None) -> FetchResult:
        start_ms = self._now_ms()
        status_code = None

        try:
            self.validate(url)
            response = self.fetch(url, timeout or self._timeout)
            status_code = getattr(response, "status_code", None)

            if status_code is None or not 200 <= int(status_code) < 300:
                return FetchResult(
                    success=False,
                    status=status_code,
                    error=self.describe_http_error(response),
                    latency_ms=self._now_ms() - start_ms,
                )

            data = self.parse(response)
            if not data:
                return FetchResult(
                    success=False,
                    status=status_code,
                    error="Empty response body",
                    latency_ms=self._now_ms() - start_ms,
                )
            return FetchResult(success=True, data=data, status=status_code, latency_ms=self._now_ms() - start_ms)

        except Exception as exc:  # noqa: BLE001
            message = str(exc) or type(exc).__name__
            return FetchResult(
                success=False,
                status=status_code,
                error=f"{type(exc).__name__}: {message}",
                latency_ms=self._now_ms() - start_ms,
            )

    def validate(self, url: str) -> None:
        if not url:
            raise ValueError("url is required")
        if urlsplit(url).scheme not in ("http", "https"):
            raise ValueError(f"unsupported url scheme: {url}")

    def describe_http_error(self, response: Any) -> str:
        return f"HTTP {getattr(response, 'status_code', 'unknown')}"

    @abstractmethod
    def fetch(self, url: str, timeout: float) -> Any:
        ...

    @abstractmethod
    def parse(self, response: Any) -> Optional[str]:
        ...

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)
