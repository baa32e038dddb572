"""Fetch orchestration: strategy selection, fallback chain, cleaning,
extraction and persistence for a single URL.

A request walks ``SELECT_STRATEGY -> ATTEMPT -> CLEAN -> EXTRACT -> STORE``.
Backends are tried one at a time in cost order, starting from the strategy
remembered for the site. The first success is recorded in the strategy
config store so the next request for the same site goes straight to it.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import List, Mapping, Optional, Tuple
from urllib.parse import urlsplit

from .base import BaseFetcher
from .content_filter import create_filter, detect_content_type, mime_type_for, truncate
from .errors import ResourceNotFoundError, ValidationError
from .extract import ExtractionClient
from .metrics import MetricsCollector
from .models import (
    FALLBACK_ORDER,
    AttemptRecord,
    FetchResult,
    MultiResourceUris,
    MultiResourceWrite,
    ResourceData,
    ResourceType,
    ScrapeDiagnostics,
    ScrapeOptions,
    ScrapeResult,
    ScrapingStrategy,
    StrategyConfigEntry,
)
from .storage import ResourceStorage
from .strategy_config import StrategyConfigStore, extract_url_pattern

logger = logging.getLogger(__name__)

_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_CACHE_PREFERENCE = (ResourceType.EXTRACTED, ResourceType.CLEANED, ResourceType.RAW)


def normalize_url(url: Optional[str]) -> str:
    """Trim ``url`` and default its scheme to https; reject anything else."""
    if not url or not url.strip():
        raise ValidationError("url is required")
    url = url.strip()
    if not _SCHEME.match(url):
        url = "https://" + url
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        raise ValidationError(f"Invalid URL: {url}")
    if parts.scheme.lower() not in ("http", "https") or not hostname:
        raise ValidationError(f"Invalid URL: {url}")
    return url


def _validate_options(options: ScrapeOptions) -> None:
    if options.max_chars is not None and options.max_chars <= 0:
        raise ValidationError("max_chars must be positive")
    if options.start_index < 0:
        raise ValidationError("start_index must not be negative")
    if options.timeout is not None and options.timeout <= 0:
        raise ValidationError("timeout must be positive")
    if options.strategy is not None and not isinstance(options.strategy, ScrapingStrategy):
        raise ValidationError(f"Unknown strategy: {options.strategy}")


class ScrapeOrchestrator:
    """Answers "fetch this URL" end to end.

    The config store and the resource storage are shared, injected objects;
    the orchestrator itself keeps no per-request state, so one instance may
    serve concurrent requests.
    """

    def __init__(
        self,
        fetchers: Mapping[ScrapingStrategy, BaseFetcher],
        config_store: StrategyConfigStore,
        storage: ResourceStorage,
        extractor: Optional[ExtractionClient] = None,
        metrics: Optional[MetricsCollector] = None,
        optimize_for: str = "cost",
    ) -> None:
        self._fetchers = dict(fetchers)
        self._config_store = config_store
        self._storage = storage
        self._extractor = extractor
        self._metrics = metrics
        self._optimize_for = optimize_for

    @property
    def fallback_order(self) -> List[ScrapingStrategy]:
        if self._optimize_for == "speed":
            return [s for s in FALLBACK_ORDER if s != ScrapingStrategy.NATIVE]
        return list(FALLBACK_ORDER)

    def scrape(self, url: str, options: Optional[ScrapeOptions] = None) -> ScrapeResult:
        options = options or ScrapeOptions()
        url = normalize_url(url)
        _validate_options(options)

        if options.return_content and not options.force_rescrape:
            cached = self._from_cache(url, options)
            if cached is not None:
                return cached

        diagnostics = ScrapeDiagnostics()
        remembered = self._remembered_strategy(url)
        preferred = options.strategy or remembered

        outcome = self._attempt_chain(url, options, preferred, diagnostics)
        if outcome is None:
            return self._exhausted(url, diagnostics)

        strategy, raw = outcome
        self._learn(url, strategy, remembered, options.strategy)
        return self._finish(url, options, strategy, raw, diagnostics)

    # -- strategy selection -------------------------------------------------

    def _remembered_strategy(self, url: str) -> Optional[ScrapingStrategy]:
        try:
            return self._config_store.get_strategy_for_url(url)
        except Exception as exc:  # noqa: BLE001
            logger.warning("strategy config lookup failed for %s: %s", url, exc)
            return None

    def _plan(self, preferred: Optional[ScrapingStrategy]) -> List[ScrapingStrategy]:
        chain = self.fallback_order
        if preferred is None:
            return chain
        return [preferred] + [s for s in chain if s != preferred]

    def _attempt_chain(
        self,
        url: str,
        options: ScrapeOptions,
        preferred: Optional[ScrapingStrategy],
        diagnostics: ScrapeDiagnostics,
    ) -> Optional[Tuple[ScrapingStrategy, str]]:
        for strategy in self._plan(preferred):
            fetcher = self._fetchers.get(strategy)
            if fetcher is None:
                diagnostics.strategy_errors[strategy.value] = f"{strategy.value} client not configured"
                continue
            result = self._attempt(strategy, fetcher, url, options.timeout, diagnostics)
            if result.success and result.data:
                return strategy, result.data
            logger.info("strategy %s failed for %s: %s", strategy.value, url, diagnostics.strategy_errors[strategy.value])
        return None

    def _attempt(
        self,
        strategy: ScrapingStrategy,
        fetcher: BaseFetcher,
        url: str,
        timeout: Optional[float],
        diagnostics: ScrapeDiagnostics,
    ) -> FetchResult:
        diagnostics.strategies_attempted.append(strategy.value)
        start = time.monotonic()
        try:
            result = fetcher.run(url, timeout)
        except Exception as exc:  # noqa: BLE001
            result = FetchResult(success=False, error=f"{type(exc).__name__}: {exc}")
        elapsed_ms = int((time.monotonic() - start) * 1000)
        diagnostics.timing[strategy.value] = elapsed_ms

        if not (result.success and result.data):
            if result.error:
                diagnostics.strategy_errors[strategy.value] = result.error
            elif result.status is not None and not 200 <= result.status < 300:
                diagnostics.strategy_errors[strategy.value] = f"HTTP {result.status}"
            else:
                diagnostics.strategy_errors[strategy.value] = "Empty response body"

        if self._metrics:
            self._metrics.record_attempt(
                AttemptRecord(
                    strategy=strategy,
                    url=url,
                    success=bool(result.success and result.data),
                    latency_ms=result.latency_ms or elapsed_ms,
                    status=result.status,
                    error=diagnostics.strategy_errors.get(strategy.value),
                )
            )
        return result

    def _learn(
        self,
        url: str,
        winner: ScrapingStrategy,
        remembered: Optional[ScrapingStrategy],
        explicit: Optional[ScrapingStrategy],
    ) -> None:
        if winner == remembered:
            return
        if explicit is not None and winner == explicit:
            notes = "Set by explicit strategy request"
        elif explicit is not None:
            notes = f"Auto-discovered after {explicit.value} failed"
        elif remembered is not None:
            notes = f"Auto-discovered after {remembered.value} failed"
        else:
            notes = "Auto-discovered via fallback chain"

        entry = StrategyConfigEntry(prefix=extract_url_pattern(url), default_strategy=winner, notes=notes)
        try:
            self._config_store.upsert_entry(entry)
        except Exception as exc:  # noqa: BLE001
            logger.warning("failed to record strategy %s for %s: %s", winner.value, entry.prefix, exc)
            return
        logger.info(
            json.dumps(
                {
                    "event": "strategy_learned",
                    "prefix": entry.prefix,
                    "strategy": winner.value,
                    "previous": remembered.value if remembered else None,
                    "notes": notes,
                }
            )
        )

    # -- post-processing ----------------------------------------------------

    def _finish(
        self,
        url: str,
        options: ScrapeOptions,
        strategy: ScrapingStrategy,
        raw: str,
        diagnostics: ScrapeDiagnostics,
    ) -> ScrapeResult:
        warnings: List[str] = []
        content_type = detect_content_type(raw)
        content_filter = create_filter(content_type, only_main_content=options.only_main_content)
        cleaned = content_filter.filter(raw, url)
        cleaned_mime_type = content_filter.output_mime_type(content_type)

        extracted = None
        if options.extract:
            extracted = self._extract(url, cleaned, options.extract, warnings)

        uris: Optional[MultiResourceUris] = None
        if options.save_result:
            try:
                uris = self._storage.write_multi(
                    MultiResourceWrite(
                        url=url,
                        raw=raw,
                        cleaned=cleaned,
                        extracted=extracted,
                        extraction_prompt=options.extract if extracted is not None else None,
                        content_type=mime_type_for(content_type),
                        cleaned_content_type=cleaned_mime_type,
                        extra={"strategy": strategy.value},
                    )
                )
            except Exception as exc:  # noqa: BLE001
                logger.warning("failed to store resources for %s: %s", url, exc)
                warnings.append(f"Failed to save resources: {exc}")

        body = extracted if extracted is not None else cleaned
        content: Optional[str] = None
        truncated = False
        # without a stored copy the content is the only reference left
        if options.return_content or uris is None:
            content, truncated = self._present(body, options)

        resource_uri = None
        if uris is not None:
            resource_uri = uris.extracted if extracted is not None else (uris.cleaned or uris.raw)

        return ScrapeResult(
            success=True,
            url=url,
            content=content,
            resource_uris=uris,
            resource_uri=resource_uri,
            strategy_used=strategy,
            diagnostics=diagnostics,
            truncated=truncated,
            content_type="text/plain" if extracted is not None else cleaned_mime_type,
            warnings=warnings,
        )

    def _extract(self, url: str, cleaned: str, prompt: str, warnings: List[str]) -> Optional[str]:
        if self._extractor is None:
            logger.warning("extraction requested for %s but no extraction client is configured", url)
            warnings.append("Extraction requested but no extraction client is configured")
            return None
        try:
            return self._extractor.extract(cleaned, prompt)
        except Exception as exc:  # noqa: BLE001
            logger.warning("extraction failed for %s: %s", url, exc)
            warnings.append(f"Extraction failed: {exc}")
            return None

    @staticmethod
    def _present(body: str, options: ScrapeOptions) -> Tuple[str, bool]:
        sliced = body[options.start_index:]
        truncated = options.max_chars is not None and len(sliced) > options.max_chars
        return truncate(sliced, options.max_chars), truncated

    def _exhausted(self, url: str, diagnostics: ScrapeDiagnostics) -> ScrapeResult:
        attempted = ", ".join(diagnostics.strategies_attempted) or "none"
        details = "; ".join(f"{name}: {error}" for name, error in diagnostics.strategy_errors.items())
        error = f"All strategies failed. Attempted: {attempted}. Errors: {details}"
        logger.warning("scrape failed for %s: %s", url, error)
        return ScrapeResult(success=False, url=url, error=error, diagnostics=diagnostics)

    # -- cache --------------------------------------------------------------

    def _from_cache(self, url: str, options: ScrapeOptions) -> Optional[ScrapeResult]:
        try:
            resources = self._storage.find_by_url_and_extract(url, options.extract)
        except Exception as exc:  # noqa: BLE001
            logger.warning("cache lookup failed for %s: %s", url, exc)
            return None
        if not resources:
            return None

        chosen = _pick_cached(resources)
        try:
            stored = self._storage.read(chosen.uri)
        except ResourceNotFoundError:
            return None

        content, truncated = self._present(stored.text, options)
        logger.debug("serving %s from cached resource %s", url, chosen.uri)
        return ScrapeResult(
            success=True,
            url=url,
            content=content,
            resource_uri=chosen.uri,
            strategy_used=ScrapingStrategy.parse(str(chosen.metadata.extra.get("strategy") or "")),
            from_cache=True,
            truncated=truncated,
            content_type=stored.mime_type,
        )


def _pick_cached(resources: List[ResourceData]) -> ResourceData:
    newest = resources[0].metadata.timestamp
    event = [r for r in resources if r.metadata.timestamp == newest]
    for resource_type in _CACHE_PREFERENCE:
        for resource in event:
            if resource.metadata.resource_type == resource_type:
                return resource
    return event[0]
