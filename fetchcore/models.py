from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ScrapingStrategy(str, Enum):
    """Fetch backends, declared in ascending cost order."""

    NATIVE = "native"
    FIRECRAWL = "firecrawl"
    BRIGHTDATA = "brightdata"

    @classmethod
    def parse(cls, value: str) -> Optional["ScrapingStrategy"]:
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


FALLBACK_ORDER: List[ScrapingStrategy] = list(ScrapingStrategy)


class ResourceType(str, Enum):
    RAW = "raw"
    CLEANED = "cleaned"
    EXTRACTED = "extracted"


@dataclass(frozen=True)
class StrategyConfigEntry:
    prefix: str
    default_strategy: ScrapingStrategy
    notes: Optional[str] = None


@dataclass(frozen=True)
class FetchResult:
    success: bool
    data: Optional[str] = None
    status: Optional[int] = None
    error: Optional[str] = None
    latency_ms: int = 0


_METADATA_FIELDS = (
    "url",
    "timestamp",
    "content_type",
    "title",
    "description",
    "resource_type",
    "extraction_prompt",
)


@dataclass(frozen=True)
class ResourceMetadata:
    """Known resource fields plus an open ``extra`` map.

    ``to_dict`` flattens ``extra`` next to the known keys and ``from_dict``
    collects any unknown key back into it, so sidecars written by newer
    versions still load."""

    url: str
    timestamp: str
    content_type: str = "text/plain"
    resource_type: ResourceType = ResourceType.RAW
    title: Optional[str] = None
    description: Optional[str] = None
    extraction_prompt: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.extra)
        for name in _METADATA_FIELDS:
            value = getattr(self, name)
            if value is None:
                continue
            data[name] = value.value if isinstance(value, Enum) else value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceMetadata":
        extra = {k: v for k, v in data.items() if k not in _METADATA_FIELDS}
        return cls(
            url=data.get("url", ""),
            timestamp=data.get("timestamp", ""),
            content_type=data.get("content_type") or "text/plain",
            resource_type=ResourceType(data.get("resource_type") or ResourceType.RAW.value),
            title=data.get("title"),
            description=data.get("description"),
            extraction_prompt=data.get("extraction_prompt"),
            extra=extra,
        )


@dataclass(frozen=True)
class ResourceData:
    uri: str
    name: str
    metadata: ResourceMetadata
    description: Optional[str] = None
    mime_type: Optional[str] = None


@dataclass(frozen=True)
class ResourceContent:
    uri: str
    mime_type: str
    text: str


@dataclass(frozen=True)
class MultiResourceWrite:
    url: str
    raw: str
    cleaned: Optional[str] = None
    extracted: Optional[str] = None
    extraction_prompt: Optional[str] = None
    content_type: str = "text/plain"
    cleaned_content_type: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MultiResourceUris:
    raw: str
    cleaned: Optional[str] = None
    extracted: Optional[str] = None


@dataclass(frozen=True)
class ScrapeOptions:
    max_chars: int = 100000
    start_index: int = 0
    extract: Optional[str] = None
    save_result: bool = True
    return_content: bool = True
    only_main_content: bool = True
    timeout: Optional[float] = None
    force_rescrape: bool = False
    strategy: Optional[ScrapingStrategy] = None


@dataclass
class ScrapeDiagnostics:
    strategies_attempted: List[str] = field(default_factory=list)
    strategy_errors: Dict[str, str] = field(default_factory=dict)
    timing: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ScrapeResult:
    success: bool
    url: str
    content: Optional[str] = None
    resource_uris: Optional[MultiResourceUris] = None
    resource_uri: Optional[str] = None
    strategy_used: Optional[ScrapingStrategy] = None
    error: Optional[str] = None
    diagnostics: ScrapeDiagnostics = field(default_factory=ScrapeDiagnostics)
    from_cache: bool = False
    truncated: bool = False
    content_type: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class AttemptRecord:
    strategy: ScrapingStrategy
    url: str
    success: bool
    latency_ms: int
    status: Optional[int] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class MetricsSnapshot:
    window_secs: int
    total_attempts: int
    success_count: int
    attempts_by_strategy: Dict[str, int]
    successes_by_strategy: Dict[str, int]
    http_403_count: int
    http_429_count: int
    avg_latency_ms: float
    timestamp: float
