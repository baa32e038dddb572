from __future__ import annotations

import json
import logging
import os
import re
import shutil
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote, urlsplit

from .errors import ResourceNotFoundError
from .models import (
    MultiResourceUris,
    MultiResourceWrite,
    ResourceContent,
    ResourceData,
    ResourceMetadata,
    ResourceType,
)

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".meta.json"

_EXTENSIONS = {
    "text/html": ".html",
    "application/json": ".json",
    "application/xml": ".xml",
    "text/markdown": ".md",
}


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def sanitize(value: str) -> str:
    return re.sub(r"[^a-zA-Z0-9.-]", "_", value)


def _hostname(url: str) -> str:
    try:
        return urlsplit(url).hostname or "unknown"
    except ValueError:
        return "unknown"


def resource_name(url: str, timestamp: str, resource_type: ResourceType) -> str:
    return f"{resource_type.value}/{_hostname(url)}_{timestamp[:10]}"


def _newest_first(resources: List[ResourceData]) -> List[ResourceData]:
    return sorted(resources, key=lambda r: (r.metadata.timestamp, r.uri), reverse=True)


class ResourceStorage(ABC):
    """Abstract base class for resource catalog backends.

    Resources are immutable: every write produces a new URI, and repeated
    writes for one URL accumulate. Listing and lookups return the newest
    resource first.
    """

    def write(self, url: str, content: str, metadata: Optional[ResourceMetadata] = None) -> str:
        """Store ``content`` for ``url`` and return its URI."""
        if metadata is None:
            metadata = ResourceMetadata(url=url, timestamp=utc_timestamp())
        else:
            metadata = replace(metadata, url=url, timestamp=metadata.timestamp or utc_timestamp())
        return self._store(content, metadata)

    def write_multi(self, data: MultiResourceWrite) -> MultiResourceUris:
        """Store every stage of one fetch event under a shared timestamp."""
        timestamp = utc_timestamp()
        base = ResourceMetadata(
            url=data.url,
            timestamp=timestamp,
            content_type=data.content_type,
            title=data.title,
            description=data.description,
            extra=dict(data.extra),
        )

        raw_uri = self._store(data.raw, replace(base, resource_type=ResourceType.RAW))
        cleaned_uri = None
        if data.cleaned is not None:
            cleaned_uri = self._store(
                data.cleaned,
                replace(
                    base,
                    resource_type=ResourceType.CLEANED,
                    content_type=data.cleaned_content_type or data.content_type,
                ),
            )
        extracted_uri = None
        if data.extracted is not None:
            extracted_uri = self._store(
                data.extracted,
                replace(
                    base,
                    resource_type=ResourceType.EXTRACTED,
                    content_type="text/plain",
                    extraction_prompt=data.extraction_prompt,
                ),
            )
        return MultiResourceUris(raw=raw_uri, cleaned=cleaned_uri, extracted=extracted_uri)

    def find_by_url(self, url: str) -> List[ResourceData]:
        return [r for r in self.list() if r.metadata.url == url]

    def find_by_url_and_extract(self, url: str, extract_prompt: Optional[str] = None) -> List[ResourceData]:
        """Resources for ``url`` produced by ``extract_prompt``.

        Without a prompt only resources that carry no extraction prompt
        qualify, i.e. raw and cleaned stages."""
        if not extract_prompt:
            return [r for r in self.find_by_url(url) if not r.metadata.extraction_prompt]
        return [r for r in self.find_by_url(url) if r.metadata.extraction_prompt == extract_prompt]

    @abstractmethod
    def _store(self, content: str, metadata: ResourceMetadata) -> str:
        """Persist one resource and return its URI."""

    @abstractmethod
    def read(self, uri: str) -> ResourceContent:
        """Return the stored content; raise ResourceNotFoundError if absent."""

    @abstractmethod
    def exists(self, uri: str) -> bool:
        ...

    @abstractmethod
    def delete(self, uri: str) -> None:
        """Remove a resource; raise ResourceNotFoundError if absent."""

    @abstractmethod
    def list(self) -> List[ResourceData]:
        """Return every stored resource, newest first."""

    @abstractmethod
    def reset(self) -> None:
        """Remove every stored resource."""

    @staticmethod
    def _describe(metadata: ResourceMetadata) -> str:
        return metadata.description or f"Fetched content from {metadata.url}"


class MemoryResourceStorage(ResourceStorage):
    """Process-lifetime resource catalog."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._resources: Dict[str, Tuple[ResourceData, str]] = {}

    def _store(self, content: str, metadata: ResourceMetadata) -> str:
        base_uri = "memory://{}/{}_{}".format(
            metadata.resource_type.value,
            sanitize(re.sub(r"^https?://", "", metadata.url)),
            re.sub(r"[^0-9]", "", metadata.timestamp),
        )
        with self._lock:
            uri = base_uri
            n = 1
            while uri in self._resources:
                uri = f"{base_uri}-{n}"
                n += 1
            data = ResourceData(
                uri=uri,
                name=resource_name(metadata.url, metadata.timestamp, metadata.resource_type),
                description=self._describe(metadata),
                mime_type=metadata.content_type,
                metadata=metadata,
            )
            self._resources[uri] = (data, content)
        return uri

    def read(self, uri: str) -> ResourceContent:
        with self._lock:
            entry = self._resources.get(uri)
        if entry is None:
            raise ResourceNotFoundError(uri)
        data, content = entry
        return ResourceContent(uri=uri, mime_type=data.mime_type or "text/plain", text=content)

    def exists(self, uri: str) -> bool:
        with self._lock:
            return uri in self._resources

    def delete(self, uri: str) -> None:
        with self._lock:
            if uri not in self._resources:
                raise ResourceNotFoundError(uri)
            del self._resources[uri]

    def list(self) -> List[ResourceData]:
        with self._lock:
            resources = [data for data, _ in self._resources.values()]
        return _newest_first(resources)

    def reset(self) -> None:
        with self._lock:
            self._resources.clear()


def default_storage_root() -> Path:
    env_root = os.environ.get("RESOURCE_STORAGE_ROOT")
    if env_root:
        return Path(env_root)
    return Path(tempfile.gettempdir()) / "fetchcore" / "resources"


class FilesystemResourceStorage(ResourceStorage):
    """Stores each resource as a content file plus a JSON metadata sidecar.

    Files are named ``<type>_<host>_<timestamp>`` and live flat in one
    directory; lookups scan the sidecars, so the directory can be edited or
    pruned by hand between runs.
    """

    def __init__(self, root_dir: Optional[str] = None) -> None:
        self._root = Path(root_dir) if root_dir else default_storage_root()

    @property
    def root(self) -> Path:
        return self._root

    def _store(self, content: str, metadata: ResourceMetadata) -> str:
        self._root.mkdir(parents=True, exist_ok=True)
        stem = "{}_{}_{}".format(
            metadata.resource_type.value,
            sanitize(_hostname(metadata.url)),
            re.sub(r"[^0-9T]", "", metadata.timestamp),
        )
        ext = _EXTENSIONS.get(metadata.content_type, ".txt")

        # the sidecar is keyed by stem alone, so the stem is claimed through it
        # first; a writer with another extension but the same stem moves on too
        n = 0
        while True:
            candidate = stem if n == 0 else f"{stem}-{n}"
            path = self._root / (candidate + ext)
            sidecar = self._sidecar_for(path)
            try:
                claim = open(sidecar, "x", encoding="utf-8")
            except FileExistsError:
                n += 1
                continue
            with claim:
                try:
                    with open(path, "x", encoding="utf-8") as f:
                        f.write(content)
                except FileExistsError:
                    claim.close()
                    sidecar.unlink()
                    n += 1
                    continue
                claim.write(json.dumps(metadata.to_dict(), ensure_ascii=False, indent=2))
            return path.resolve().as_uri()

    def read(self, uri: str) -> ResourceContent:
        path = self._path_for(uri)
        metadata = self._load_metadata(path)
        if metadata is None or not path.is_file():
            raise ResourceNotFoundError(uri)
        return ResourceContent(uri=uri, mime_type=metadata.content_type, text=path.read_text(encoding="utf-8"))

    def exists(self, uri: str) -> bool:
        try:
            path = self._path_for(uri)
        except ResourceNotFoundError:
            return False
        return path.is_file() and self._load_metadata(path) is not None

    def delete(self, uri: str) -> None:
        if not self.exists(uri):
            raise ResourceNotFoundError(uri)
        path = self._path_for(uri)
        path.unlink()
        self._sidecar_for(path).unlink(missing_ok=True)

    def list(self) -> List[ResourceData]:
        if not self._root.is_dir():
            return []
        files = [p for p in self._root.iterdir() if p.is_file()]
        contents = {p.stem: p for p in files if not p.name.endswith(SIDECAR_SUFFIX)}

        resources: List[ResourceData] = []
        for sidecar in files:
            if not sidecar.name.endswith(SIDECAR_SUFFIX):
                continue
            content_path = contents.get(sidecar.name[: -len(SIDECAR_SUFFIX)])
            if content_path is None:
                continue
            try:
                metadata = ResourceMetadata.from_dict(json.loads(sidecar.read_text(encoding="utf-8")))
            except (OSError, ValueError) as exc:
                logger.warning("skipping unreadable resource sidecar %s: %s", sidecar.name, exc)
                continue
            resources.append(
                ResourceData(
                    uri=content_path.resolve().as_uri(),
                    name=resource_name(metadata.url, metadata.timestamp, metadata.resource_type),
                    description=self._describe(metadata),
                    mime_type=metadata.content_type,
                    metadata=metadata,
                )
            )
        return _newest_first(resources)

    def reset(self) -> None:
        if self._root.is_dir():
            shutil.rmtree(self._root)

    def _path_for(self, uri: str) -> Path:
        if not uri.startswith("file://"):
            raise ResourceNotFoundError(uri)
        return Path(unquote(urlsplit(uri).path))

    @staticmethod
    def _sidecar_for(path: Path) -> Path:
        return path.with_name(path.stem + SIDECAR_SUFFIX)

    def _load_metadata(self, path: Path) -> Optional[ResourceMetadata]:
        sidecar = self._sidecar_for(path)
        try:
            return ResourceMetadata.from_dict(json.loads(sidecar.read_text(encoding="utf-8")))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("unreadable resource sidecar %s: %s", sidecar.name, exc)
            return None
