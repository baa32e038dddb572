from __future__ import annotations

from typing import Dict, Optional

from .base import BaseFetcher
from .config import Settings
from .extract import AnthropicExtractionClient, ExtractionClient, OpenAICompatibleExtractionClient
from .metrics import MetricsCollector
from .models import FALLBACK_ORDER, ScrapingStrategy
from .orchestrator import ScrapeOrchestrator
from .scrapers import BrightDataFetcher, FirecrawlFetcher, NativeFetcher
from .storage import FilesystemResourceStorage, MemoryResourceStorage, ResourceStorage
from .strategy_config import FilesystemStrategyConfigStore, StrategyConfigStore


class ProviderFactory:
    """Builds fetch backends and the collaborators around them from Settings.

    Fetchers are stateless apart from their credentials, so one instance per
    strategy is cached and shared. Paid backends without an API key are not
    built at all; the orchestrator reports them as not configured.
    """

    def __init__(self, settings: Settings, metrics: Optional[MetricsCollector] = None) -> None:
        self._settings = settings
        self._metrics = metrics
        self._cache: Dict[ScrapingStrategy, BaseFetcher] = {}

    @property
    def metrics(self) -> Optional[MetricsCollector]:
        return self._metrics

    def create_fetcher(self, strategy: ScrapingStrategy) -> Optional[BaseFetcher]:
        if strategy in self._cache:
            return self._cache[strategy]

        s = self._settings
        fetcher: Optional[BaseFetcher] = None
        if strategy == ScrapingStrategy.NATIVE:
            fetcher = NativeFetcher(timeout=s.fetch_timeout)
        elif strategy == ScrapingStrategy.FIRECRAWL:
            if s.firecrawl_api_key:
                fetcher = FirecrawlFetcher(
                    api_key=s.firecrawl_api_key,
                    base_url=s.firecrawl_base_url,
                    timeout=max(s.fetch_timeout, 60.0),
                )
        elif strategy == ScrapingStrategy.BRIGHTDATA:
            if s.brightdata_api_key:
                fetcher = BrightDataFetcher(
                    api_key=s.brightdata_api_key,
                    zone=s.brightdata_zone,
                    base_url=s.brightdata_base_url,
                    timeout=max(s.fetch_timeout, 90.0),
                )
        else:
            raise ValueError(f"Unknown strategy: {strategy}")

        if fetcher is not None:
            self._cache[strategy] = fetcher
        return fetcher

    def create_fetchers(self) -> Dict[ScrapingStrategy, BaseFetcher]:
        fetchers: Dict[ScrapingStrategy, BaseFetcher] = {}
        for strategy in FALLBACK_ORDER:
            fetcher = self.create_fetcher(strategy)
            if fetcher is not None:
                fetchers[strategy] = fetcher
        return fetchers

    def create_config_store(self) -> StrategyConfigStore:
        return FilesystemStrategyConfigStore(self._settings.strategy_config_path)

    def create_storage(self) -> ResourceStorage:
        if self._settings.resource_storage == "filesystem":
            return FilesystemResourceStorage(self._settings.resource_storage_root)
        return MemoryResourceStorage()

    def create_extractor(self) -> Optional[ExtractionClient]:
        s = self._settings
        if not s.llm_provider or not s.llm_api_key:
            return None
        kwargs = {}
        if s.llm_api_base_url:
            kwargs["base_url"] = s.llm_api_base_url
        if s.llm_model:
            kwargs["model"] = s.llm_model
        if s.llm_provider == "anthropic":
            return AnthropicExtractionClient(api_key=s.llm_api_key, **kwargs)
        return OpenAICompatibleExtractionClient(api_key=s.llm_api_key, **kwargs)

    def create_orchestrator(
        self,
        config_store: Optional[StrategyConfigStore] = None,
        storage: Optional[ResourceStorage] = None,
    ) -> ScrapeOrchestrator:
        return ScrapeOrchestrator(
            fetchers=self.create_fetchers(),
            config_store=config_store or self.create_config_store(),
            storage=storage or self.create_storage(),
            extractor=self.create_extractor(),
            metrics=self._metrics,
            optimize_for=self._settings.optimize_for,
        )
