"""Fallback web fetching with learned per-site strategies.

Tries fetch backends in cost order, remembers which one worked for each site,
cleans what it fetched and keeps raw, cleaned and extracted copies in an
addressable resource catalog.

Key modules:
    orchestrator    -- ScrapeOrchestrator, the end-to-end scrape pipeline
    strategy_config -- StrategyConfigStore backends (memory, markdown file)
    content_filter  -- content type detection, HTML cleaning, truncation
    storage         -- ResourceStorage backends (memory, filesystem)
    base            -- BaseFetcher abstract class
    scrapers        -- NativeFetcher, FirecrawlFetcher, BrightDataFetcher
    extract         -- LLM extraction clients
    factory         -- ProviderFactory wiring everything from Settings
    config          -- Settings loaded from the environment
    metrics         -- MetricsCollector for backend attempt statistics
    models          -- shared dataclasses and enums
    errors          -- exception hierarchy
"""

from .models import ScrapeOptions, ScrapeResult, ScrapingStrategy
from .orchestrator import ScrapeOrchestrator

__all__ = ["ScrapeOptions", "ScrapeResult", "ScrapingStrategy", "ScrapeOrchestrator"]
