from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from typing import List, Optional

from fetchcore.config import Settings
from fetchcore.errors import FetchCoreError
from fetchcore.factory import ProviderFactory
from fetchcore.metrics import MetricsCollector
from fetchcore.models import ScrapeOptions, ScrapeResult, ScrapingStrategy

METRICS_CSV_FIELDS = ["timestamp", "strategy", "url", "success", "latency_ms", "status", "error"]


def _print_result(result: ScrapeResult) -> None:
    if not result.success:
        print(f"FAILED: {result.error}", file=sys.stderr)
        return

    if result.content is not None:
        print(result.content)
        print()
    print("---")
    source = "cache" if result.from_cache else (result.strategy_used.value if result.strategy_used else "unknown")
    print(f"Scraped using: {source}")
    if result.resource_uris is not None:
        print(f"raw: {result.resource_uris.raw}")
        if result.resource_uris.cleaned:
            print(f"cleaned: {result.resource_uris.cleaned}")
        if result.resource_uris.extracted:
            print(f"extracted: {result.resource_uris.extracted}")
    elif result.resource_uri:
        print(f"resource: {result.resource_uri}")
    for warning in result.warnings:
        print(f"warning: {warning}", file=sys.stderr)


def run_scrape(factory: ProviderFactory, args: argparse.Namespace) -> int:
    strategy = None
    if args.strategy:
        strategy = ScrapingStrategy.parse(args.strategy)
        if strategy is None:
            print(f"Unknown strategy: {args.strategy}", file=sys.stderr)
            return 2

    options = ScrapeOptions(
        max_chars=args.max_chars,
        start_index=args.start_index,
        extract=args.extract,
        save_result=not args.no_save,
        return_content=not args.save_only,
        only_main_content=not args.full_page,
        timeout=args.timeout,
        force_rescrape=args.force,
        strategy=strategy,
    )
    orchestrator = factory.create_orchestrator()
    result = orchestrator.scrape(args.url, options)
    _print_result(result)
    metrics = factory.metrics
    if args.verbose:
        print(json.dumps(result.diagnostics.__dict__, indent=2), file=sys.stderr)
        if metrics is not None:
            print(json.dumps({"attempts": metrics.export_json()}, indent=2), file=sys.stderr)
    if args.metrics_csv and metrics is not None:
        write_metrics_csv(metrics, args.metrics_csv)
    return 0 if result.success else 1


def write_metrics_csv(metrics: MetricsCollector, path: str) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=METRICS_CSV_FIELDS)
        writer.writeheader()
        writer.writerows(metrics.export_csv_rows())


def run_resources(factory: ProviderFactory, args: argparse.Namespace) -> int:
    storage = factory.create_storage()
    resources = storage.find_by_url(args.url) if args.url else storage.list()
    for resource in resources:
        meta = resource.metadata
        print(f"{resource.uri}\t{meta.resource_type.value}\t{meta.timestamp}\t{meta.url}")
    return 0


def run_read(factory: ProviderFactory, args: argparse.Namespace) -> int:
    content = factory.create_storage().read(args.uri)
    print(content.text)
    return 0


def run_strategies(factory: ProviderFactory, args: argparse.Namespace) -> int:
    for entry in factory.create_config_store().load_config():
        print(f"{entry.prefix}\t{entry.default_strategy.value}\t{entry.notes or ''}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fetch web content with learned fallback strategies")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ...)")
    sub = parser.add_subparsers(dest="command", required=True)

    scrape = sub.add_parser("scrape", help="Scrape a single URL")
    scrape.add_argument("url")
    scrape.add_argument("--max-chars", type=int, default=100000, help="Maximum characters to return")
    scrape.add_argument("--start-index", type=int, default=0, help="Character index to start output from")
    scrape.add_argument("--extract", default=None, help="Natural-language extraction prompt")
    scrape.add_argument("--no-save", action="store_true", help="Do not store the result as resources")
    scrape.add_argument("--save-only", action="store_true", help="Store the result and print only its URIs")
    scrape.add_argument("--full-page", action="store_true", help="Keep navigation, headers and footers")
    scrape.add_argument("--timeout", type=float, default=None, help="Per-backend timeout in seconds")
    scrape.add_argument("--strategy", default=None, help="Strategy to try first (native, firecrawl, brightdata)")
    scrape.add_argument("--force", action="store_true", help="Ignore cached resources")
    scrape.add_argument("--verbose", action="store_true", help="Print attempt diagnostics and recorded metrics")
    scrape.add_argument("--metrics-csv", default=None, help="Write recorded backend attempts to this CSV file")
    scrape.set_defaults(handler=run_scrape)

    resources = sub.add_parser("resources", help="List stored resources")
    resources.add_argument("--url", default=None, help="Only resources for this exact URL")
    resources.set_defaults(handler=run_resources)

    read = sub.add_parser("read", help="Print a stored resource")
    read.add_argument("uri")
    read.set_defaults(handler=run_read)

    strategies = sub.add_parser("strategies", help="Show learned strategies")
    strategies.set_defaults(handler=run_strategies)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        factory = ProviderFactory(Settings.from_env(), metrics=MetricsCollector())
        return args.handler(factory, args)
    except FetchCoreError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
