#!/usr/bin/env python3
"""Command line entry point for the ingestion pipeline.

Usage:
    python scripts/run_ingestion.py init-db
    python scripts/run_ingestion.py seed-feeds
    python scripts/run_ingestion.py news
    python scripts/run_ingestion.py trials --file trials.json
    python scripts/run_ingestion.py trials --condition "lung cancer"
    python scripts/run_ingestion.py approvals --fetch --cancer-type lung
    python scripts/run_ingestion.py papers --queries
    python scripts/run_ingestion.py repair
"""

import argparse
import json
import sys
from pathlib import Path

# Add repo root to path so we can import project modules
REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT))

from ingestion.clinical_trials import ClinicalTrialsClient  # noqa: E402
from ingestion.config import Settings, load_settings  # noqa: E402
from ingestion.constants import CANCER_TYPES  # noqa: E402
from ingestion.fda_approvals import OpenFDAClient  # noqa: E402
from ingestion.feeds import FeedRegistry  # noqa: E402
from ingestion.models import IngestionResult  # noqa: E402
from ingestion.ncbi_papers import NCBIClient  # noqa: E402
from ingestion.orchestrators import (  # noqa: E402
    ApprovalIngestion,
    NewsIngestion,
    PaperIngestion,
    TrialIngestion,
)
from ingestion.repair import repair_approval_drug_names  # noqa: E402
from ingestion.store import Store  # noqa: E402
from util.logging_util import setup_logger  # noqa: E402

logger = setup_logger("run_ingestion")


def _load_json(path: Path):
    with open(path, "r") as f:
        return json.load(f)


def _load_trials(path: Path) -> list:
    data = _load_json(path)
    if isinstance(data, dict):
        return data.get("studies") or []
    return data


def _load_papers(path: Path) -> list:
    """A list of esummary documents, or a raw esummary response."""
    data = _load_json(path)
    if isinstance(data, dict):
        result = data.get("result", data)
        return [{"uid": uid, **result[uid]} for uid in result.get("uids") or [] if uid in result]
    return data


def _load_labels(path: Path) -> list:
    data = _load_json(path)
    if isinstance(data, dict):
        return data.get("results") or []
    return data


def _summarizer(settings: Settings, enabled: bool):
    if not enabled:
        return None
    # Imported lazily so runs without summaries do not need the LLM stack configured
    from llm.summarization import LLMSummarizer
    return LLMSummarizer(model_name=settings.summary_model, api_key=settings.google_api_key)


def _report(name: str, result: IngestionResult) -> int:
    print(f"{name}: {result.ingested} ingested ({result.created} created, {result.updated} updated, "
          f"{result.skipped} skipped, {result.discarded} discarded), {len(result.errors)} errors")
    for error in result.errors:
        print(f"  - {type(error).__name__}: {error}")
    return 1 if result.errors and not result.ingested else 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run the oncology content ingestion pipeline")
    parser.add_argument("--config", type=Path, help="YAML settings file")
    parser.add_argument("--database-url", help="Overrides the configured database URL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the database schema")

    seed = subparsers.add_parser("seed-feeds", help="Load feed sources from YAML")
    seed.add_argument("--file", type=Path, help="Feed YAML file (default: bundled feeds.yaml)")

    news = subparsers.add_parser("news", help="Ingest news from the active RSS feeds")
    news.add_argument("--no-summaries", action="store_true", help="Skip LLM summaries")
    news.add_argument("--max-items", type=int, help="Items to take per feed")

    trials = subparsers.add_parser("trials", help="Ingest clinical trials")
    trials_source = trials.add_mutually_exclusive_group(required=True)
    trials_source.add_argument("--file", type=Path, help="JSON list of registry entries")
    trials_source.add_argument("--condition", help="Search ClinicalTrials.gov for a condition")

    approvals = subparsers.add_parser("approvals", help="Ingest FDA approvals")
    approvals_source = approvals.add_mutually_exclusive_group(required=True)
    approvals_source.add_argument("--file", type=Path, help="JSON list of OpenFDA labels")
    approvals_source.add_argument("--fetch", action="store_true", help="Fetch labels from OpenFDA")
    approvals.add_argument("--cancer-type", choices=CANCER_TYPES, action="append",
                           help="Cancer type(s) to fetch or to attribute file labels to")

    papers = subparsers.add_parser("papers", help="Ingest PubMed papers")
    papers_source = papers.add_mutually_exclusive_group(required=True)
    papers_source.add_argument("--file", type=Path, help="JSON esummary documents")
    papers_source.add_argument("--queries", action="store_true", help="Run the active NCBI queries")
    papers.add_argument("--query-name", help="Query name used to classify file papers")
    papers.add_argument("--no-summaries", action="store_true", help="Skip LLM summaries")

    subparsers.add_parser("repair", help="Fix Unknown Drug names and prefixed approval URLs")

    args = parser.parse_args(argv)

    settings = load_settings(args.config)
    if args.database_url:
        settings.database_url = args.database_url

    store = Store.from_url(settings.database_url)
    try:
        if args.command == "init-db":
            store.init_db()
            print(f"Initialized database at {settings.database_url}")
            return 0

        if args.command == "seed-feeds":
            count = FeedRegistry(store).seed(args.file or settings.feeds_config_path)
            print(f"Seeded {count} feed sources")
            return 0

        if args.command == "news":
            ingestion = NewsIngestion(
                store,
                summarizer=_summarizer(settings, not args.no_summaries),
                max_items_per_feed=args.max_items or settings.max_items_per_feed,
            )
            return _report("news", ingestion.run())

        if args.command == "trials":
            ingestion = TrialIngestion(store)
            if args.file:
                return _report("trials", ingestion.run(_load_trials(args.file)))
            client = ClinicalTrialsClient(timeout=settings.request_timeout)
            return _report("trials", ingestion.run_search(client, args.condition))

        if args.command == "approvals":
            ingestion = ApprovalIngestion(store)
            if args.file:
                cancer_type = args.cancer_type[0] if args.cancer_type else None
                return _report("approvals", ingestion.run(_load_labels(args.file), cancer_type))
            client = OpenFDAClient(timeout=settings.request_timeout, request_delay=settings.request_delay)
            result = ingestion.run_from_openfda(client, args.cancer_type or CANCER_TYPES, settings.openfda_limit)
            return _report("approvals", result)

        if args.command == "papers":
            ingestion = PaperIngestion(store, summarizer=_summarizer(settings, not args.no_summaries))
            if args.file:
                return _report("papers", ingestion.run(_load_papers(args.file), args.query_name))
            client = NCBIClient(api_key=settings.ncbi_api_key, timeout=settings.request_timeout)
            return _report("papers", ingestion.run_queries(client, max_results=settings.ncbi_max_results))

        if args.command == "repair":
            result = repair_approval_drug_names(store)
            print(f"repair: {result.fixed} fixed, {result.failed} failed, {result.urls_fixed} URLs fixed")
            return 0
    finally:
        store.dispose()

    return 0


if __name__ == "__main__":
    sys.exit(main())
