"""
Ingestion runs: fetch, normalize, classify, enrich and persist each source.

Every run returns an IngestionResult. Feed- and item-level failures are
collected into result.errors and the run carries on; only a store outage stops
a run early, and it too ends up as a single entry in result.errors.
"""

from typing import Iterable, List, Optional

from ingestion.classifier import classify, extract_tags, should_ingest
from ingestion.clinical_trials import ClinicalTrialsClient, normalize_trial
from ingestion.constants import CANCER_TYPES, DEFAULT_MAX_ITEMS_PER_FEED, DEFAULT_TRIAL_STATUSES
from ingestion.errors import StoreUnavailableError
from ingestion.fda_approvals import OpenFDAClient, normalize_approval
from ingestion.feeds import FeedRegistry
from ingestion.models import FeedKind, FeedSource, IngestionResult, SourceType
from ingestion.ncbi_papers import NCBIClient, parse_paper_summary
from ingestion.rss_feed import fetch_feed, item_text, to_news_item
from ingestion.store import Store, natural_key_of, record_type_of
from ingestion.upsert import UpsertEngine
from util.logging_util import log_ingestion_result, setup_logger

logger = setup_logger(__name__)


class BaseIngestion:
    """Shared run bookkeeping for the per-source orchestrators."""

    source: SourceType

    def __init__(self, store: Store, summarizer=None, refresh_existing: bool = True):
        """
        Args:
            store: Where records and audit entries are written.
            summarizer: Optional object with summarize(text) and
                summarize_clinical(text). No summaries are generated without one.
            refresh_existing: When False, records that already exist are
                skipped instead of updated.
        """
        self.store = store
        self.summarizer = summarizer
        self.refresh_existing = refresh_existing
        self.upserter = UpsertEngine(store, self.source)

    def _record_error(self, result: IngestionResult, error: Exception, context: str):
        logger.error(f"Error ingesting {context}: {error}")
        result.errors.append(error)

    def _already_stored(self, record) -> bool:
        """Whether a record would be skipped anyway, so enrichment can be avoided."""
        if self.refresh_existing:
            return False
        natural_key = natural_key_of(record)
        if natural_key is None:
            return False
        return self.store.find_by_key(record_type_of(record), natural_key) is not None

    def _persist(self, record, result: IngestionResult, metadata: Optional[dict] = None):
        action = self.upserter.upsert(record, metadata=metadata, update_existing=self.refresh_existing)
        result.record(action)
        return action

    def _finish(self, result: IngestionResult) -> IngestionResult:
        log_ingestion_result(logger, self.source.value, result)
        return result

    def _abort(self, result: IngestionResult, error: StoreUnavailableError) -> IngestionResult:
        logger.error(f"Store unavailable, aborting {self.source.value} ingestion: {error}")
        result.errors.append(error)
        return self._finish(result)


class NewsIngestion(BaseIngestion):
    """Ingests news articles from the active RSS feeds."""

    source = SourceType.RSS

    def __init__(self, store: Store, feeds: Optional[FeedRegistry] = None, summarizer=None,
                 max_items_per_feed: int = DEFAULT_MAX_ITEMS_PER_FEED, refresh_existing: bool = True):
        super().__init__(store, summarizer=summarizer, refresh_existing=refresh_existing)
        self.feeds = feeds or FeedRegistry(store)
        self.max_items_per_feed = max_items_per_feed

    def run(self) -> IngestionResult:
        result = IngestionResult()
        try:
            feeds = self.feeds.list_active(FeedKind.RSS)
            if not feeds:
                logger.warning("No active RSS feeds found")
            for feed in feeds:
                self._ingest_feed(feed, result)
        except StoreUnavailableError as e:
            return self._abort(result, e)
        return self._finish(result)

    def _ingest_feed(self, feed: FeedSource, result: IngestionResult):
        try:
            parsed = fetch_feed(feed, max_items=self.max_items_per_feed)
        except StoreUnavailableError:
            raise
        except Exception as e:
            self._record_error(result, e, f"RSS feed {feed.address}")
            return

        for item in parsed.items:
            try:
                text = item_text(item)
                if not should_ingest(text):
                    logger.debug(f"Discarding non-cancer item: {item.title[:50]}")
                    result.discarded += 1
                    continue

                news_item = to_news_item(item, feed, parsed.title)
                news_item.cancer_types = classify(text)
                news_item.tags = extract_tags(text)

                if self._already_stored(news_item):
                    result.skipped += 1
                    continue

                if self.summarizer is not None and news_item.content:
                    news_item.summary = self.summarizer.summarize(news_item.content)

                self._persist(news_item, result, metadata={
                    "feed_url": feed.address,
                    "feed_id": feed.id,
                    "feed_name": feed.name,
                })
            except StoreUnavailableError:
                raise
            except Exception as e:
                self._record_error(result, e, f"news item {item.link or item.title!r}")


class TrialIngestion(BaseIngestion):
    """Ingests clinical trial registry entries."""

    source = SourceType.CLINICAL_TRIALS

    def run(self, batch: Iterable[dict]) -> IngestionResult:
        result = IngestionResult()
        try:
            self._ingest_batch(batch, result)
        except StoreUnavailableError as e:
            return self._abort(result, e)
        return self._finish(result)

    def _ingest_batch(self, batch: Iterable[dict], result: IngestionResult, metadata: Optional[dict] = None):
        for raw in batch or []:
            try:
                trial = normalize_trial(raw)
                self._persist(trial, result, metadata=metadata)
            except StoreUnavailableError:
                raise
            except Exception as e:
                self._record_error(result, e, "clinical trial")

    def run_search(self, client: ClinicalTrialsClient, condition: str,
                   statuses: Iterable[str] = DEFAULT_TRIAL_STATUSES) -> IngestionResult:
        """Fetch studies for a condition from the registry, then ingest them."""
        result = IngestionResult()
        try:
            studies = client.search_studies(condition, statuses)
        except Exception as e:
            self._record_error(result, e, f"trial search {condition!r}")
            return self._finish(result)

        try:
            self._ingest_batch(studies, result, metadata={"condition": condition})
        except StoreUnavailableError as e:
            return self._abort(result, e)
        return self._finish(result)


class ApprovalIngestion(BaseIngestion):
    """Ingests FDA drug approvals from OpenFDA label documents."""

    source = SourceType.OPENFDA

    def run(self, batch: Iterable[dict], cancer_type: Optional[str] = None) -> IngestionResult:
        result = IngestionResult()
        try:
            self._ingest_batch(batch, cancer_type, result)
        except StoreUnavailableError as e:
            return self._abort(result, e)
        return self._finish(result)

    def _ingest_batch(self, batch: Iterable[dict], cancer_type: Optional[str], result: IngestionResult):
        for label in batch or []:
            try:
                approval = normalize_approval(label, cancer_type)
                self._persist(approval, result, metadata={
                    "cancer_type": cancer_type,
                    "drug_name": approval.drug_name,
                })
            except StoreUnavailableError:
                raise
            except Exception as e:
                self._record_error(result, e, f"FDA approval for {cancer_type or 'unspecified cancer type'}")

    def run_from_openfda(self, client: OpenFDAClient, cancer_types: Iterable[str] = CANCER_TYPES,
                         limit: int = 100) -> IngestionResult:
        """Fetch labels for each cancer type and ingest them."""
        result = IngestionResult()
        try:
            for cancer_type in cancer_types:
                try:
                    labels = client.fetch_labels_for_cancer_type(cancer_type, limit)
                except Exception as e:
                    self._record_error(result, e, f"OpenFDA labels for {cancer_type}")
                    continue
                self._ingest_batch(labels, cancer_type, result)
        except StoreUnavailableError as e:
            return self._abort(result, e)
        return self._finish(result)


class PaperIngestion(BaseIngestion):
    """Ingests PubMed papers. Papers without an abstract are left out."""

    source = SourceType.PUBMED

    def run(self, batch: Iterable[dict], query_name: Optional[str] = None) -> IngestionResult:
        result = IngestionResult()
        try:
            self._ingest_batch(batch, query_name, result)
        except StoreUnavailableError as e:
            return self._abort(result, e)
        return self._finish(result)

    def _ingest_batch(self, batch: Iterable[dict], query_name: Optional[str], result: IngestionResult,
                      query_id: Optional[int] = None):
        for paper_data in batch or []:
            try:
                paper = parse_paper_summary(paper_data, query_name=query_name)
                if paper is None:
                    logger.info(f"Skipping paper {paper_data.get('uid', 'unknown')}: no abstract")
                    result.discarded += 1
                    continue

                if self._already_stored(paper):
                    result.skipped += 1
                    continue

                if self.summarizer is not None:
                    paper.summary_plain = self.summarizer.summarize(paper.abstract)
                    paper.summary_clinical = self.summarizer.summarize_clinical(paper.abstract)

                self._persist(paper, result, metadata={"query_id": query_id, "query_name": query_name})
            except StoreUnavailableError:
                raise
            except Exception as e:
                self._record_error(result, e, "research paper")

    def run_queries(self, client: NCBIClient, registry: Optional[FeedRegistry] = None,
                    max_results: int = 1000) -> IngestionResult:
        """Run every active NCBI query and ingest what it finds."""
        registry = registry or FeedRegistry(self.store)
        result = IngestionResult()
        try:
            queries = registry.list_active(FeedKind.NCBI)
            if not queries:
                logger.warning("No active NCBI queries found")
            for query in queries:
                logger.info(f"Processing query: {query.name or query.address}")
                try:
                    papers = client.fetch_papers(query.address, max_results)
                except Exception as e:
                    self._record_error(result, e, f"NCBI query {query.name or query.address}")
                    continue
                self._ingest_batch(papers, query.name, result, query_id=query.id)
        except StoreUnavailableError as e:
            return self._abort(result, e)
        return self._finish(result)


def run_news_ingestion(store: Store, summarizer=None,
                       max_items_per_feed: int = DEFAULT_MAX_ITEMS_PER_FEED) -> IngestionResult:
    return NewsIngestion(store, summarizer=summarizer, max_items_per_feed=max_items_per_feed).run()


def run_trial_ingestion(store: Store, batch: List[dict]) -> IngestionResult:
    return TrialIngestion(store).run(batch)


def run_approval_ingestion(store: Store, batch: List[dict], cancer_type: Optional[str] = None) -> IngestionResult:
    return ApprovalIngestion(store).run(batch, cancer_type)


def run_paper_ingestion(store: Store, batch: List[dict], summarizer=None,
                        query_name: Optional[str] = None) -> IngestionResult:
    return PaperIngestion(store, summarizer=summarizer).run(batch, query_name)
