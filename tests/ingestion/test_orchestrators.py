"""Tests for the ingestion orchestrators."""

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError

from ingestion.errors import FetchError, StoreUnavailableError, UpstreamError, ValidationError
from ingestion.feeds import FeedRegistry
from ingestion.models import FeedKind, FeedSource, RecordType, SourceType, UpsertAction
from ingestion.orchestrators import (
    ApprovalIngestion,
    NewsIngestion,
    PaperIngestion,
    TrialIngestion,
    run_approval_ingestion,
    run_news_ingestion,
    run_paper_ingestion,
    run_trial_ingestion,
)
from ingestion.store import Store

FEED_A = "https://a.example.com/rss"
FEED_B = "https://b.example.com/rss"


@pytest.fixture
def store():
    """Create a store over a temporary in-memory database."""
    test_store = Store(create_engine("sqlite:///:memory:"))
    test_store.init_db()
    yield test_store
    test_store.dispose()


@pytest.fixture
def feeds(store):
    registry = FeedRegistry(store)
    registry.add(FeedSource(name="Feed A", address=FEED_A))
    registry.add(FeedSource(name="Feed B", address=FEED_B))
    return registry


def _feed(*entries, title="Oncology News"):
    return {"status": 200, "feed": {"title": title}, "entries": list(entries)}


def _entry(n, title="Lung cancer drug shows promise", summary="A new therapy for lung cancer patients."):
    return {"id": f"guid-{n}", "title": title, "summary": summary, "link": f"https://news.example.com/{n}"}


class FakeSummarizer:
    """Summarizer double that records its calls."""

    def __init__(self, fail_on=None):
        self.calls = []
        self.fail_on = fail_on

    def summarize(self, text):
        self.calls.append(text)
        if self.fail_on and self.fail_on in text:
            raise UpstreamError("model unavailable")
        return f"Summary of: {text[:20]}"

    def summarize_clinical(self, text):
        return f"Clinical summary of: {text[:20]}"


class TestNewsIngestion:
    """Tests for NewsIngestion class."""

    @patch("ingestion.rss_feed.feedparser.parse")
    def test_ingests_relevant_items(self, mock_parse, store, feeds):
        """Test that relevant items are classified, tagged and stored."""
        mock_parse.side_effect = lambda url: _feed(
            _entry(1, title="FDA approval for lung cancer drug"),
            _entry(2, title="Hospital parking update", summary="New garage opens."),
        ) if url == FEED_A else _feed()

        result = NewsIngestion(store, feeds).run()

        assert result.ingested == 1
        assert result.created == 1
        assert result.discarded == 1
        assert result.errors == []

        article = store.find_by_key(RecordType.NEWS_ARTICLE, "https://news.example.com/1")
        assert article.cancer_types == {"lung"}
        assert article.tags == {"FDA", "Approval"}
        assert article.source == "Oncology News"
        assert article.summary is None

        entries = store.get_log_entries(record_type=RecordType.NEWS_ARTICLE)
        assert len(entries) == 1
        assert entries[0].source == SourceType.RSS
        assert entries[0].metadata["feed_url"] == FEED_A

    @patch("ingestion.rss_feed.feedparser.parse")
    def test_failing_feed_does_not_stop_others(self, mock_parse, store, feeds):
        """Test that one broken feed is one error and the other feed is ingested."""
        def parse(url):
            if url == FEED_A:
                raise Exception("timeout")
            return _feed(_entry(1), _entry(2))

        mock_parse.side_effect = parse

        result = NewsIngestion(store, feeds).run()

        assert result.ingested == 2
        assert len(result.errors) == 1
        assert isinstance(result.errors[0], FetchError)
        assert result.errors[0].source == FEED_A

    @patch("ingestion.rss_feed.feedparser.parse")
    def test_item_error_does_not_stop_batch(self, mock_parse, store, feeds):
        """Test that a bad item is recorded and the next item still ingested."""
        bad = _entry(1)
        bad["published"] = "not a date"
        mock_parse.side_effect = lambda url: _feed(bad, _entry(2)) if url == FEED_A else _feed()

        result = NewsIngestion(store, feeds).run()

        assert result.ingested == 1
        assert len(result.errors) == 1
        assert isinstance(result.errors[0], ValidationError)

    @patch("ingestion.rss_feed.feedparser.parse")
    def test_rerun_updates_instead_of_duplicating(self, mock_parse, store, feeds):
        """Test that running twice over the same feed updates in place."""
        mock_parse.side_effect = lambda url: _feed(_entry(1)) if url == FEED_A else _feed()

        NewsIngestion(store, feeds).run()
        second = NewsIngestion(store, feeds).run()

        assert second.updated == 1
        assert second.created == 0
        assert store.count(RecordType.NEWS_ARTICLE) == 1
        actions = [e.action for e in store.get_log_entries(record_type=RecordType.NEWS_ARTICLE)]
        assert actions == [UpsertAction.CREATED, UpsertAction.UPDATED]

    @patch("ingestion.rss_feed.feedparser.parse")
    def test_no_refresh_skips_existing_without_summarizing(self, mock_parse, store, feeds):
        """Test that existing items are skipped before any summary is generated."""
        mock_parse.side_effect = lambda url: _feed(_entry(1)) if url == FEED_A else _feed()
        NewsIngestion(store, feeds).run()

        summarizer = FakeSummarizer()
        result = NewsIngestion(store, feeds, summarizer=summarizer, refresh_existing=False).run()

        assert result.skipped == 1
        assert result.ingested == 0
        assert summarizer.calls == []
        assert len(store.get_log_entries()) == 1

    @patch("ingestion.rss_feed.feedparser.parse")
    def test_summaries_are_stored(self, mock_parse, store, feeds):
        """Test that the summarizer output is persisted."""
        mock_parse.side_effect = lambda url: _feed(_entry(1)) if url == FEED_A else _feed()

        NewsIngestion(store, feeds, summarizer=FakeSummarizer()).run()

        article = store.find_by_key(RecordType.NEWS_ARTICLE, "https://news.example.com/1")
        assert article.summary.startswith("Summary of:")

    @patch("ingestion.rss_feed.feedparser.parse")
    def test_summarizer_failure_is_per_item(self, mock_parse, store, feeds):
        """Test that a summarization failure skips only that item."""
        mock_parse.side_effect = lambda url: _feed(
            _entry(1, summary="Breast cancer FAIL study"),
            _entry(2),
        ) if url == FEED_A else _feed()

        result = NewsIngestion(store, feeds, summarizer=FakeSummarizer(fail_on="FAIL")).run()

        assert result.ingested == 1
        assert len(result.errors) == 1
        assert isinstance(result.errors[0], UpstreamError)
        assert store.find_by_key(RecordType.NEWS_ARTICLE, "https://news.example.com/1") is None

    @patch("ingestion.rss_feed.feedparser.parse")
    def test_store_outage_aborts_run(self, mock_parse, store, feeds, monkeypatch):
        """Test that an unreachable store ends the run with a single error."""
        mock_parse.side_effect = lambda url: _feed(_entry(1), _entry(2))

        def unavailable():
            raise OperationalError("INSERT", {}, Exception("db down"))

        active = feeds.list_active()
        feeds.list_active = lambda kind=FeedKind.RSS: active
        monkeypatch.setattr(store, "session", unavailable)

        result = NewsIngestion(store, feeds).run()

        assert result.ingested == 0
        assert len(result.errors) == 1
        assert isinstance(result.errors[0], StoreUnavailableError)
        # The second feed was never fetched
        assert mock_parse.call_count == 1

    def test_no_active_feeds(self, store):
        """Test that a run with no feeds does nothing."""
        result = run_news_ingestion(store)
        assert result.ingested == 0
        assert result.errors == []


class TestTrialIngestion:
    """Tests for TrialIngestion class."""

    def test_batch_with_invalid_entry(self, store):
        """Test that a bad entry is recorded and the rest of the batch stored."""
        batch = [
            {"nct_id": "NCT1", "title": "Lung cancer study", "conditions": ["Lung Cancer"], "status": "RECRUITING"},
            {"title": "No id"},
            {"nct_id": "NCT2", "title": "Bad date", "start_date": "soon"},
            {"nct_id": "NCT3", "title": "Melanoma study", "conditions": ["Melanoma"]},
        ]

        result = run_trial_ingestion(store, batch)

        assert result.ingested == 2
        assert len(result.errors) == 2
        assert all(isinstance(e, ValidationError) for e in result.errors)
        assert store.find_by_key(RecordType.CLINICAL_TRIAL, "NCT1").cancer_types == {"lung"}

    def test_updates_existing_trial(self, store):
        """Test that a changed status is written as an update."""
        run_trial_ingestion(store, [{"nct_id": "NCT1", "title": "T", "status": "NOT_YET_RECRUITING"}])
        result = run_trial_ingestion(store, [{"nct_id": "NCT1", "title": "T", "status": "RECRUITING"}])

        assert result.updated == 1
        assert store.find_by_key(RecordType.CLINICAL_TRIAL, "NCT1").status == "RECRUITING"

    def test_empty_batch(self, store):
        result = run_trial_ingestion(store, [])
        assert result.ingested == 0
        assert result.errors == []

    def test_search_failure_is_recorded(self, store):
        """Test that a failing registry search becomes a result error."""
        client = MagicMock()
        client.search_studies.side_effect = FetchError("down", source="clinicaltrials")

        result = TrialIngestion(store).run_search(client, "lung cancer")

        assert result.ingested == 0
        assert len(result.errors) == 1


class TestApprovalIngestion:
    """Tests for ApprovalIngestion class."""

    def test_batch(self, store):
        """Test ingesting labels with and without application numbers."""
        batch = [
            {"openfda": {"application_number": ["BLA125514"], "brand_name": ["Keytruda"]},
             "indications_and_usage": ["non-small cell lung cancer"]},
            {"openfda": {"brand_name": ["Nameless"]}},
        ]

        result = run_approval_ingestion(store, batch, cancer_type="lung")

        assert result.ingested == 1
        assert len(result.errors) == 1
        approval = store.find_by_key(RecordType.FDA_APPROVAL, "BLA125514")
        assert approval.drug_name == "Keytruda"
        assert store.get_log_entries()[0].metadata == {"cancer_type": "lung", "drug_name": "Keytruda"}

    def test_fetch_failure_per_cancer_type(self, store):
        """Test that one failing cancer type does not stop the others."""
        client = MagicMock()

        def fetch(cancer_type, limit):
            if cancer_type == "lung":
                raise FetchError("down", source="openfda")
            return [{"openfda": {"application_number": ["NDA1"], "brand_name": ["Drug"]}}]

        client.fetch_labels_for_cancer_type.side_effect = fetch

        result = ApprovalIngestion(store).run_from_openfda(client, ["lung", "breast"])

        assert result.ingested == 1
        assert len(result.errors) == 1
        assert store.find_by_key(RecordType.FDA_APPROVAL, "NDA1").cancer_types == {"breast"}


class TestPaperIngestion:
    """Tests for PaperIngestion class."""

    def _paper(self, uid, abstract="Lung cancer immunotherapy results."):
        data = {"uid": uid, "title": f"Paper {uid}", "pubdate": "2024"}
        if abstract:
            data["abstract"] = abstract
        return data

    def test_batch_with_summaries(self, store):
        """Test that papers are stored with both summaries."""
        result = run_paper_ingestion(store, [self._paper("1")], summarizer=FakeSummarizer())

        assert result.ingested == 1
        paper = store.find_by_key(RecordType.RESEARCH_PAPER, "1")
        assert paper.summary_plain.startswith("Summary of:")
        assert paper.summary_clinical.startswith("Clinical summary of:")
        assert paper.cancer_types == {"lung"}
        assert paper.treatment_types == {"immunotherapy"}

    def test_papers_without_abstract_are_skipped(self, store):
        """Test that abstract-less papers are neither stored nor errors."""
        result = run_paper_ingestion(store, [self._paper("1", abstract=None), self._paper("2")])

        assert result.ingested == 1
        assert result.discarded == 1
        assert result.errors == []
        assert store.find_by_key(RecordType.RESEARCH_PAPER, "1") is None

    def test_run_queries(self, store):
        """Test iterating the active NCBI queries."""
        registry = FeedRegistry(store)
        registry.add(FeedSource(name="breast cancer", address="breast cancer[Title]", kind=FeedKind.NCBI))
        registry.add(FeedSource(name="broken", address="broken[Title]", kind=FeedKind.NCBI))

        client = MagicMock()

        def fetch_papers(query, max_results):
            if query.startswith("broken"):
                raise FetchError("NCBI down", source="pubmed")
            return [self._paper("1", abstract="Outcomes of therapy.")]

        client.fetch_papers.side_effect = fetch_papers

        result = PaperIngestion(store).run_queries(client, registry)

        assert result.ingested == 1
        assert len(result.errors) == 1
        # The query name contributes to classification
        assert store.find_by_key(RecordType.RESEARCH_PAPER, "1").cancer_types == {"breast"}
        assert store.get_log_entries()[0].metadata["query_name"] == "breast cancer"
