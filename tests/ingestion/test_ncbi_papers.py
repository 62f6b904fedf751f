"""Tests for PubMed paper parsing and NCBI access."""

from datetime import date
from unittest.mock import MagicMock, patch

import pytest

from ingestion.errors import FetchError, ValidationError
from ingestion.ncbi_papers import NCBIClient, parse_paper_summary, parse_pub_date


@pytest.fixture
def paper_data():
    """An esummary document for one paper."""
    return {
        "uid": "38000001",
        "title": "Immunotherapy outcomes in gastric adenocarcinoma",
        "abstracttext": ["Background: we studied", "checkpoint inhibitors."],
        "authors": [{"name": "Smith J"}, {"lastname": "Doe", "firstname": "Jane"}, "Brown B"],
        "source": "J Clin Oncol",
        "pubdate": "2024 Jan 15",
        "keywords": ["PD-1", None, "chemotherapy"],
    }


class TestParsePubDate:
    """Tests for parse_pub_date function."""

    def test_formats(self):
        assert parse_pub_date("2024 Jan 15") == date(2024, 1, 15)
        assert parse_pub_date("2024-01-15") == date(2024, 1, 15)
        assert parse_pub_date("2024 Mar") == date(2024, 3, 1)
        assert parse_pub_date("2024") == date(2024, 1, 1)

    def test_unparseable(self):
        assert parse_pub_date("") is None
        assert parse_pub_date(None) is None
        assert parse_pub_date("Spring") is None


class TestParsePaperSummary:
    """Tests for parse_paper_summary function."""

    def test_full_document(self, paper_data):
        """Test parsing a complete esummary document."""
        paper = parse_paper_summary(paper_data, query_name="stomach cancer immunotherapy")

        assert paper.pubmed_id == "38000001"
        assert paper.abstract == "Background: we studied checkpoint inhibitors."
        assert paper.authors == ["Smith J", "Doe Jane", "Brown B"]
        assert paper.journal == "J Clin Oncol"
        assert paper.publication_date == date(2024, 1, 15)
        assert paper.keywords == ["PD-1", "chemotherapy"]
        assert paper.cancer_types == {"stomach"}
        assert paper.treatment_types == {"immunotherapy", "chemotherapy"}
        assert paper.full_text_url == "https://www.ncbi.nlm.nih.gov/pubmed/38000001"
        assert paper.metadata is paper_data

    def test_query_name_adds_cancer_type(self, paper_data):
        """Test that the query name contributes to classification."""
        paper = parse_paper_summary(paper_data, query_name="breast cancer immunotherapy")
        assert paper.cancer_types == {"stomach", "breast"}

    def test_no_abstract_returns_none(self, paper_data):
        """Test that papers without an abstract are skipped."""
        del paper_data["abstracttext"]
        assert parse_paper_summary(paper_data) is None

        paper_data["abstract"] = "No abstract available."
        assert parse_paper_summary(paper_data) is None

    def test_missing_id_raises(self, paper_data):
        """Test that documents without an id are rejected."""
        del paper_data["uid"]
        with pytest.raises(ValidationError):
            parse_paper_summary(paper_data)


class TestNCBIClient:
    """Tests for NCBIClient class."""

    def _response(self, data, status_code=200):
        response = MagicMock()
        response.status_code = status_code
        response.ok = status_code < 400
        response.json.return_value = data
        response.text = ""
        return response

    @patch("ingestion.ncbi_papers.requests.get")
    def test_search(self, mock_get):
        """Test that search returns the id list and sends the api key."""
        mock_get.return_value = self._response({"esearchresult": {"idlist": ["1", "2", "3"]}})

        ids = NCBIClient(api_key="key", request_delay=0).search("lung cancer", max_results=2)

        assert ids == ["1", "2"]
        params = mock_get.call_args.kwargs["params"]
        assert params["api_key"] == "key"
        assert params["term"] == "lung cancer"
        assert params["retmode"] == "json"

    @patch("ingestion.ncbi_papers.requests.get")
    def test_fetch_summaries_batches(self, mock_get):
        """Test that ids are fetched in batches of 200."""
        ids = [str(i) for i in range(250)]

        def respond(url, params, headers, timeout):
            batch = params["id"].split(",")
            return self._response({"result": {"uids": batch, **{uid: {"title": uid} for uid in batch}}})

        mock_get.side_effect = respond

        papers = NCBIClient(request_delay=0).fetch_summaries(ids)

        assert mock_get.call_count == 2
        assert len(papers) == 250
        assert papers[0] == {"uid": "0", "title": "0"}

    @patch("ingestion.ncbi_papers.requests.get")
    def test_rate_limit_raises(self, mock_get):
        """Test that a 429 becomes FetchError."""
        mock_get.return_value = self._response({}, status_code=429)
        with pytest.raises(FetchError):
            NCBIClient(request_delay=0).search("lung cancer")

    @patch("ingestion.ncbi_papers.requests.get")
    def test_error_body_raises(self, mock_get):
        """Test that an NCBI error message becomes FetchError."""
        mock_get.return_value = self._response({"error": "API key invalid"})
        with pytest.raises(FetchError):
            NCBIClient(request_delay=0).search("lung cancer")
