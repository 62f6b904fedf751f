"""
Research papers from PubMed via the NCBI E-utilities.
"""

import re
import time
from datetime import date
from typing import List, Optional

import requests

from ingestion.classifier import classify, classify_treatments
from ingestion.constants import (
    NCBI_BASE_URL,
    NCBI_EMAIL,
    NCBI_SUMMARY_BATCH_SIZE,
    NCBI_TOOL,
    PAPER_CANCER_TYPE_KEYWORDS,
    PUBMED_URL,
)
from ingestion.errors import FetchError, ValidationError
from ingestion.models import PaperRecord
from util.logging_util import setup_logger

logger = setup_logger(__name__)

_FULL_DATE = re.compile(r"(\d{4})[-\s/](\d{1,2})[-\s/](\d{1,2})")
_YEAR_MONTH = re.compile(r"(\d{4})[-\s/](\d{1,2})\b")
_YEAR_MONTH_NAME = re.compile(r"(\d{4})\s+([A-Za-z]{3})")
_YEAR = re.compile(r"(\d{4})")

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}


def parse_pub_date(value: Optional[str]) -> Optional[date]:
    """Parse partial PubMed dates: '2024 Jan 15', '2024-01-15', '2024 Jan', '2024'.

    Missing month/day default to the first. Unparseable values give None.
    """
    if not value:
        return None
    text = str(value).strip()

    year, month, day = None, 1, 1
    match = _FULL_DATE.search(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
    else:
        match = _YEAR_MONTH.search(text)
        if match:
            year, month = int(match.group(1)), int(match.group(2))
        else:
            match = _YEAR_MONTH_NAME.search(text)
            if match and match.group(2).lower() in _MONTHS:
                year, month = int(match.group(1)), _MONTHS[match.group(2).lower()]
                day_match = re.search(r"[A-Za-z]{3}\s+(\d{1,2})\b", text)
                if day_match:
                    day = int(day_match.group(1))
            else:
                match = _YEAR.search(text)
                if match:
                    year = int(match.group(1))

    if year is None:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        logger.debug(f"Ignoring invalid publication date {text!r}")
        return None


def _text(value) -> str:
    """Strings pass through, lists are joined with spaces."""
    if isinstance(value, list):
        return " ".join(str(v) for v in value if v)
    return str(value) if value else ""


def _extract_authors(raw_authors) -> List[str]:
    authors = []
    for author in raw_authors or []:
        if isinstance(author, str):
            authors.append(author)
        elif isinstance(author, dict):
            if author.get("name"):
                authors.append(author["name"])
                continue
            name = " ".join(p for p in (author.get("lastname"), author.get("firstname"), author.get("initials")) if p)
            if name:
                authors.append(name)
    return authors


def _extract_keywords(raw_keywords) -> List[str]:
    if isinstance(raw_keywords, list):
        return [k for k in raw_keywords if k and isinstance(k, str)]
    if isinstance(raw_keywords, str) and raw_keywords:
        return [raw_keywords]
    return []


def parse_paper_summary(paper_data: dict, query_name: Optional[str] = None) -> Optional[PaperRecord]:
    """
    Parse one esummary document into a PaperRecord.

    Args:
        paper_data: The esummary document for one uid.
        query_name: Name of the query that found the paper, used as extra
            classification text.

    Returns:
        The paper, or None when it has no usable abstract.

    Raises:
        ValidationError: The document has no PubMed id.
    """
    pubmed_id = paper_data.get("uid") or paper_data.get("pubmed_id") or paper_data.get("pubmedId")
    if not pubmed_id:
        raise ValidationError("Paper has no PubMed id", source="pubmed")
    pubmed_id = str(pubmed_id)

    abstract = _text(paper_data.get("abstracttext") or paper_data.get("abstract")).strip()
    if not abstract or "no abstract available" in abstract.lower():
        return None

    title_value = paper_data.get("title")
    title = (title_value[0] if isinstance(title_value, list) and title_value else _text(title_value)).strip()
    journal_value = paper_data.get("source")
    journal = journal_value[0] if isinstance(journal_value, list) and journal_value else journal_value
    journal = (journal or paper_data.get("fulljournalname") or "").strip()

    keywords = _extract_keywords(paper_data.get("keywords"))
    keyword_text = " ".join(keywords)

    return PaperRecord(
        pubmed_id=pubmed_id,
        title=title or "Untitled",
        abstract=abstract,
        authors=_extract_authors(paper_data.get("authors")),
        journal=journal or None,
        publication_date=parse_pub_date(paper_data.get("pubdate")),
        cancer_types=classify(title, abstract, keyword_text, query_name or "", keywords=PAPER_CANCER_TYPE_KEYWORDS),
        treatment_types=classify_treatments(title, abstract, keyword_text),
        keywords=keywords,
        full_text_url=PUBMED_URL.format(pubmed_id=pubmed_id),
        metadata=paper_data,
    )


class NCBIClient:
    """E-utilities client for PubMed search (esearch) and summaries (esummary)."""

    def __init__(self, api_key: Optional[str] = None, base_url: str = NCBI_BASE_URL,
                 timeout: float = 30.0, request_delay: float = 0.1):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.request_delay = request_delay

    def _query(self, utility: str, params: dict) -> dict:
        """
        Call one E-utility and return its JSON body.

        Raises:
            FetchError: Transport failure, non-2xx status or an NCBI error body.
        """
        params = {k: v for k, v in params.items() if v}
        params.update({"tool": NCBI_TOOL, "email": NCBI_EMAIL, "retmode": "json"})
        if self.api_key:
            params["api_key"] = self.api_key

        if self.request_delay:
            time.sleep(self.request_delay)

        try:
            response = requests.get(
                f"{self.base_url}/{utility}.fcgi",
                params=params,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise FetchError(f"NCBI {utility} request failed: {e}", source="pubmed") from e

        if response.status_code == 429:
            raise FetchError("NCBI rate limit exceeded", source="pubmed")
        if not response.ok:
            raise FetchError(f"NCBI API error: {response.status_code} - {response.text[:200]}", source="pubmed")

        try:
            data = response.json()
        except ValueError as e:
            raise FetchError(f"NCBI {utility} returned a non-JSON body", source="pubmed") from e
        if isinstance(data, dict) and data.get("error"):
            raise FetchError(f"NCBI error: {data['error']}", source="pubmed")
        return data

    def search(self, query: str, max_results: int = 1000) -> List[str]:
        """Get PubMed ids matching a query, at most max_results of them."""
        data = self._query("esearch", {
            "db": "pubmed",
            "term": query,
            "retmax": str(min(max_results, 10000)),
            "retstart": "0",
        })
        result = data.get("esearchresult", data)
        return list(result.get("idlist") or [])[:max_results]

    def fetch_summaries(self, ids: List[str]) -> List[dict]:
        """Get esummary documents for the ids, in batches."""
        papers = []
        for start in range(0, len(ids), NCBI_SUMMARY_BATCH_SIZE):
            batch = ids[start:start + NCBI_SUMMARY_BATCH_SIZE]
            data = self._query("esummary", {"db": "pubmed", "id": ",".join(batch)})
            result = data.get("result", data)
            for uid in result.get("uids") or []:
                paper_data = result.get(uid)
                if paper_data:
                    papers.append({"uid": uid, **paper_data})
        return papers

    def fetch_papers(self, query: str, max_results: int = 1000) -> List[dict]:
        """Search and fetch summaries in one go."""
        ids = self.search(query, max_results)
        logger.info(f"Found {len(ids)} papers for query: {query}")
        if not ids:
            return []
        return self.fetch_summaries(ids)
