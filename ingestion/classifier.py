"""
Keyword classification of free text into cancer types and topical tags.
"""

import re
from typing import Dict, Iterable, Set

from ingestion.constants import (
    CANCER_TYPE_KEYWORDS,
    LABEL_SEARCH_TERMS,
    RELEVANCE_KEYWORDS,
    TAG_KEYWORDS,
    TREATMENT_KEYWORDS,
)


def _join(texts: Iterable[str]) -> str:
    return " ".join(t for t in texts if t).lower()


def _match_table(text: str, table: Dict[str, str]) -> Set[str]:
    text_lower = text.lower()
    return {tag for keyword, tag in table.items() if keyword in text_lower}


def classify(*texts: str, keywords: Dict[str, str] = CANCER_TYPE_KEYWORDS) -> Set[str]:
    """Get the cancer-type tags whose keywords occur in any of the texts."""
    return _match_table(_join(texts), keywords)


def is_relevant(*texts: str) -> bool:
    """Check whether the texts mention any broad cancer-related keyword."""
    text_lower = _join(texts)
    return any(keyword in text_lower for keyword in RELEVANCE_KEYWORDS)


def should_ingest(*texts: str) -> bool:
    """An item with no cancer-type tag and no relevance keyword is discarded."""
    return bool(classify(*texts)) or is_relevant(*texts)


def extract_tags(*texts: str) -> Set[str]:
    """Detect cross-cutting labels (FDA, Approval, Trial, Breakthrough)."""
    return _match_table(_join(texts), TAG_KEYWORDS)


def classify_treatments(*texts: str) -> Set[str]:
    return _match_table(_join(texts), TREATMENT_KEYWORDS)


def _contains_term(text_lower: str, term: str) -> bool:
    # Short abbreviations (all, aml, hcc, ...) only count as whole words
    if len(term) <= 4:
        return re.search(rf"\b{re.escape(term)}\b", text_lower) is not None
    return term in text_lower


def classify_label(*texts: str) -> Set[str]:
    """Cancer types for drug label text, using the broader label search terms."""
    text_lower = _join(texts)
    return {
        cancer_type
        for cancer_type, terms in LABEL_SEARCH_TERMS.items()
        if any(_contains_term(text_lower, term) for term in terms)
    }


def mentions_cancer_type(cancer_type: str, *texts: str) -> bool:
    """Check whether the texts match any label search term for one cancer type."""
    text_lower = _join(texts)
    terms = LABEL_SEARCH_TERMS.get(cancer_type, [cancer_type])
    return any(_contains_term(text_lower, term) for term in terms)
