"""
FDA drug approvals from OpenFDA label data.
"""

import re
import time
from datetime import date
from typing import List, Optional

import requests

from ingestion.classifier import classify_label, mentions_cancer_type
from ingestion.constants import (
    APPLICATION_NUMBER_PREFIXES,
    FDA_APPLICATION_URL,
    FDA_LABEL_PDF_URL,
    LABEL_SEARCH_TERMS,
    OPENFDA_LABEL_URL,
    UNKNOWN_DRUG,
)
from ingestion.errors import FetchError, ValidationError
from ingestion.models import ApprovalRecord
from util.logging_util import setup_logger

logger = setup_logger(__name__)

_PREFIX_PATTERN = re.compile(
    r"^(" + "|".join(APPLICATION_NUMBER_PREFIXES) + r")\s*", re.IGNORECASE
)

# Approvals older than this are not ingested
RECENT_YEARS = 5

# Largest page the label endpoint serves
OPENFDA_MAX_LIMIT = 1000


def _first(value) -> Optional[str]:
    """First element of a non-empty list, or None."""
    if isinstance(value, list) and value:
        return value[0]
    return None


def _array_or_scalar(container: dict, key: str) -> Optional[str]:
    value = container.get(key)
    if isinstance(value, list):
        value = _first(value)
    if isinstance(value, str) and value:
        return value
    return None


def extract_drug_name(metadata: Optional[dict]) -> Optional[str]:
    """
    Get a display name for a drug from raw label metadata.

    Tries, in order: brand_name, openfda.brand_name, generic_name,
    openfda.generic_name. Top-level fields may be arrays or strings.
    Returns None when nothing usable is found.
    """
    if not metadata:
        return None
    openfda = metadata.get("openfda") or {}
    candidates = (
        _array_or_scalar(metadata, "brand_name"),
        _array_or_scalar(openfda, "brand_name"),
        _array_or_scalar(metadata, "generic_name"),
        _array_or_scalar(openfda, "generic_name"),
    )
    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()
    return None


def clean_application_number(application_number: Optional[str]) -> Optional[str]:
    """Strip BLA/NDA/ANDA/BL/ND prefixes: 'BLA125514' -> '125514'."""
    if not application_number:
        return None
    return _PREFIX_PATTERN.sub("", application_number)


def build_approval_url(application_number: Optional[str]) -> Optional[str]:
    """Canonical Drugs@FDA overview URL for an application number."""
    cleaned = clean_application_number(application_number)
    if not cleaned:
        return None
    return FDA_APPLICATION_URL.format(application_number=cleaned)


def parse_effective_time(value: Optional[str]) -> Optional[date]:
    """Parse an OpenFDA YYYYMMDD effective_time. Short values give None.

    Raises:
        ValidationError: Eight or more characters that are not a real date.
    """
    if not value or len(value) < 8:
        return None
    try:
        return date(int(value[0:4]), int(value[4:6]), int(value[6:8]))
    except ValueError as e:
        raise ValidationError(f"Malformed effective_time {value!r}") from e


def _extract_generic_name(label: dict) -> Optional[str]:
    return _array_or_scalar(label, "generic_name") or _array_or_scalar(label.get("openfda") or {}, "generic_name")


def _extract_company(label: dict) -> Optional[str]:
    openfda = label.get("openfda") or {}
    return _first(openfda.get("manufacturer_name")) or _first(label.get("manufacturer_name"))


def _extract_label_pdf_url(label: dict) -> Optional[str]:
    direct = _first(label.get("spl_patient_package_insert"))
    if direct:
        return direct
    openfda = label.get("openfda") or {}
    spl_id = (
        _first(label.get("spl_set_id"))
        or _first(openfda.get("spl_set_id"))
        or _first(label.get("spl_id"))
        or _first(openfda.get("spl_id"))
    )
    if spl_id:
        return FDA_LABEL_PDF_URL.format(spl_id=spl_id)
    return None


def _label_drug_name(label: dict) -> str:
    name = extract_drug_name(label)
    if name:
        return name
    product_ndc = _first(label.get("product_ndc"))
    if product_ndc:
        return product_ndc
    spl_data = _first(label.get("spl_product_data_elements"))
    if isinstance(spl_data, dict) and spl_data.get("name"):
        return spl_data["name"]

    logger.warning(f"Could not extract drug name from label with keys {sorted(label.keys())[:10]}")
    return UNKNOWN_DRUG


def _texts(value) -> List[str]:
    """Label text fields as a list, whether sent as an array or a single string."""
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str) and item]
    return []


def _indication_text(label: dict) -> str:
    return " ".join(_texts(label.get("indications_and_usage")) + _texts(label.get("purpose")))


def normalize_approval(label: dict, cancer_type: Optional[str] = None) -> ApprovalRecord:
    """
    Normalize an OpenFDA label into an ApprovalRecord.

    Args:
        label: Raw label JSON, kept verbatim as metadata.
        cancer_type: The cancer type the label was searched for, used when
            the label text names none.

    Raises:
        ValidationError: No application number, or a malformed date.
    """
    openfda = label.get("openfda") or {}
    application_number = _first(label.get("application_number")) or _first(openfda.get("application_number"))
    if isinstance(label.get("application_number"), str):
        application_number = label["application_number"]
    if not application_number:
        raise ValidationError("FDA label has no application number", source="openfda")

    cancer_types = classify_label(
        _indication_text(label),
        " ".join(_texts(label.get("brand_name"))),
        " ".join(_texts(label.get("generic_name"))),
    )
    if not cancer_types and cancer_type:
        cancer_types = {cancer_type}

    return ApprovalRecord(
        application_number=application_number,
        drug_name=_label_drug_name(label),
        generic_name=_extract_generic_name(label),
        company=_extract_company(label),
        approval_date=parse_effective_time(label.get("effective_time")),
        cancer_types=cancer_types,
        indication=_array_or_scalar(label, "indications_and_usage") or _array_or_scalar(label, "purpose"),
        url=build_approval_url(application_number),
        label_pdf_url=_extract_label_pdf_url(label),
        metadata=label,
    )


def _is_recent(label: dict, today: date) -> bool:
    try:
        label_date = parse_effective_time(label.get("effective_time"))
    except ValidationError:
        return False
    if label_date is None:
        return False
    try:
        cutoff = today.replace(year=today.year - RECENT_YEARS)
    except ValueError:
        # 29 February
        cutoff = today.replace(year=today.year - RECENT_YEARS, day=28)
    return label_date >= cutoff


class OpenFDAClient:
    """Fetches drug labels from the OpenFDA label endpoint."""

    def __init__(self, base_url: str = OPENFDA_LABEL_URL, timeout: float = 30.0, request_delay: float = 0.5):
        self.base_url = base_url
        self.timeout = timeout
        self.request_delay = request_delay

    def _search_strategies(self, cancer_type: str) -> List[str]:
        term = LABEL_SEARCH_TERMS.get(cancer_type, [cancer_type])[0]
        return [
            f'indications_and_usage:"{term}"',
            f"indications_and_usage:{term}",
            f'purpose:"{term}"',
            f'generic_name:"{term}"',
        ]

    def fetch_labels_for_cancer_type(self, cancer_type: str, limit: int = 100) -> List[dict]:
        """
        Fetch recent labels whose indication mentions the cancer type.

        Search strategies are tried in order until one yields matching labels.

        Raises:
            FetchError: Every strategy failed at the transport level.
        """
        today = date.today()
        failures = 0
        strategies = self._search_strategies(cancer_type)

        for search_query in strategies:
            params = {"search": search_query, "limit": str(min(limit, OPENFDA_MAX_LIMIT)), "skip": "0"}
            logger.info(f"Querying OpenFDA for {cancer_type}: {search_query}")
            try:
                response = requests.get(
                    self.base_url,
                    params=params,
                    headers={"Accept": "application/json"},
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                logger.warning(f"Error with search strategy {search_query!r}: {e}")
                failures += 1
                continue

            if response.status_code == 404:
                # OpenFDA answers 404 when nothing matches
                continue
            if not response.ok:
                logger.warning(f"OpenFDA returned {response.status_code} for query {search_query!r}")
                failures += 1
                continue

            data = response.json()
            if data.get("error"):
                logger.warning(f"OpenFDA error for {cancer_type}: {data['error'].get('message')}")
                continue

            results = [
                label for label in data.get("results") or []
                if _is_recent(label, today) and mentions_cancer_type(cancer_type, _indication_text(label))
            ]
            if results:
                logger.info(f"Found {len(results)} FDA approvals for {cancer_type} using query: {search_query}")
                return results[:limit]

            if self.request_delay:
                time.sleep(self.request_delay)

        if failures == len(strategies):
            raise FetchError(f"All OpenFDA search strategies failed for {cancer_type}", source="openfda")

        logger.info(f"No FDA approvals found for {cancer_type} after trying all search strategies")
        return []
