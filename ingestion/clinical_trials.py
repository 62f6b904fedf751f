"""
Clinical trial registry records: normalization and ClinicalTrials.gov access.

Batches are usually handed in pre-fetched. Both the flat shape
(nct_id, title, conditions, ...) and the ClinicalTrials.gov v2 study shape
(protocolSection.*) are accepted.
"""

import re
import time
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

import requests

from ingestion.classifier import classify
from ingestion.constants import CLINICAL_TRIALS_API_URL, DEFAULT_TRIAL_STATUSES
from ingestion.errors import FetchError, ValidationError
from ingestion.models import TrialRecord
from util.logging_util import setup_logger

logger = setup_logger(__name__)

_DATE_FORMATS = ("%Y-%m-%d", "%Y-%m", "%Y")
_AGE_PATTERN = re.compile(r"^\s*(\d+)\s*(year|month|week|day)s?\s*$", re.IGNORECASE)


def parse_registry_date(value: Optional[str], nct_id: Optional[str] = None) -> Optional[date]:
    """Parse 2024-01-15, 2024-01 or 2024. Empty values give None.

    Raises:
        ValidationError: The value is present but not a recognised date.
    """
    if value is None or str(value).strip() == "":
        return None
    if isinstance(value, date):
        return value

    text = str(value).strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValidationError(f"Malformed date {text!r}", record_id=nct_id)


def parse_age(value: Optional[str]) -> Optional[int]:
    """Convert an eligibility age like '18 Years' to whole years."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    match = _AGE_PATTERN.match(str(value))
    if match is None:
        return None
    amount, unit = int(match.group(1)), match.group(2).lower()
    if unit == "year":
        return amount
    # Anything expressed in months/weeks/days is under a year or two
    return amount // 12 if unit == "month" else 0


def normalize_status(status: Optional[str]) -> Optional[str]:
    """'Not yet recruiting' -> NOT_YET_RECRUITING."""
    if not status:
        return None
    cleaned = re.sub(r"[^A-Za-z0-9]+", "_", status.strip()).strip("_")
    return cleaned.upper() or None


def _flatten_v2_study(study: dict) -> dict:
    protocol = study.get("protocolSection") or {}
    identification = protocol.get("identificationModule") or {}
    status_module = protocol.get("statusModule") or {}
    conditions_module = protocol.get("conditionsModule") or {}
    eligibility = protocol.get("eligibilityModule") or {}
    description = protocol.get("descriptionModule") or {}
    design = protocol.get("designModule") or {}
    arms = protocol.get("armsInterventionsModule") or {}
    contacts = protocol.get("contactsLocationsModule") or {}

    interventions = arms.get("interventions") or []
    return {
        "nct_id": identification.get("nctId"),
        "title": identification.get("briefTitle") or identification.get("officialTitle"),
        "description": description.get("briefSummary"),
        "conditions": conditions_module.get("conditions"),
        "keywords": conditions_module.get("keywords"),
        "eligibility_criteria": eligibility.get("eligibilityCriteria"),
        "minimum_age": eligibility.get("minimumAge"),
        "maximum_age": eligibility.get("maximumAge"),
        "locations": contacts.get("locations"),
        "status": status_module.get("overallStatus"),
        "start_date": (status_module.get("startDateStruct") or {}).get("date"),
        "completion_date": (status_module.get("completionDateStruct") or {}).get("date"),
        "intervention_type": interventions[0].get("type") if interventions else design.get("studyType"),
    }


def _clean_locations(locations) -> List[dict]:
    cleaned = []
    for location in locations or []:
        if not isinstance(location, dict):
            continue
        # Some exports wrap each site as {"location": {...}}
        cleaned.append(location.get("location", location))
    return cleaned


def _as_list(value) -> List[str]:
    # Single-valued fields sometimes arrive as a bare string
    if isinstance(value, str):
        value = [value]
    return [str(item) for item in (value or []) if item]


def normalize_trial(raw: dict) -> TrialRecord:
    """
    Normalize one registry entry into a TrialRecord.

    Optional fields default to None/empty rather than failing the batch.

    Raises:
        ValidationError: The entry has no NCT id, or a malformed date.
    """
    raw_metadata = raw
    if "protocolSection" in raw:
        raw = _flatten_v2_study(raw)

    nct_id = raw.get("nct_id") or raw.get("nctId") or raw.get("id")
    if not nct_id:
        raise ValidationError("Trial has no NCT id", source="clinicaltrials")
    nct_id = str(nct_id).strip()

    conditions = _as_list(raw.get("conditions"))
    title = raw.get("title") or "Untitled trial"
    description = raw.get("description") or None

    return TrialRecord(
        nct_id=nct_id,
        title=title,
        description=description,
        conditions=conditions,
        eligibility_criteria=raw.get("eligibility_criteria") or None,
        locations=_clean_locations(raw.get("locations")),
        status=normalize_status(raw.get("status")),
        start_date=parse_registry_date(raw.get("start_date"), nct_id),
        completion_date=parse_registry_date(raw.get("completion_date"), nct_id),
        intervention_type=raw.get("intervention_type") or None,
        keywords=_as_list(raw.get("keywords")),
        minimum_age=parse_age(raw.get("minimum_age")),
        maximum_age=parse_age(raw.get("maximum_age")),
        cancer_types=classify(title, description or "", *conditions),
        metadata=raw_metadata,
    )


class ClinicalTrialsClient:
    """Minimal client for the ClinicalTrials.gov API v2."""

    def __init__(self, base_url: str = CLINICAL_TRIALS_API_URL, timeout: float = 30.0,
                 rate_limit_delay: float = 1.0):
        self.base_url = base_url
        self.timeout = timeout
        self.rate_limit_delay = rate_limit_delay
        self.last_request_time = 0.0

    def _rate_limit(self):
        time_since_last = time.time() - self.last_request_time
        if time_since_last < self.rate_limit_delay:
            time.sleep(self.rate_limit_delay - time_since_last)
        self.last_request_time = time.time()

    def search_studies(self, query_term: str, statuses: Iterable[str] = DEFAULT_TRIAL_STATUSES,
                       page_size: int = 50) -> List[Dict]:
        """
        Search studies by free-text term and overall status.

        Returns:
            Raw v2 study dictionaries, ready for normalize_trial.

        Raises:
            FetchError: The request failed or returned a non-JSON body.
        """
        self._rate_limit()
        params = {
            "format": "json",
            "pageSize": page_size,
            "query.term": query_term,
            "filter.overallStatus": "|".join(sorted(statuses)),
        }
        try:
            response = requests.get(
                self.base_url,
                params=params,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise FetchError(f"ClinicalTrials.gov search failed for {query_term!r}: {e}",
                             source="clinicaltrials") from e

        studies = data.get("studies") or []
        logger.info(f"Found {len(studies)} studies for {query_term!r}")
        return studies
