"""
Repair of stored FDA approvals.

Approvals ingested before the drug name fallback chain existed were stored as
"Unknown Drug", and some URLs were built with the application type prefix
still attached. Both passes are idempotent.
"""

from ingestion.constants import FDA_APPLICATION_URL, UNKNOWN_DRUG
from ingestion.errors import StoreError, StoreUnavailableError
from ingestion.fda_approvals import clean_application_number, extract_drug_name
from ingestion.models import RecordType, RepairResult, SourceType
from ingestion.store import Store
from ingestion.upsert import UpsertEngine
from util.logging_util import setup_logger

logger = setup_logger(__name__)


def _fix_drug_names(store: Store, upserter: UpsertEngine, result: RepairResult):
    approvals = [
        approval for approval in store.find_many(RecordType.FDA_APPROVAL, drug_name=UNKNOWN_DRUG)
        if approval.metadata
    ]
    logger.info(f"Found {len(approvals)} approvals with \"{UNKNOWN_DRUG}\"")

    for approval in approvals:
        label = approval.application_number or approval.id
        try:
            drug_name = extract_drug_name(approval.metadata)
        except (AttributeError, TypeError) as e:
            logger.error(f"Malformed metadata on approval {label}: {e}")
            result.failed += 1
            continue
        if not drug_name or drug_name == UNKNOWN_DRUG:
            logger.warning(f"Could not extract drug name for approval {label}")
            result.failed += 1
            continue

        approval.drug_name = drug_name
        try:
            upserter.upsert(approval, metadata={"repair": "drug_name", "previous": UNKNOWN_DRUG})
        except StoreUnavailableError:
            raise
        except StoreError as e:
            logger.error(f"Error fixing approval {label}: {e}")
            result.failed += 1
            continue
        logger.info(f"Fixed approval {label}: {drug_name}")
        result.fixed += 1


def _fix_urls(store: Store, upserter: UpsertEngine, result: RepairResult):
    for approval in store.find_many(RecordType.FDA_APPROVAL):
        if not approval.url or not approval.application_number:
            continue
        cleaned = clean_application_number(approval.application_number)
        if not cleaned or cleaned == approval.application_number:
            continue
        new_url = FDA_APPLICATION_URL.format(application_number=cleaned)
        if new_url == approval.url:
            continue

        previous_url = approval.url
        approval.url = new_url
        try:
            upserter.upsert(approval, metadata={"repair": "url", "previous": previous_url})
        except StoreUnavailableError:
            raise
        except StoreError as e:
            logger.error(f"Error fixing URL of approval {approval.application_number}: {e}")
            continue
        result.urls_fixed += 1


def repair_approval_drug_names(store: Store) -> RepairResult:
    """
    Re-derive "Unknown Drug" names from the stored label metadata and fix
    approval URLs that still carry an application type prefix.

    Records whose metadata yields no name are counted as failed and left alone.

    Raises:
        StoreUnavailableError: The store could not be reached.
    """
    logger.info("Starting to fix FDA drug names from metadata")
    upserter = UpsertEngine(store, SourceType.REPAIR)
    result = RepairResult()

    _fix_drug_names(store, upserter, result)
    logger.info(f"Fixed {result.fixed} approvals, {result.failed} could not be fixed")

    _fix_urls(store, upserter, result)
    logger.info(f"Fixed {result.urls_fixed} URLs")
    return result
