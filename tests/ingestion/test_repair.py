"""Tests for the FDA approval repair utility."""

import pytest
from sqlalchemy import create_engine

from ingestion.constants import FDA_APPLICATION_URL, UNKNOWN_DRUG
from ingestion.models import ApprovalRecord, RecordType, SourceType, UpsertAction
from ingestion.repair import repair_approval_drug_names
from ingestion.store import Store
from ingestion.upsert import UpsertEngine


@pytest.fixture
def store():
    """Create a store over a temporary in-memory database."""
    test_store = Store(create_engine("sqlite:///:memory:"))
    test_store.init_db()
    yield test_store
    test_store.dispose()


def _add_approval(store, application_number, drug_name=UNKNOWN_DRUG, url=None, metadata=None):
    record = ApprovalRecord(
        application_number=application_number,
        drug_name=drug_name,
        url=url,
        metadata=metadata,
    )
    UpsertEngine(store, SourceType.OPENFDA).upsert(record)
    return record


class TestRepairDrugNames:
    """Tests for the drug name pass."""

    def test_fixes_name_from_metadata(self, store):
        """Test that an Unknown Drug is renamed from its label metadata."""
        _add_approval(store, "NDA021588", metadata={"openfda": {"brand_name": ["Gleevec"]}})

        result = repair_approval_drug_names(store)

        assert result.fixed == 1
        assert result.failed == 0
        assert store.find_by_key(RecordType.FDA_APPROVAL, "NDA021588").drug_name == "Gleevec"

    def test_generic_name_fallback(self, store):
        """Test that the generic name is used when no brand name exists."""
        _add_approval(store, "ANDA1", metadata={"generic_name": "imatinib mesylate"})

        repair_approval_drug_names(store)

        assert store.find_by_key(RecordType.FDA_APPROVAL, "ANDA1").drug_name == "imatinib mesylate"

    def test_unresolvable_names_are_counted(self, store):
        """Test that metadata without any name counts as failed and is left alone."""
        _add_approval(store, "NDA1", metadata={"openfda": {"manufacturer_name": ["Acme"]}})
        _add_approval(store, "NDA2", metadata=None)

        result = repair_approval_drug_names(store)

        assert result.fixed == 0
        assert result.failed == 1
        assert store.find_by_key(RecordType.FDA_APPROVAL, "NDA1").drug_name == UNKNOWN_DRUG

    def test_malformed_metadata_does_not_stop_the_run(self, store):
        """Test that one unreadable record is counted as failed and the rest are still fixed."""
        _add_approval(store, "NDA4", metadata={"openfda": "Gleevec"})
        _add_approval(store, "NDA5", metadata={"brand_name": [123]})
        _add_approval(store, "NDA6", metadata={"brand_name": ["Tagrisso"]})

        result = repair_approval_drug_names(store)

        assert result.fixed == 1
        assert result.failed == 2
        assert store.find_by_key(RecordType.FDA_APPROVAL, "NDA4").drug_name == UNKNOWN_DRUG
        assert store.find_by_key(RecordType.FDA_APPROVAL, "NDA6").drug_name == "Tagrisso"

    def test_named_approvals_are_untouched(self, store):
        _add_approval(store, "NDA3", drug_name="Keytruda", metadata={"openfda": {"brand_name": ["Other"]}})

        result = repair_approval_drug_names(store)

        assert result.fixed == 0
        assert store.find_by_key(RecordType.FDA_APPROVAL, "NDA3").drug_name == "Keytruda"

    def test_repair_writes_audit_entries(self, store):
        """Test that each fix is logged with the repair source."""
        _add_approval(store, "NDA021588", metadata={"brand_name": ["Gleevec"]})

        repair_approval_drug_names(store)

        entries = store.get_log_entries(record_type=RecordType.FDA_APPROVAL, record_id="NDA021588")
        assert [e.source for e in entries] == [SourceType.OPENFDA, SourceType.REPAIR]
        assert entries[1].action == UpsertAction.UPDATED
        assert entries[1].metadata == {"repair": "drug_name", "previous": UNKNOWN_DRUG}


class TestRepairUrls:
    """Tests for the URL pass."""

    def test_strips_prefix_from_url(self, store):
        """Test that a URL built from a prefixed number is rebuilt."""
        _add_approval(
            store, "BLA125514", drug_name="Keytruda",
            url=FDA_APPLICATION_URL.format(application_number="BLA125514"),
        )

        result = repair_approval_drug_names(store)

        assert result.urls_fixed == 1
        approval = store.find_by_key(RecordType.FDA_APPROVAL, "BLA125514")
        assert approval.url == FDA_APPLICATION_URL.format(application_number="125514")
        # The key itself keeps its prefix
        assert approval.application_number == "BLA125514"

    def test_correct_urls_are_untouched(self, store):
        _add_approval(
            store, "125514", drug_name="Keytruda",
            url=FDA_APPLICATION_URL.format(application_number="125514"),
        )
        _add_approval(store, "NDA5", drug_name="NoUrl")

        result = repair_approval_drug_names(store)

        assert result.urls_fixed == 0


class TestRepairIdempotence:

    def test_second_run_changes_nothing(self, store):
        """Test that a repeated repair finds nothing left to fix."""
        _add_approval(
            store, "BLA125514",
            url=FDA_APPLICATION_URL.format(application_number="BLA125514"),
            metadata={"openfda": {"brand_name": ["Keytruda"]}},
        )
        _add_approval(store, "NDA1", metadata={"openfda": {}, "purpose": ["x"]})

        first = repair_approval_drug_names(store)
        entries_after_first = len(store.get_log_entries())
        second = repair_approval_drug_names(store)

        assert (first.fixed, first.urls_fixed) == (1, 1)
        assert (second.fixed, second.urls_fixed) == (0, 0)
        assert second.failed == first.failed == 1
        assert len(store.get_log_entries()) == entries_after_first

    def test_empty_store(self, store):
        result = repair_approval_drug_names(store)
        assert (result.fixed, result.failed, result.urls_fixed) == (0, 0, 0)
