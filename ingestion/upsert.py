"""
Dedup / upsert engine.

Decides create vs. update vs. skip for a normalized record against the store,
and writes exactly one audit log entry per effective change in the same
transaction as the change itself.
"""

import time
from typing import Optional

from sqlalchemy.exc import IntegrityError

from ingestion.errors import StoreError
from ingestion.models import AuditLogEntry, SourceType, UpsertAction
from ingestion.store import RECORD_MAPPINGS, Store, natural_key_of, record_type_of, translate_store_errors
from util.logging_util import setup_logger

logger = setup_logger(__name__)


class UpsertEngine:
    """Persists normalized records idempotently by natural key."""

    def __init__(self, store: Store, source: SourceType):
        self.store = store
        self.source = source

    def upsert(self, record, metadata: Optional[dict] = None, update_existing: bool = True) -> UpsertAction:
        """
        Create or refresh a record and append its audit entry.

        Args:
            record: A NewsItem, TrialRecord, ApprovalRecord or PaperRecord.
            metadata: Context stored on the audit entry (feed, query, ...).
            update_existing: When False an existing record is left untouched
                and SKIPPED is returned.

        Returns:
            The action taken.

        Raises:
            StoreError: The write failed.
            StoreUnavailableError: The store is unreachable.
        """
        record_type = record_type_of(record)
        natural_key = natural_key_of(record)
        fields = RECORD_MAPPINGS[record_type].to_fields(record)

        if natural_key is None:
            logger.warning(f"{record_type.value} has no natural key, creating without dedup")

        with translate_store_errors():
            try:
                return self._write(record, record_type, natural_key, fields, metadata, update_existing)
            except IntegrityError:
                if natural_key is None:
                    raise
                # Another writer created the same key between our lookup and insert
                logger.info(f"Concurrent create of {record_type.value} {natural_key}, retrying as update")
                try:
                    return self._write(record, record_type, natural_key, fields, metadata, update_existing)
                except IntegrityError as e:
                    raise StoreError(
                        f"Constraint violation writing {record_type.value} {natural_key}: {e}",
                        source=self.source.value,
                        record_id=natural_key,
                    ) from e

    def _write(self, record, record_type, natural_key, fields, metadata, update_existing) -> UpsertAction:
        with self.store.session() as session:
            action, record_id = self.store.upsert_by_key(
                record_type,
                natural_key,
                fields,
                update_existing=update_existing,
                session=session,
            )
            if action == UpsertAction.SKIPPED:
                return action

            self.store.create_log_entry(
                AuditLogEntry(
                    source=self.source,
                    record_id=natural_key or str(record_id),
                    record_type=record_type,
                    action=action,
                    timestamp=int(time.time()),
                    metadata=metadata or {},
                ),
                session=session,
            )

        record.id = record_id
        logger.debug(f"{action.value} {record_type.value} {natural_key or record_id}")
        return action
