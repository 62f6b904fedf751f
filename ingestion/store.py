"""
SQLAlchemy-backed store for ingested records.

The store is an explicit object owned by the process entry point and handed to
every component; there is no module-level engine. The public API speaks the
dataclass models from models.py, with conversion to/from ORM models handled
internally.
"""

import time
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from typing import Callable, Dict, Generator, List, Optional, Tuple

from sqlalchemy import Engine, create_engine, func, select
from sqlalchemy.exc import DisconnectionError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ingestion.errors import StoreError, StoreUnavailableError
from ingestion.models import (
    ApprovalRecord,
    AuditLogEntry,
    NewsItem,
    PaperRecord,
    RecordType,
    TrialRecord,
    UpsertAction,
)
from ingestion.orm_models import (
    Base,
    ClinicalTrialORM,
    DataIngestionLogORM,
    FdaApprovalORM,
    NewsArticleORM,
    ResearchPaperORM,
    approval_dataclass_to_fields,
    approval_orm_to_dataclass,
    log_dataclass_to_orm,
    log_orm_to_dataclass,
    news_dataclass_to_fields,
    news_orm_to_dataclass,
    paper_dataclass_to_fields,
    paper_orm_to_dataclass,
    trial_dataclass_to_fields,
    trial_orm_to_dataclass,
)


@dataclass(frozen=True)
class RecordMapping:
    """How one record type maps onto its table."""
    orm_class: type
    key_attribute: str
    to_dataclass: Callable
    to_fields: Callable


RECORD_MAPPINGS: Dict[RecordType, RecordMapping] = {
    RecordType.NEWS_ARTICLE: RecordMapping(
        NewsArticleORM, "external_id", news_orm_to_dataclass, news_dataclass_to_fields
    ),
    RecordType.CLINICAL_TRIAL: RecordMapping(
        ClinicalTrialORM, "nct_id", trial_orm_to_dataclass, trial_dataclass_to_fields
    ),
    RecordType.FDA_APPROVAL: RecordMapping(
        FdaApprovalORM, "application_number", approval_orm_to_dataclass, approval_dataclass_to_fields
    ),
    RecordType.RESEARCH_PAPER: RecordMapping(
        ResearchPaperORM, "pubmed_id", paper_orm_to_dataclass, paper_dataclass_to_fields
    ),
}

_RECORD_TYPES_BY_CLASS = {
    NewsItem: RecordType.NEWS_ARTICLE,
    TrialRecord: RecordType.CLINICAL_TRIAL,
    ApprovalRecord: RecordType.FDA_APPROVAL,
    PaperRecord: RecordType.RESEARCH_PAPER,
}


def record_type_of(record) -> RecordType:
    """Get the RecordType for a normalized record dataclass."""
    try:
        return _RECORD_TYPES_BY_CLASS[type(record)]
    except KeyError:
        raise TypeError(f"Not a storable record: {type(record).__name__}")


def natural_key_of(record) -> Optional[str]:
    """Get the natural key of a normalized record (may be None for news items)."""
    mapping = RECORD_MAPPINGS[record_type_of(record)]
    return getattr(record, mapping.key_attribute)


@contextmanager
def translate_store_errors() -> Generator[None, None, None]:
    """Re-raise SQLAlchemy failures as StoreError / StoreUnavailableError."""
    try:
        yield
    except (OperationalError, DisconnectionError) as e:
        raise StoreUnavailableError(f"Store unavailable: {e}") from e
    except SQLAlchemyError as e:
        raise StoreError(f"Store error: {e}") from e


def _column_name(field_name: str) -> str:
    # 'metadata' is exposed on the ORM classes as 'metadata_'
    return "metadata_" if field_name == "metadata" else field_name


class Store:
    """Keyed-record store over a SQLAlchemy engine."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine)

    @classmethod
    def from_url(cls, url: str, **engine_kwargs) -> "Store":
        """Create a store for a database URL, e.g. sqlite:///oncology_feed.db."""
        return cls(create_engine(url, **engine_kwargs))

    def init_db(self):
        """Initialize the database schema."""
        Base.metadata.create_all(self.engine)

    def dispose(self):
        self.engine.dispose()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Get a session context manager for database operations.

        Usage:
            with store.session() as session:
                session.add(obj)
                # commit happens automatically on successful exit
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _scope(self, session: Optional[Session]):
        return nullcontext(session) if session is not None else self.session()

    def _get_orm_by_key(self, session: Session, mapping: RecordMapping, natural_key: str):
        column = getattr(mapping.orm_class, mapping.key_attribute)
        stmt = select(mapping.orm_class).where(column == natural_key)
        return session.execute(stmt).scalar_one_or_none()

    def find_by_key(self, record_type: RecordType, natural_key: str):
        """Get a record by its natural key, or None."""
        mapping = RECORD_MAPPINGS[record_type]
        with translate_store_errors(), self.session() as session:
            orm = self._get_orm_by_key(session, mapping, natural_key)
            if orm is None:
                return None
            return mapping.to_dataclass(orm)

    def upsert_by_key(
        self,
        record_type: RecordType,
        natural_key: Optional[str],
        fields: dict,
        update_existing: bool = True,
        session: Optional[Session] = None,
    ) -> Tuple[UpsertAction, int]:
        """Create the record, or overwrite its mutable fields if the key exists.

        A None key cannot be looked up, so the record is always created.
        Returns the action taken and the record's database id.
        """
        mapping = RECORD_MAPPINGS[record_type]
        now = int(time.time())

        with self._scope(session) as s:
            existing = None
            if natural_key is not None:
                existing = self._get_orm_by_key(s, mapping, natural_key)

            if existing is None:
                orm = mapping.orm_class(**fields, created_at=now, updated_at=now)
                s.add(orm)
                s.flush()
                return UpsertAction.CREATED, orm.id

            if not update_existing:
                return UpsertAction.SKIPPED, existing.id

            for name, value in fields.items():
                if name == mapping.key_attribute:
                    continue
                setattr(existing, name, value)
            existing.updated_at = now
            s.flush()
            return UpsertAction.UPDATED, existing.id

    def find_many(self, record_type: RecordType, **filters) -> List:
        """Get all records matching the filters.

        Each filter is an equality test on a field, or a membership test when
        the value is a set, list or tuple.
        """
        mapping = RECORD_MAPPINGS[record_type]
        with translate_store_errors(), self.session() as session:
            stmt = select(mapping.orm_class).where(*self._conditions(mapping, filters))
            stmt = stmt.order_by(mapping.orm_class.id.asc())
            orms = session.execute(stmt).scalars().all()
            return [mapping.to_dataclass(orm) for orm in orms]

    def count(self, record_type: RecordType, **filters) -> int:
        """Count records matching the filters (same semantics as find_many)."""
        mapping = RECORD_MAPPINGS[record_type]
        with translate_store_errors(), self.session() as session:
            stmt = (
                select(func.count())
                .select_from(mapping.orm_class)
                .where(*self._conditions(mapping, filters))
            )
            return session.execute(stmt).scalar_one()

    @staticmethod
    def _conditions(mapping: RecordMapping, filters: dict) -> list:
        conditions = []
        for name, value in filters.items():
            column = getattr(mapping.orm_class, _column_name(name))
            if isinstance(value, (set, frozenset, list, tuple)):
                conditions.append(column.in_(list(value)))
            elif value is None:
                conditions.append(column.is_(None))
            else:
                conditions.append(column == value)
        return conditions

    def create_log_entry(self, entry: AuditLogEntry, session: Optional[Session] = None) -> int:
        """Append an audit log entry. Returns its id."""
        if not entry.timestamp:
            entry.timestamp = int(time.time())
        orm = log_dataclass_to_orm(entry)
        with self._scope(session) as s:
            s.add(orm)
            s.flush()
            return orm.id

    def get_log_entries(
        self,
        record_type: Optional[RecordType] = None,
        record_id: Optional[str] = None,
    ) -> List[AuditLogEntry]:
        """Get audit log entries in insertion order."""
        with translate_store_errors(), self.session() as session:
            stmt = select(DataIngestionLogORM)
            if record_type is not None:
                stmt = stmt.where(DataIngestionLogORM.record_type == record_type.value)
            if record_id is not None:
                stmt = stmt.where(DataIngestionLogORM.record_id == record_id)
            stmt = stmt.order_by(DataIngestionLogORM.id.asc())
            orms = session.execute(stmt).scalars().all()
            return [log_orm_to_dataclass(orm) for orm in orms]
