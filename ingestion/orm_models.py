"""
SQLAlchemy ORM models for the ingestion and matching pipeline.

These models are internal to the store. The public interface uses the
dataclass models from models.py.
"""

import json
from datetime import date
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    Float,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from ingestion.models import (
    ApprovalRecord,
    AuditLogEntry,
    FeedKind,
    FeedSource,
    MatchedTrial,
    NewsItem,
    PaperRecord,
    RecordType,
    SourceType,
    TrialRecord,
    UpsertAction,
    UserProfile,
)


class JSONEncodedList(TypeDecorator):
    """Represents a list as a JSON-encoded string."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: Optional[List], dialect) -> Optional[str]:
        if value is None or len(value) == 0:
            return None
        return json.dumps(value)

    def process_result_value(self, value: Optional[str], dialect) -> List:
        if value is None:
            return []
        return json.loads(value)


class JSONEncodedDict(TypeDecorator):
    """Represents a dict as a JSON-encoded string."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: Optional[dict], dialect) -> Optional[str]:
        if value is None or value == {}:
            return None
        return json.dumps(value, default=str)

    def process_result_value(self, value: Optional[str], dialect) -> Optional[dict]:
        if value is None:
            return None
        return json.loads(value)


class Base(DeclarativeBase):
    pass


class NewsArticleORM(Base):
    """SQLAlchemy model for news_articles table."""

    __tablename__ = "news_articles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Nullable: items without any usable key are still stored
    external_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, unique=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    published_at: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cancer_types: Mapped[List[str]] = mapped_column(JSONEncodedList, nullable=True)
    tags: Mapped[List[str]] = mapped_column(JSONEncodedList, nullable=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # 'metadata' is reserved in SQLAlchemy, so we use 'metadata_' as the Python attribute
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", JSONEncodedDict, nullable=True)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_news_articles_published_at", "published_at"),
    )


class ClinicalTrialORM(Base):
    """SQLAlchemy model for clinical_trials table."""

    __tablename__ = "clinical_trials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nct_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    conditions: Mapped[List[str]] = mapped_column(JSONEncodedList, nullable=True)
    eligibility_criteria: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    locations: Mapped[List[dict]] = mapped_column(JSONEncodedList, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    completion_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    intervention_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    keywords: Mapped[List[str]] = mapped_column(JSONEncodedList, nullable=True)
    minimum_age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    maximum_age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cancer_types: Mapped[List[str]] = mapped_column(JSONEncodedList, nullable=True)
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", JSONEncodedDict, nullable=True)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_clinical_trials_status", "status"),
    )


class FdaApprovalORM(Base):
    """SQLAlchemy model for fda_approvals table."""

    __tablename__ = "fda_approvals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    drug_name: Mapped[str] = mapped_column(Text, nullable=False)
    generic_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    company: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approval_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    cancer_types: Mapped[List[str]] = mapped_column(JSONEncodedList, nullable=True)
    indication: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    label_pdf_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", JSONEncodedDict, nullable=True)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_fda_approvals_drug_name", "drug_name"),
    )


class ResearchPaperORM(Base):
    """SQLAlchemy model for research_papers table."""

    __tablename__ = "research_papers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pubmed_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    abstract: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    authors: Mapped[List[str]] = mapped_column(JSONEncodedList, nullable=True)
    journal: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    publication_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    cancer_types: Mapped[List[str]] = mapped_column(JSONEncodedList, nullable=True)
    treatment_types: Mapped[List[str]] = mapped_column(JSONEncodedList, nullable=True)
    keywords: Mapped[List[str]] = mapped_column(JSONEncodedList, nullable=True)
    full_text_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    summary_plain: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    summary_clinical: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", JSONEncodedDict, nullable=True)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)


class DataIngestionLogORM(Base):
    """SQLAlchemy model for data_ingestion_logs table. Rows are never updated."""

    __tablename__ = "data_ingestion_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(Text, nullable=False)
    record_id: Mapped[str] = mapped_column(Text, nullable=False)
    record_type: Mapped[str] = mapped_column(Text, nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[int] = mapped_column(Integer, nullable=False)
    metadata_: Mapped[Optional[dict]] = mapped_column("metadata", JSONEncodedDict, nullable=True)

    __table_args__ = (
        Index("idx_ingestion_logs_record", "record_type", "record_id"),
    )


class FeedSourceORM(Base):
    """SQLAlchemy model for feed_sources table (RSS feeds and NCBI queries)."""

    __tablename__ = "feed_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("kind", "address", name="uq_feed_kind_address"),
    )


class PlanORM(Base):
    """SQLAlchemy model for plans table."""

    __tablename__ = "plans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class UserORM(Base):
    """SQLAlchemy model for users table."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    cancer_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    zip_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_in_usa: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    profile_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    plan_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)


class UserTrialMatchORM(Base):
    """SQLAlchemy model for user_trial_matches table."""

    __tablename__ = "user_trial_matches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    nct_id: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    matched_condition: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    matched_at: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "nct_id", name="uq_user_trial"),
        Index("idx_user_trial_matches_user", "user_id"),
    )


# Conversion functions between ORM models and dataclasses


def news_orm_to_dataclass(orm: NewsArticleORM) -> NewsItem:
    """Convert a NewsArticleORM instance to a NewsItem dataclass."""
    return NewsItem(
        id=orm.id,
        external_id=orm.external_id,
        title=orm.title,
        url=orm.url,
        content=orm.content,
        source=orm.source,
        published_at=orm.published_at,
        cancer_types=set(orm.cancer_types or []),
        tags=set(orm.tags or []),
        summary=orm.summary,
        metadata=orm.metadata_ or {},
    )


def news_dataclass_to_fields(item: NewsItem) -> dict:
    """Column values for a NewsItem, excluding the primary key."""
    return {
        "external_id": item.external_id,
        "title": item.title,
        "url": item.url,
        "content": item.content,
        "source": item.source,
        "published_at": item.published_at,
        "cancer_types": sorted(item.cancer_types),
        "tags": sorted(item.tags),
        "summary": item.summary,
        "metadata_": item.metadata or None,
    }


def trial_orm_to_dataclass(orm: ClinicalTrialORM) -> TrialRecord:
    """Convert a ClinicalTrialORM instance to a TrialRecord dataclass."""
    return TrialRecord(
        id=orm.id,
        nct_id=orm.nct_id,
        title=orm.title,
        description=orm.description,
        conditions=orm.conditions or [],
        eligibility_criteria=orm.eligibility_criteria,
        locations=orm.locations or [],
        status=orm.status,
        start_date=orm.start_date,
        completion_date=orm.completion_date,
        intervention_type=orm.intervention_type,
        keywords=orm.keywords or [],
        minimum_age=orm.minimum_age,
        maximum_age=orm.maximum_age,
        cancer_types=set(orm.cancer_types or []),
        metadata=orm.metadata_ or {},
    )


def trial_dataclass_to_fields(trial: TrialRecord) -> dict:
    """Column values for a TrialRecord, excluding the primary key."""
    return {
        "nct_id": trial.nct_id,
        "title": trial.title,
        "description": trial.description,
        "conditions": trial.conditions,
        "eligibility_criteria": trial.eligibility_criteria,
        "locations": trial.locations,
        "status": trial.status,
        "start_date": trial.start_date,
        "completion_date": trial.completion_date,
        "intervention_type": trial.intervention_type,
        "keywords": trial.keywords,
        "minimum_age": trial.minimum_age,
        "maximum_age": trial.maximum_age,
        "cancer_types": sorted(trial.cancer_types),
        "metadata_": trial.metadata or None,
    }


def approval_orm_to_dataclass(orm: FdaApprovalORM) -> ApprovalRecord:
    """Convert a FdaApprovalORM instance to an ApprovalRecord dataclass."""
    return ApprovalRecord(
        id=orm.id,
        application_number=orm.application_number,
        drug_name=orm.drug_name,
        generic_name=orm.generic_name,
        company=orm.company,
        approval_date=orm.approval_date,
        cancer_types=set(orm.cancer_types or []),
        indication=orm.indication,
        url=orm.url,
        label_pdf_url=orm.label_pdf_url,
        metadata=orm.metadata_,
    )


def approval_dataclass_to_fields(approval: ApprovalRecord) -> dict:
    """Column values for an ApprovalRecord, excluding the primary key."""
    return {
        "application_number": approval.application_number,
        "drug_name": approval.drug_name,
        "generic_name": approval.generic_name,
        "company": approval.company,
        "approval_date": approval.approval_date,
        "cancer_types": sorted(approval.cancer_types),
        "indication": approval.indication,
        "url": approval.url,
        "label_pdf_url": approval.label_pdf_url,
        "metadata_": approval.metadata or None,
    }


def paper_orm_to_dataclass(orm: ResearchPaperORM) -> PaperRecord:
    """Convert a ResearchPaperORM instance to a PaperRecord dataclass."""
    return PaperRecord(
        id=orm.id,
        pubmed_id=orm.pubmed_id,
        title=orm.title,
        abstract=orm.abstract,
        authors=orm.authors or [],
        journal=orm.journal,
        publication_date=orm.publication_date,
        cancer_types=set(orm.cancer_types or []),
        treatment_types=set(orm.treatment_types or []),
        keywords=orm.keywords or [],
        full_text_url=orm.full_text_url,
        summary_plain=orm.summary_plain,
        summary_clinical=orm.summary_clinical,
        metadata=orm.metadata_ or {},
    )


def paper_dataclass_to_fields(paper: PaperRecord) -> dict:
    """Column values for a PaperRecord, excluding the primary key."""
    return {
        "pubmed_id": paper.pubmed_id,
        "title": paper.title,
        "abstract": paper.abstract,
        "authors": paper.authors,
        "journal": paper.journal,
        "publication_date": paper.publication_date,
        "cancer_types": sorted(paper.cancer_types),
        "treatment_types": sorted(paper.treatment_types),
        "keywords": paper.keywords,
        "full_text_url": paper.full_text_url,
        "summary_plain": paper.summary_plain,
        "summary_clinical": paper.summary_clinical,
        "metadata_": paper.metadata or None,
    }


def log_orm_to_dataclass(orm: DataIngestionLogORM) -> AuditLogEntry:
    """Convert a DataIngestionLogORM instance to an AuditLogEntry dataclass."""
    return AuditLogEntry(
        id=orm.id,
        source=SourceType(orm.source),
        record_id=orm.record_id,
        record_type=RecordType(orm.record_type),
        action=UpsertAction(orm.action),
        timestamp=orm.timestamp,
        metadata=orm.metadata_ or {},
    )


def log_dataclass_to_orm(entry: AuditLogEntry) -> DataIngestionLogORM:
    """Convert an AuditLogEntry dataclass to a DataIngestionLogORM instance."""
    return DataIngestionLogORM(
        source=entry.source.value,
        record_id=entry.record_id,
        record_type=entry.record_type.value,
        action=entry.action.value,
        timestamp=entry.timestamp,
        metadata_=entry.metadata or None,
    )


def feed_orm_to_dataclass(orm: FeedSourceORM) -> FeedSource:
    """Convert a FeedSourceORM instance to a FeedSource dataclass."""
    return FeedSource(
        id=orm.id,
        kind=FeedKind(orm.kind),
        name=orm.name,
        address=orm.address,
        is_active=bool(orm.is_active),
    )


def user_orm_to_profile(orm: UserORM) -> UserProfile:
    """Convert a UserORM instance to a UserProfile dataclass."""
    return UserProfile(
        user_id=orm.id,
        email=orm.email,
        cancer_type=orm.cancer_type,
        age=orm.age,
        zip_code=orm.zip_code,
        is_in_usa=orm.is_in_usa,
        profile_completed=bool(orm.profile_completed),
        plan_id=orm.plan_id,
    )


def match_orm_to_dataclass(orm: UserTrialMatchORM) -> MatchedTrial:
    """Convert a UserTrialMatchORM instance to a MatchedTrial dataclass."""
    return MatchedTrial(
        id=orm.id,
        user_id=orm.user_id,
        nct_id=orm.nct_id,
        status=orm.status,
        matched_condition=orm.matched_condition,
        score=orm.score,
        matched_at=orm.matched_at,
    )
