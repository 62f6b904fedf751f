"""
Data models for the ingestion and matching pipeline.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import FrozenSet, List, Optional, Set

from ingestion.constants import DEFAULT_TRIAL_STATUSES


class RecordType(Enum):
    NEWS_ARTICLE = "news_article"
    CLINICAL_TRIAL = "clinical_trial"
    FDA_APPROVAL = "fda_approval"
    RESEARCH_PAPER = "research_paper"


class SourceType(Enum):
    RSS = "rss"
    CLINICAL_TRIALS = "clinicaltrials"
    OPENFDA = "openfda"
    PUBMED = "pubmed"
    REPAIR = "repair"


class FeedKind(Enum):
    RSS = "rss"
    NCBI = "ncbi"


class UpsertAction(Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass
class NewsItem:
    """A news article taken from an RSS feed. Keyed by URL (or a fallback key)."""
    external_id: Optional[str]
    title: str
    url: Optional[str] = None
    content: Optional[str] = None
    source: Optional[str] = None
    published_at: Optional[int] = None
    cancer_types: Set[str] = field(default_factory=set)
    tags: Set[str] = field(default_factory=set)
    summary: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    id: Optional[int] = None


@dataclass
class TrialRecord:
    """A clinical trial registry entry. Keyed by NCT id."""
    nct_id: str
    title: str
    description: Optional[str] = None
    conditions: List[str] = field(default_factory=list)
    eligibility_criteria: Optional[str] = None
    locations: List[dict] = field(default_factory=list)
    status: Optional[str] = None
    start_date: Optional[date] = None
    completion_date: Optional[date] = None
    intervention_type: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    minimum_age: Optional[int] = None
    maximum_age: Optional[int] = None
    cancer_types: Set[str] = field(default_factory=set)
    metadata: dict = field(default_factory=dict)
    id: Optional[int] = None


@dataclass
class ApprovalRecord:
    """A regulatory drug approval. Keyed by application number."""
    application_number: str
    drug_name: str
    generic_name: Optional[str] = None
    company: Optional[str] = None
    approval_date: Optional[date] = None
    cancer_types: Set[str] = field(default_factory=set)
    indication: Optional[str] = None
    url: Optional[str] = None
    label_pdf_url: Optional[str] = None
    metadata: Optional[dict] = None
    id: Optional[int] = None


@dataclass
class PaperRecord:
    """A research paper. Keyed by PubMed id."""
    pubmed_id: str
    title: str
    abstract: Optional[str] = None
    authors: List[str] = field(default_factory=list)
    journal: Optional[str] = None
    publication_date: Optional[date] = None
    cancer_types: Set[str] = field(default_factory=set)
    treatment_types: Set[str] = field(default_factory=set)
    keywords: List[str] = field(default_factory=list)
    full_text_url: Optional[str] = None
    summary_plain: Optional[str] = None
    summary_clinical: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    id: Optional[int] = None


@dataclass
class AuditLogEntry:
    """Append-only record of one effective write."""
    source: SourceType
    record_id: str
    record_type: RecordType
    action: UpsertAction
    timestamp: int = 0
    metadata: dict = field(default_factory=dict)
    id: Optional[int] = None


@dataclass
class FeedSource:
    """An RSS feed or NCBI query the orchestrators read at the start of a run."""
    name: str
    address: str
    kind: FeedKind = FeedKind.RSS
    is_active: bool = True
    id: Optional[int] = None


@dataclass
class UserProfile:
    """The part of a user profile the matching engine reads."""
    user_id: int
    email: str
    cancer_type: Optional[str] = None
    age: Optional[int] = None
    zip_code: Optional[str] = None
    is_in_usa: Optional[bool] = None
    profile_completed: bool = False
    plan_id: Optional[int] = None


@dataclass
class TrialMatchCriteria:
    cancer_type: Optional[str] = None
    age: Optional[int] = None
    zip_code: Optional[str] = None
    statuses: FrozenSet[str] = DEFAULT_TRIAL_STATUSES


@dataclass
class MatchedTrial:
    """A trial the matching engine found eligible for a user."""
    user_id: int
    nct_id: str
    status: Optional[str] = None
    matched_condition: Optional[str] = None
    score: float = 0.0
    matched_at: int = 0
    id: Optional[int] = None


@dataclass
class IngestionResult:
    """Aggregate outcome of one orchestrator run."""
    ingested: int = 0
    errors: List[Exception] = field(default_factory=list)
    created: int = 0
    updated: int = 0
    skipped: int = 0
    discarded: int = 0

    def record(self, action: UpsertAction):
        if action == UpsertAction.CREATED:
            self.created += 1
            self.ingested += 1
        elif action == UpsertAction.UPDATED:
            self.updated += 1
            self.ingested += 1
        else:
            self.skipped += 1


@dataclass
class RepairResult:
    fixed: int = 0
    failed: int = 0
    urls_fixed: int = 0
