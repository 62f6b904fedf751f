"""
Matching of user criteria against stored clinical trials.

A match run replaces the user's previous match set. Runs are started with
trigger_trial_match(), which hands the work to a background worker and returns
straight away.
"""

import time
from typing import List, Optional, Tuple

from sqlalchemy import delete, select

from ingestion.classifier import classify
from ingestion.config import Settings
from ingestion.constants import (
    CANCER_TYPE_SEARCH_TERMS,
    CONDITION_MATCH_BONUS,
    DEFAULT_MATCH_RADIUS_MILES,
    DEFAULT_STATUS_WEIGHT,
    PAPER_CANCER_TYPE_KEYWORDS,
    TRIAL_STATUS_WEIGHTS,
)
from ingestion.models import MatchedTrial, RecordType, TrialMatchCriteria, TrialRecord
from ingestion.orm_models import UserTrialMatchORM, match_orm_to_dataclass
from ingestion.store import Store, translate_store_errors
from trial_matching.geo import Point, ZipGeocoder, site_point, within_radius
from trial_matching.worker import BackgroundWorker
from util.logging_util import setup_logger

logger = setup_logger(__name__)


def _matched_condition(trial: TrialRecord, cancer_type: str) -> Tuple[Optional[str], bool]:
    """The condition naming the cancer type, and whether one named it directly."""
    term = CANCER_TYPE_SEARCH_TERMS.get(cancer_type, cancer_type).lower()
    for condition in trial.conditions:
        if term in condition.lower():
            return condition, True
    return (trial.conditions[0] if trial.conditions else None), False


def trial_covers_cancer_type(trial: TrialRecord, cancer_type: str) -> bool:
    """Whether the trial's conditions are about the cancer type."""
    if cancer_type in trial.cancer_types:
        return True
    if cancer_type in classify(*trial.conditions, keywords=PAPER_CANCER_TYPE_KEYWORDS):
        return True
    return _matched_condition(trial, cancer_type)[1]


def age_is_eligible(trial: TrialRecord, age: Optional[int]) -> bool:
    """Unknown ages and missing bounds do not exclude a trial."""
    if age is None:
        return True
    if trial.minimum_age is not None and age < trial.minimum_age:
        return False
    if trial.maximum_age is not None and age > trial.maximum_age:
        return False
    return True


def location_is_eligible(trial: TrialRecord, origin: Optional[Point], geocoder: Optional[ZipGeocoder] = None,
                         radius_miles: float = DEFAULT_MATCH_RADIUS_MILES) -> bool:
    """
    A trial site must lie within radius_miles of the user's point.

    No origin means no location constraint. Sites without coordinates or a
    postal code that geocodes cannot satisfy it.
    """
    if origin is None:
        return True
    for location in trial.locations:
        point = site_point(location, geocoder)
        if point is not None and within_radius(origin, point, radius_miles):
            return True
    return False


def score_trial(trial: TrialRecord, named_in_condition: bool) -> float:
    score = TRIAL_STATUS_WEIGHTS.get(trial.status, DEFAULT_STATUS_WEIGHT)
    if named_in_condition:
        score += CONDITION_MATCH_BONUS
    return round(score, 4)


class TrialMatcher:
    """Finds and stores the trials a user is eligible for."""

    def __init__(self, store: Store, worker: Optional[BackgroundWorker] = None,
                 geocoder: Optional[ZipGeocoder] = None, radius_miles: float = DEFAULT_MATCH_RADIUS_MILES):
        self.store = store
        self.worker = worker or BackgroundWorker(name="trial-matching")
        self.geocoder = geocoder or ZipGeocoder()
        self.radius_miles = radius_miles

    @classmethod
    def from_settings(cls, store: Store, settings: Settings, worker: Optional[BackgroundWorker] = None):
        geocoder = ZipGeocoder(user_agent=settings.geocoder_user_agent, timeout=settings.request_timeout)
        return cls(store, worker=worker, geocoder=geocoder, radius_miles=settings.match_radius_miles)

    def _origin(self, zip_code: Optional[str]) -> Optional[Point]:
        if not zip_code:
            return None
        origin = self.geocoder.locate(zip_code)
        if origin is None:
            logger.warning(f"Could not geocode ZIP code {zip_code}, matching without a location filter")
        return origin

    def find_matching_trials(self, user_id: int, criteria: TrialMatchCriteria) -> List[MatchedTrial]:
        """Score the stored trials that satisfy the criteria, best first."""
        if not criteria.cancer_type:
            return []

        candidates = self.store.find_many(RecordType.CLINICAL_TRIAL, status=set(criteria.statuses))
        origin = self._origin(criteria.zip_code)
        now = int(time.time())
        matches = []
        for trial in candidates:
            if not trial_covers_cancer_type(trial, criteria.cancer_type):
                continue
            if not age_is_eligible(trial, criteria.age):
                continue
            if not location_is_eligible(trial, origin, self.geocoder, self.radius_miles):
                continue

            condition, named = _matched_condition(trial, criteria.cancer_type)
            matches.append(MatchedTrial(
                user_id=user_id,
                nct_id=trial.nct_id,
                status=trial.status,
                matched_condition=condition,
                score=score_trial(trial, named),
                matched_at=now,
            ))

        matches.sort(key=lambda m: (-m.score, m.nct_id))
        return matches

    def _replace_matches(self, user_id: int, matches: List[MatchedTrial]):
        with translate_store_errors(), self.store.session() as session:
            session.execute(delete(UserTrialMatchORM).where(UserTrialMatchORM.user_id == user_id))
            for match in matches:
                session.add(UserTrialMatchORM(
                    user_id=match.user_id,
                    nct_id=match.nct_id,
                    status=match.status,
                    matched_condition=match.matched_condition,
                    score=match.score,
                    matched_at=match.matched_at,
                ))

    def match(self, user_id: int, criteria: TrialMatchCriteria) -> List[MatchedTrial]:
        """
        Find the user's trials and replace their stored match set.

        Runs synchronously; use trigger_trial_match() from request paths.
        """
        logger.info(f"Starting trial match for user {user_id}: {criteria}")
        matches = self.find_matching_trials(user_id, criteria)
        self._replace_matches(user_id, matches)
        logger.info(f"Saved {len(matches)} trial matches for user {user_id}")
        return matches

    def trigger_trial_match(self, user_id: int, criteria: TrialMatchCriteria) -> bool:
        """
        Start a background match run and return immediately.

        Returns:
            True if a run was queued, False if the criteria lack a cancer type.
        """
        if not criteria.cancer_type:
            logger.info(f"Not matching trials for user {user_id}: no cancer type")
            return False
        self.worker.submit(self.match, user_id, criteria, description=f"trial match for user {user_id}")
        return True

    def get_matches(self, user_id: int) -> List[MatchedTrial]:
        """Get the stored matches of a user, best first."""
        with translate_store_errors(), self.store.session() as session:
            stmt = (
                select(UserTrialMatchORM)
                .where(UserTrialMatchORM.user_id == user_id)
                .order_by(UserTrialMatchORM.score.desc(), UserTrialMatchORM.nct_id.asc())
            )
            return [match_orm_to_dataclass(orm) for orm in session.execute(stmt).scalars().all()]
