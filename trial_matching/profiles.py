"""
User profile hooks around trial matching.

Users are created through create_user(), which runs its pre-create hooks
explicitly. Profile updates go through update_profile(), which starts a trial
match the first time a profile becomes complete.
"""

import time
from typing import Callable, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ingestion.constants import DEFAULT_PLAN_NAME
from ingestion.errors import ValidationError
from ingestion.models import TrialMatchCriteria, UserProfile
from ingestion.orm_models import PlanORM, UserORM, user_orm_to_profile
from ingestion.store import Store, translate_store_errors
from trial_matching.matcher import TrialMatcher
from util.logging_util import setup_logger

logger = setup_logger(__name__)

PROFILE_FIELDS = ("cancer_type", "age", "zip_code", "is_in_usa", "profile_completed")


def assign_default_plan(session: Session, user: UserORM):
    """Give a new user the default plan, creating the plan if needed."""
    if user.plan_id is not None:
        return
    plan = session.execute(
        select(PlanORM).where(PlanORM.is_default.is_(True), PlanORM.is_active.is_(True))
    ).scalars().first()
    if plan is None:
        plan = session.execute(select(PlanORM).where(PlanORM.name == DEFAULT_PLAN_NAME)).scalar_one_or_none()
    if plan is None:
        plan = PlanORM(name=DEFAULT_PLAN_NAME, is_default=True, is_active=True)
        session.add(plan)
        session.flush()
        logger.info(f"Created default plan {DEFAULT_PLAN_NAME}")
    user.plan_id = plan.id


DEFAULT_PRE_CREATE_HOOKS = (assign_default_plan,)


def create_user(store: Store, email: str,
                pre_create_hooks: Iterable[Callable[[Session, UserORM], None]] = DEFAULT_PRE_CREATE_HOOKS,
                **profile) -> UserProfile:
    """
    Create a user. Each hook may adjust the new row before it is inserted.

    Raises:
        ValidationError: The email is empty.
        StoreError: The email is already taken.
    """
    if not email:
        raise ValidationError("User email is required")
    unknown = set(profile) - set(PROFILE_FIELDS)
    if unknown:
        raise TypeError(f"Unknown profile fields: {sorted(unknown)}")

    with translate_store_errors(), store.session() as session:
        user = UserORM(email=email, created_at=int(time.time()), profile_completed=False)
        for name, value in profile.items():
            setattr(user, name, value)
        for hook in pre_create_hooks:
            hook(session, user)
        session.add(user)
        session.flush()
        return user_orm_to_profile(user)


def get_profile(store: Store, user_id: int) -> Optional[UserProfile]:
    with translate_store_errors(), store.session() as session:
        user = session.get(UserORM, user_id)
        return user_orm_to_profile(user) if user is not None else None


def should_trigger_match(before: UserProfile, after: UserProfile) -> bool:
    """
    Whether a profile update should start a trial match.

    Only the incomplete -> complete transition counts, and only when the
    profile has a cancer type and a location answer: either outside the USA,
    or in the USA with a ZIP code. An unanswered is_in_usa does not count.
    """
    if before.profile_completed or not after.profile_completed:
        return False
    if not after.cancer_type:
        return False
    if after.is_in_usa is False:
        return True
    return bool(after.is_in_usa and after.zip_code)


def build_match_criteria(profile: UserProfile) -> TrialMatchCriteria:
    """Criteria for a profile. The ZIP code is only used for users in the USA."""
    return TrialMatchCriteria(
        cancer_type=profile.cancer_type,
        age=profile.age,
        zip_code=profile.zip_code if profile.is_in_usa and profile.zip_code else None,
    )


def update_profile(store: Store, user_id: int, matcher: Optional[TrialMatcher] = None,
                   **changes) -> UserProfile:
    """
    Apply profile changes and start a background trial match when the
    profile has just been completed.

    Raises:
        ValidationError: The user does not exist.
    """
    unknown = set(changes) - set(PROFILE_FIELDS)
    if unknown:
        raise TypeError(f"Unknown profile fields: {sorted(unknown)}")

    with translate_store_errors(), store.session() as session:
        user = session.get(UserORM, user_id)
        if user is None:
            raise ValidationError(f"No user with id {user_id}", record_id=str(user_id))
        before = user_orm_to_profile(user)
        for name, value in changes.items():
            setattr(user, name, value)
        session.flush()
        after = user_orm_to_profile(user)

    if matcher is not None and should_trigger_match(before, after):
        matcher.trigger_trial_match(user_id, build_match_criteria(after))
    return after
