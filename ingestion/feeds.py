"""
Feed source configuration: RSS feeds and NCBI queries.

Sources are seeded from a YAML file and kept in the feed_sources table, where
they can be switched on and off.
"""

from pathlib import Path
from typing import List, Optional

import yaml
from sqlalchemy import select

from ingestion.constants import FEEDS_CONFIG_PATH
from ingestion.models import FeedKind, FeedSource
from ingestion.orm_models import FeedSourceORM, feed_orm_to_dataclass
from ingestion.store import Store, translate_store_errors
from util.logging_util import setup_logger

logger = setup_logger(__name__)


def load_feed_configs(config_path: Path = FEEDS_CONFIG_PATH) -> List[FeedSource]:
    """Load feed sources from a YAML file.

    The file holds a `feeds` list (RSS) and a `ncbi_queries` list, each entry
    with a name and an url/query.
    """
    if not config_path.exists():
        logger.warning(f"Feed config not found at {config_path}")
        return []

    with open(config_path, "r") as f:
        data = yaml.safe_load(f) or {}

    sources = []
    for feed_data in data.get("feeds") or []:
        sources.append(FeedSource(
            name=feed_data["name"],
            address=feed_data["url"],
            kind=FeedKind.RSS,
            is_active=feed_data.get("active", True),
        ))
    for query_data in data.get("ncbi_queries") or []:
        sources.append(FeedSource(
            name=query_data["name"],
            address=query_data["query"],
            kind=FeedKind.NCBI,
            is_active=query_data.get("active", True),
        ))
    return sources


class FeedRegistry:
    """Reads and maintains feed sources in the store."""

    def __init__(self, store: Store):
        self.store = store

    def list_active(self, kind: FeedKind = FeedKind.RSS) -> List[FeedSource]:
        """Get the active sources of one kind, in insertion order."""
        with translate_store_errors(), self.store.session() as session:
            stmt = (
                select(FeedSourceORM)
                .where(FeedSourceORM.kind == kind.value, FeedSourceORM.is_active.is_(True))
                .order_by(FeedSourceORM.id.asc())
            )
            orms = session.execute(stmt).scalars().all()
            return [feed_orm_to_dataclass(orm) for orm in orms]

    def add(self, source: FeedSource) -> int:
        """Add a source, or update the name and active flag of an existing one.

        Returns the source id.
        """
        with translate_store_errors(), self.store.session() as session:
            stmt = select(FeedSourceORM).where(
                FeedSourceORM.kind == source.kind.value,
                FeedSourceORM.address == source.address,
            )
            orm = session.execute(stmt).scalar_one_or_none()
            if orm is None:
                orm = FeedSourceORM(
                    kind=source.kind.value,
                    name=source.name,
                    address=source.address,
                    is_active=source.is_active,
                )
                session.add(orm)
            else:
                orm.name = source.name
                orm.is_active = source.is_active
            session.flush()
            return orm.id

    def set_active(self, source_id: int, is_active: bool) -> bool:
        """Switch a source on or off. Returns False if it does not exist."""
        with translate_store_errors(), self.store.session() as session:
            orm = session.get(FeedSourceORM, source_id)
            if orm is None:
                return False
            orm.is_active = is_active
            return True

    def seed(self, config_path: Optional[Path] = None) -> int:
        """Load sources from YAML into the store. Returns how many were read."""
        sources = load_feed_configs(config_path or FEEDS_CONFIG_PATH)
        for source in sources:
            self.add(source)
        logger.info(f"Seeded {len(sources)} feed sources")
        return len(sources)
