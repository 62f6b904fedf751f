"""Tests for feed source configuration."""

from pathlib import Path

import pytest
from sqlalchemy import create_engine

from ingestion.constants import FEEDS_CONFIG_PATH
from ingestion.feeds import FeedRegistry, load_feed_configs
from ingestion.models import FeedKind, FeedSource
from ingestion.store import Store


@pytest.fixture
def store():
    """Create a store over a temporary in-memory database."""
    test_store = Store(create_engine("sqlite:///:memory:"))
    test_store.init_db()
    yield test_store
    test_store.dispose()


class TestLoadFeedConfigs:
    """Tests for load_feed_configs function."""

    def test_load_valid_config(self, tmp_path: Path):
        """Test loading a valid YAML config file."""
        config_file = tmp_path / "feeds.yaml"
        config_file.write_text("""
feeds:
  - name: "Test Feed 1"
    url: "https://example.com/feed1.xml"
  - name: "Test Feed 2"
    url: "https://example.com/feed2.xml"
    active: false
ncbi_queries:
  - name: "lung"
    query: "lung cancer[Title]"
""")
        configs = load_feed_configs(config_file)

        assert len(configs) == 3
        assert configs[0].name == "Test Feed 1"
        assert configs[0].address == "https://example.com/feed1.xml"
        assert configs[0].kind == FeedKind.RSS
        assert configs[0].is_active
        assert not configs[1].is_active
        assert configs[2].kind == FeedKind.NCBI
        assert configs[2].address == "lung cancer[Title]"

    def test_load_missing_config(self, tmp_path: Path):
        """Test loading from non-existent file returns empty list."""
        assert load_feed_configs(tmp_path / "nonexistent.yaml") == []

    def test_load_empty_config(self, tmp_path: Path):
        """Test loading empty config returns empty list."""
        config_file = tmp_path / "feeds.yaml"
        config_file.write_text("feeds: []")
        assert load_feed_configs(config_file) == []

    def test_bundled_config_loads(self):
        """Test that the bundled seed file is valid."""
        configs = load_feed_configs(FEEDS_CONFIG_PATH)
        assert any(c.kind == FeedKind.RSS for c in configs)
        assert any(c.kind == FeedKind.NCBI for c in configs)


class TestFeedRegistry:
    """Tests for FeedRegistry class."""

    def test_add_and_list_active(self, store):
        """Test that only active sources of the requested kind are listed."""
        registry = FeedRegistry(store)
        registry.add(FeedSource(name="A", address="https://a.com/rss"))
        registry.add(FeedSource(name="B", address="https://b.com/rss", is_active=False))
        registry.add(FeedSource(name="Q", address="query", kind=FeedKind.NCBI))

        active = registry.list_active()
        assert [f.name for f in active] == ["A"]
        assert [f.name for f in registry.list_active(FeedKind.NCBI)] == ["Q"]

    def test_add_existing_updates(self, store):
        """Test that re-adding an address updates it instead of duplicating."""
        registry = FeedRegistry(store)
        first_id = registry.add(FeedSource(name="Old name", address="https://a.com/rss"))
        second_id = registry.add(FeedSource(name="New name", address="https://a.com/rss"))

        assert first_id == second_id
        assert [f.name for f in registry.list_active()] == ["New name"]

    def test_set_active(self, store):
        """Test switching a source off and on."""
        registry = FeedRegistry(store)
        source_id = registry.add(FeedSource(name="A", address="https://a.com/rss"))

        assert registry.set_active(source_id, False)
        assert registry.list_active() == []
        assert registry.set_active(source_id, True)
        assert len(registry.list_active()) == 1
        assert not registry.set_active(9999, True)

    def test_seed_is_repeatable(self, store, tmp_path: Path):
        """Test that seeding twice does not duplicate sources."""
        config_file = tmp_path / "feeds.yaml"
        config_file.write_text("""
feeds:
  - name: "Feed"
    url: "https://example.com/feed.xml"
""")
        registry = FeedRegistry(store)
        assert registry.seed(config_file) == 1
        assert registry.seed(config_file) == 1
        assert len(registry.list_active()) == 1
