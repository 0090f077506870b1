"""
Tests for the user-facing services: filters, preferences, sources,
collections and the interaction ledger.
"""

from datetime import datetime, timedelta

import pytest

from feedhub.collection_service import CollectionService
from feedhub.db_models import DBContentItem, DBFilterKeyword, DBInteraction, DBSavedContent, DBSource
from feedhub.exceptions import NotFoundError, ValidationError
from feedhub.filter_service import FilterService, normalize_keyword
from feedhub.interaction_service import InteractionService, extract_keywords
from feedhub.models import InteractionType, ProviderType, Theme
from feedhub.preferences_service import PreferencesService
from feedhub.source_service import SourceService

from .conftest import add_content, add_source

USER = "user-1"


# =============================================================================
# Filters
# =============================================================================

class TestFilterService:
    """Test keyword block-list management."""

    @pytest.fixture
    def filters(self, db_session, feed_cache):
        return FilterService(db_session, feed_cache)

    def test_keywords_are_normalized(self, filters):
        row = filters.add_keyword(USER, "  Spoilers  ")

        assert row.keyword == "spoilers"
        assert normalize_keyword(" MiXeD ") == "mixed"

    def test_duplicate_keyword_is_rejected(self, filters):
        filters.add_keyword(USER, "spoilers")

        with pytest.raises(ValidationError) as exc_info:
            filters.add_keyword(USER, "SPOILERS")

        assert exc_info.value.errors[0]["field"] == "keyword"

    def test_same_keyword_for_different_users(self, filters):
        filters.add_keyword(USER, "spoilers")
        filters.add_keyword("user-2", "spoilers")

        assert len(filters.list_keywords(USER)) == 1
        assert len(filters.list_keywords("user-2")) == 1

    @pytest.mark.parametrize("keyword,is_wildcard", [("", False), ("   ", False), ("**", True)])
    def test_empty_keyword_is_rejected(self, filters, keyword, is_wildcard):
        with pytest.raises(ValidationError):
            filters.add_keyword(USER, keyword, is_wildcard=is_wildcard)

    def test_overlong_keyword_is_rejected(self, filters):
        with pytest.raises(ValidationError):
            filters.add_keyword(USER, "x" * 500)

    def test_remove_keyword(self, filters, db_session):
        row = filters.add_keyword(USER, "spoilers")

        filters.remove_keyword(USER, row.id)

        assert db_session.query(DBFilterKeyword).count() == 0

    def test_remove_other_users_keyword(self, filters):
        row = filters.add_keyword("user-2", "spoilers")

        with pytest.raises(NotFoundError):
            filters.remove_keyword(USER, row.id)


# =============================================================================
# Preferences
# =============================================================================

class TestPreferencesService:
    """Test preference defaults, updates and validation."""

    @pytest.fixture
    def preferences(self, db_session, feed_cache, test_settings):
        return PreferencesService(db_session, feed_cache, test_settings)

    def test_defaults_when_never_set(self, preferences, test_settings):
        prefs = preferences.get_preferences(USER)

        assert prefs.min_duration is None
        assert prefs.max_duration is None
        assert prefs.backlog_ratio == test_settings.default_backlog_ratio
        assert prefs.diversity_limit == test_settings.default_diversity_limit

    def test_partial_update(self, preferences):
        preferences.update_preferences(USER, {"backlog_ratio": 0.4})
        prefs = preferences.update_preferences(USER, {"diversity_limit": 5, "theme": "light"})

        assert prefs.backlog_ratio == 0.4
        assert prefs.diversity_limit == 5
        assert prefs.theme == Theme.LIGHT

    def test_duration_bounds_can_be_cleared(self, preferences):
        preferences.update_preferences(USER, {"min_duration": 60, "max_duration": 600})
        prefs = preferences.update_preferences(USER, {"max_duration": None})

        assert prefs.min_duration == 60
        assert prefs.max_duration is None

    def test_null_ratio_is_ignored(self, preferences):
        preferences.update_preferences(USER, {"backlog_ratio": 0.6})
        prefs = preferences.update_preferences(USER, {"backlog_ratio": None})

        assert prefs.backlog_ratio == 0.6

    @pytest.mark.parametrize("updates,field", [
        ({"backlog_ratio": 1.5}, "backlog_ratio"),
        ({"backlog_ratio": -0.1}, "backlog_ratio"),
        ({"diversity_limit": 0}, "diversity_limit"),
        ({"min_duration": -5}, "min_duration"),
        ({"theme": "neon"}, "theme"),
    ])
    def test_out_of_range_values(self, preferences, updates, field):
        with pytest.raises(ValidationError) as exc_info:
            preferences.update_preferences(USER, updates)

        assert [e["field"] for e in exc_info.value.errors] == [field]

    def test_min_above_max_is_rejected(self, preferences):
        with pytest.raises(ValidationError) as exc_info:
            preferences.update_preferences(USER, {"min_duration": 600, "max_duration": 60})

        assert exc_info.value.errors[0]["field"] == "min_duration"

    def test_min_above_existing_max_is_rejected(self, preferences):
        preferences.update_preferences(USER, {"max_duration": 60})

        with pytest.raises(ValidationError):
            preferences.update_preferences(USER, {"min_duration": 61})

        assert preferences.get_preferences(USER).min_duration is None


# =============================================================================
# Sources
# =============================================================================

class TestSourceService:
    """Test subscription management."""

    @pytest.fixture
    def sources(self, db_session, feed_cache, adapters):
        return SourceService(db_session, feed_cache, adapters)

    def test_add_source_uses_canonical_id(self, sources):
        source = sources.add_source(USER, ProviderType.RSS, "  Feed-A ")

        assert source.external_id == "feed-a"
        assert source.display_name == "Source Feed-A"
        assert source.last_fetch_status == "pending"

    def test_custom_display_name(self, sources):
        source = sources.add_source(USER, ProviderType.RSS, "feed-a", display_name="My feed")
        assert source.display_name == "My feed"

    def test_duplicate_source_is_rejected(self, sources):
        sources.add_source(USER, ProviderType.RSS, "feed-a")

        with pytest.raises(ValidationError):
            sources.add_source(USER, ProviderType.RSS, "FEED-A")

    def test_invalid_source_is_rejected(self, sources, rss_adapter):
        rss_adapter.invalid["nope"] = "Feed not found"

        with pytest.raises(ValidationError) as exc_info:
            sources.add_source(USER, ProviderType.RSS, "nope")

        assert exc_info.value.errors == [{"field": "external_id", "message": "Feed not found"}]

    def test_unsupported_provider_is_rejected(self, sources):
        with pytest.raises(ValidationError) as exc_info:
            sources.add_source(USER, ProviderType.TWITCH, "somestreamer")

        assert exc_info.value.errors[0]["field"] == "provider_type"

    def test_get_other_users_source(self, sources, db_session):
        source = add_source(db_session, user_id="user-2")

        with pytest.raises(NotFoundError):
            sources.get_source(USER, source.id)

    def test_update_source(self, sources, db_session):
        source = add_source(db_session, user_id=USER)

        updated = sources.update_source(USER, source.id, display_name=" Renamed ", is_muted=True, always_safe=True)

        assert updated.display_name == "Renamed"
        assert updated.is_muted is True
        assert updated.always_safe is True

    def test_blank_display_name_is_rejected(self, sources, db_session):
        source = add_source(db_session, user_id=USER)

        with pytest.raises(ValidationError):
            sources.update_source(USER, source.id, display_name="   ")

    def test_list_sources_counts(self, sources, db_session):
        source = add_source(db_session, user_id=USER, external_id="feed-a")
        watched = add_content(db_session, "a1", source="feed-a")
        add_content(db_session, "a2", source="feed-a")
        add_content(db_session, "other", source="feed-b")
        db_session.add(DBInteraction(user_id=USER, content_item_id=watched.id, type=InteractionType.WATCHED.value))
        db_session.commit()

        [response] = sources.list_sources(USER)

        assert response.id == source.id
        assert response.item_count == 2
        assert response.unseen_count == 1

    def test_remove_last_subscriber_deletes_content(self, sources, db_session):
        source = add_source(db_session, user_id=USER, external_id="feed-a")
        content = add_content(db_session, "a1", source="feed-a")
        db_session.add(DBInteraction(user_id=USER, content_item_id=content.id, type=InteractionType.SAVED.value))
        db_session.add(DBSavedContent(user_id=USER, content_item_id=content.id))
        db_session.commit()

        removed = sources.remove_source(USER, source.id)

        assert removed == 1
        assert db_session.query(DBSource).count() == 0
        assert db_session.query(DBContentItem).count() == 0
        assert db_session.query(DBInteraction).count() == 0
        assert db_session.query(DBSavedContent).count() == 0

    def test_remove_shared_source_keeps_content(self, sources, db_session):
        """Content stays while another user still subscribes to the same feed."""
        source = add_source(db_session, user_id=USER, external_id="feed-a")
        add_source(db_session, user_id="user-2", external_id="feed-a")
        add_content(db_session, "a1", source="feed-a")

        removed = sources.remove_source(USER, source.id)

        assert removed == 0
        assert db_session.query(DBContentItem).count() == 1

    def test_source_metadata(self, sources, db_session):
        source = add_source(db_session, user_id=USER, external_id="feed-a")

        metadata = sources.get_source_metadata(USER, source.id)

        assert metadata.display_name == "Source feed-a"


# =============================================================================
# Collections
# =============================================================================

class TestCollectionService:
    """Test collections of saved content."""

    @pytest.fixture
    def collections(self, db_session, feed_cache):
        return CollectionService(db_session, feed_cache)

    @pytest.fixture
    def interactions(self, db_session, feed_cache):
        return InteractionService(db_session, feed_cache)

    def test_create_and_list(self, collections, interactions, db_session):
        collection = collections.create_collection(USER, " Watch later ", color="#ff0000")
        content = add_content(db_session, "a1")
        interactions.save_content(USER, content.id, collection_id=collection.id)

        [listed] = collections.list_collections(USER)

        assert listed.name == "Watch later"
        assert listed.color == "#ff0000"
        assert listed.item_count == 1

    def test_duplicate_name_is_rejected(self, collections):
        collections.create_collection(USER, "Music")

        with pytest.raises(ValidationError) as exc_info:
            collections.create_collection(USER, "Music")

        assert exc_info.value.errors[0]["field"] == "name"

    def test_rename_to_existing_name(self, collections):
        collections.create_collection(USER, "Music")
        other = collections.create_collection(USER, "Talks")

        with pytest.raises(ValidationError):
            collections.update_collection(USER, other.id, name="Music")

    def test_delete_keeps_items_saved(self, collections, interactions, db_session):
        collection = collections.create_collection(USER, "Music")
        content = add_content(db_session, "a1")
        interactions.save_content(USER, content.id, collection_id=collection.id)

        collections.delete_collection(USER, collection.id)

        saved = interactions.get_saved(USER)
        assert len(saved) == 1
        assert saved[0].collection_id is None

    def test_move_saved_item(self, collections, interactions, db_session):
        music = collections.create_collection(USER, "Music")
        content = add_content(db_session, "a1")
        interactions.save_content(USER, content.id)

        moved = collections.move_saved_item(USER, content.id, music.id)

        assert moved.collection_id == music.id
        assert [s.content_item_id for s in interactions.get_saved(USER, collection_id=music.id)] == [content.id]

    def test_move_unsaved_item(self, collections, db_session):
        content = add_content(db_session, "a1")

        with pytest.raises(NotFoundError):
            collections.move_saved_item(USER, content.id, None)

    def test_other_users_collection(self, collections):
        collection = collections.create_collection("user-2", "Music")

        with pytest.raises(NotFoundError):
            collections.get_collection(USER, collection.id)


# =============================================================================
# Interactions
# =============================================================================

class TestInteractionService:
    """Test the interaction ledger."""

    @pytest.fixture
    def interactions(self, db_session, feed_cache):
        return InteractionService(db_session, feed_cache)

    def test_repeat_interaction_updates_single_row(self, interactions, db_session):
        content = add_content(db_session, "a1")

        first = interactions.record_watch(USER, content.id, watch_duration=30, completion_rate=0.1)
        first_timestamp = first.timestamp
        second = interactions.record_watch(USER, content.id, watch_duration=300, completion_rate=0.9)

        assert db_session.query(DBInteraction).count() == 1
        assert second.watch_duration == 300
        assert second.completion_rate == 0.9
        assert second.timestamp >= first_timestamp

    def test_different_types_are_separate_rows(self, interactions, db_session):
        content = add_content(db_session, "a1")

        interactions.record_watch(USER, content.id)
        interactions.save_content(USER, content.id)

        assert db_session.query(DBInteraction).count() == 2

    @pytest.mark.parametrize("kwargs", [
        {"watch_duration": -1},
        {"completion_rate": 1.5},
        {"completion_rate": -0.1},
    ])
    def test_invalid_watch_progress(self, interactions, db_session, kwargs):
        content = add_content(db_session, "a1")

        with pytest.raises(ValidationError):
            interactions.record_watch(USER, content.id, **kwargs)

    def test_unknown_content(self, interactions):
        with pytest.raises(NotFoundError):
            interactions.dismiss_content(USER, 12345)

    def test_save_into_unknown_collection(self, interactions, db_session):
        content = add_content(db_session, "a1")

        with pytest.raises(NotFoundError):
            interactions.save_content(USER, content.id, collection_id="missing")

    def test_unsave(self, interactions, db_session):
        content = add_content(db_session, "a1")
        interactions.save_content(USER, content.id, notes="for the weekend")

        interactions.unsave_content(USER, content.id)

        assert interactions.get_saved(USER) == []
        assert db_session.query(DBInteraction).count() == 0

    def test_unsave_not_saved(self, interactions, db_session):
        content = add_content(db_session, "a1")

        with pytest.raises(NotFoundError):
            interactions.unsave_content(USER, content.id)

    def test_block_extracts_keywords(self, interactions, db_session):
        content = add_content(db_session, "a1", title="The Ultimate Crypto Trading Guide for 2025")
        db_session.add(DBFilterKeyword(user_id=USER, keyword="crypto"))
        db_session.commit()

        added = interactions.block_content(USER, content.id, extract=True)

        assert added == ["ultimate", "trading", "guide", "2025"]
        stored = {row.keyword for row in db_session.query(DBFilterKeyword).all()}
        assert stored == {"crypto", "ultimate", "trading", "guide", "2025"}

    def test_block_without_extraction(self, interactions, db_session):
        content = add_content(db_session, "a1", title="Some title words")

        assert interactions.block_content(USER, content.id) == []
        assert db_session.query(DBFilterKeyword).count() == 0

    def test_history_is_newest_first_and_filterable(self, interactions, db_session):
        first = add_content(db_session, "a1")
        second = add_content(db_session, "a2")
        db_session.add(DBInteraction(user_id=USER, content_item_id=first.id, type="WATCHED",
                                     timestamp=datetime.utcnow() - timedelta(hours=2)))
        db_session.add(DBInteraction(user_id=USER, content_item_id=second.id, type="DISMISSED",
                                     timestamp=datetime.utcnow() - timedelta(hours=1)))
        db_session.commit()

        history = interactions.get_history(USER)
        watched = interactions.get_history(USER, InteractionType.WATCHED)

        assert [h.title for h in history] == ["Item a2", "Item a1"]
        assert [h.interaction.type for h in watched] == [InteractionType.WATCHED]

    def test_clear_history(self, interactions, db_session):
        content = add_content(db_session, "a1")
        interactions.record_watch(USER, content.id)
        interactions.dismiss_content(USER, content.id)

        assert interactions.clear_history(USER, InteractionType.WATCHED) == 1
        assert interactions.clear_history(USER) == 1
        assert db_session.query(DBInteraction).count() == 0


class TestExtractKeywords:
    """Test title keyword extraction."""

    def test_skips_short_and_stop_words(self):
        assert extract_keywords("How to make the best pasta at home") == ["best", "pasta", "home"]

    def test_limit_and_dedup(self):
        words = extract_keywords("alpha bravo alpha charlie delta echo foxtrot")
        assert words == ["alpha", "bravo", "charlie", "delta", "echo"]

    def test_empty_title(self):
        assert extract_keywords("") == []
