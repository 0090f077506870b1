"""
API tests through FastAPI's TestClient.

Database, cache, adapters and settings are swapped in through
dependency_overrides; the upstream auth layer is simulated with the
X-User-Id header.
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from feedhub.config import get_settings
from feedhub.database import get_db
from feedhub.dependencies import get_adapters, get_feed_cache, get_session_factory
from feedhub.exceptions import ProviderError, RateLimitedError
from feedhub.main import app

from .conftest import add_content, add_source, make_item

USER = "user-1"
HEADERS = {"X-User-Id": USER}


@pytest.fixture
def client(session_factory, feed_cache, adapters, test_settings):
    """Test client wired to the per-test database and fakes."""
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_feed_cache] = lambda: feed_cache
    app.dependency_overrides[get_adapters] = lambda: adapters
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_settings] = lambda: test_settings

    yield TestClient(app)

    app.dependency_overrides.clear()


def use_settings(test_settings, **updates):
    app.dependency_overrides[get_settings] = lambda: test_settings.model_copy(update=updates)


class TestAuthentication:
    """Test the user id requirement."""

    @pytest.mark.parametrize("method,path", [
        ("get", "/feed"),
        ("get", "/sources"),
        ("get", "/filters"),
        ("get", "/preferences"),
        ("get", "/history"),
        ("get", "/collections"),
    ])
    def test_missing_user_is_unauthorized(self, client, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 401

    def test_blank_user_is_unauthorized(self, client):
        response = client.get("/feed", headers={"X-User-Id": "  "})
        assert response.status_code == 401


class TestFeedEndpoints:
    """Test the feed read path end to end."""

    def test_subscribe_and_read_feed(self, client, db_session):
        response = client.post("/sources", json={"provider_type": "RSS", "external_id": "feed-a"}, headers=HEADERS)
        assert response.status_code == 201
        assert response.json()["last_fetch_status"] == "pending"

        add_content(db_session, "a1", source="feed-a")

        response = client.get("/feed", headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["items"][0]["original_id"] == "a1"
        assert data["items"][0]["is_new"] is True

    def test_limit_trims_response(self, client, db_session):
        add_source(db_session, external_id="feed-a")
        for i in range(3):
            add_content(db_session, f"a{i}", source="feed-a")

        response = client.get("/feed?limit=2", headers=HEADERS)

        assert response.json()["count"] == 2

    def test_dismiss_hides_item(self, client, db_session):
        add_source(db_session, external_id="feed-a")
        content = add_content(db_session, "a1", source="feed-a")
        assert client.get("/feed", headers=HEADERS).json()["count"] == 1

        response = client.post(f"/content/{content.id}/dismiss", json={"reason": "seen it"}, headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["type"] == "DISMISSED"

        assert client.get("/feed", headers=HEADERS).json()["count"] == 0

    def test_refresh(self, client, fake_redis):
        fake_redis.setex(f"feed:{USER}", 300, "[]")

        response = client.post("/feed/refresh", headers=HEADERS)

        assert response.status_code == 200
        assert f"feed:{USER}" not in fake_redis.store


class TestErrorMapping:
    """Test domain errors mapped to HTTP responses."""

    def test_unknown_source_is_404(self, client):
        response = client.get("/sources/does-not-exist", headers=HEADERS)
        assert response.status_code == 404

    def test_unsupported_provider_is_422(self, client):
        response = client.post(
            "/sources", json={"provider_type": "TWITCH", "external_id": "streamer"}, headers=HEADERS
        )

        assert response.status_code == 422
        assert response.json()["errors"][0]["field"] == "provider_type"

    def test_unknown_provider_type_is_422(self, client):
        response = client.post(
            "/sources", json={"provider_type": "MYSPACE", "external_id": "x"}, headers=HEADERS
        )
        assert response.status_code == 422

    def test_duplicate_keyword_is_422(self, client):
        client.post("/filters", json={"keyword": "spoilers"}, headers=HEADERS)

        response = client.post("/filters", json={"keyword": "Spoilers"}, headers=HEADERS)

        assert response.status_code == 422
        assert response.json()["errors"] == [{"field": "keyword", "message": "Keyword 'spoilers' already exists"}]

    def test_invalid_preferences_are_422_with_fields(self, client):
        response = client.put("/preferences", json={"backlog_ratio": 2, "diversity_limit": 3}, headers=HEADERS)

        assert response.status_code == 422
        assert [e["field"] for e in response.json()["errors"]] == ["backlog_ratio"]

    def test_interaction_on_unknown_content_is_404(self, client):
        response = client.post("/content/999/watch", json={}, headers=HEADERS)
        assert response.status_code == 404

    def test_provider_failure_is_502(self, client, db_session, rss_adapter):
        source = add_source(db_session, external_id="feed-a")
        rss_adapter.errors["feed-a"] = ProviderError("RSS", "HTTP 500")

        response = client.post(f"/sources/{source.id}/fetch", headers=HEADERS)

        assert response.status_code == 502
        db_session.expire_all()
        assert client.get(f"/sources/{source.id}", headers=HEADERS).json()["last_fetch_status"] == "error"

    def test_rate_limited_is_429(self, client, db_session, rss_adapter):
        source = add_source(db_session, external_id="feed-a")
        rss_adapter.errors["feed-a"] = RateLimitedError("RSS", retry_after=60)

        response = client.post(f"/sources/{source.id}/fetch", headers=HEADERS)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"


class TestSourceEndpoints:
    """Test source management over HTTP."""

    def test_fetch_one_source(self, client, db_session, rss_adapter):
        source = add_source(db_session, external_id="feed-a")
        rss_adapter.recent["feed-a"] = [make_item("a1")]

        response = client.post(f"/sources/{source.id}/fetch", headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"source_id": source.id, "new_items": 1}

    def test_fetch_other_users_source(self, client, db_session):
        source = add_source(db_session, user_id="user-2", external_id="feed-a")

        response = client.post(f"/sources/{source.id}/fetch", headers=HEADERS)

        assert response.status_code == 404

    def test_fetch_all_my_sources(self, client, db_session, rss_adapter):
        add_source(db_session, external_id="feed-1")
        add_source(db_session, external_id="feed-2")
        rss_adapter.errors["feed-2"] = ProviderError("RSS", "down")

        response = client.post("/sources/fetch", headers=HEADERS)

        assert response.status_code == 200
        stats = response.json()
        assert stats["total_sources"] == 2
        assert stats["success_count"] == 1
        assert stats["error_count"] == 1

    def test_mute_and_remove(self, client, db_session):
        source = add_source(db_session, external_id="feed-a")
        add_content(db_session, "a1", source="feed-a")

        response = client.patch(f"/sources/{source.id}", json={"is_muted": True}, headers=HEADERS)
        assert response.json()["is_muted"] is True

        response = client.delete(f"/sources/{source.id}", headers=HEADERS)
        assert response.json()["content_items_removed"] == 1
        assert client.get("/sources", headers=HEADERS).json() == []


class TestContentEndpoints:
    """Test saves, collections and history."""

    def test_save_into_collection_and_list(self, client, db_session):
        content = add_content(db_session, "a1")
        collection = client.post("/collections", json={"name": "Later"}, headers=HEADERS).json()

        response = client.post(
            f"/content/{content.id}/save",
            json={"collection_id": collection["id"], "notes": "weekend"},
            headers=HEADERS,
        )
        assert response.status_code == 200

        saved = client.get("/saved", headers=HEADERS).json()
        assert [s["content_item_id"] for s in saved] == [content.id]
        assert saved[0]["notes"] == "weekend"

        collections = client.get("/collections", headers=HEADERS).json()
        assert collections[0]["item_count"] == 1

    def test_move_between_collections(self, client, db_session):
        content = add_content(db_session, "a1")
        client.post(f"/content/{content.id}/save", headers=HEADERS)
        collection = client.post("/collections", json={"name": "Music"}, headers=HEADERS).json()

        response = client.put(
            f"/saved/{content.id}/collection", json={"collection_id": collection["id"]}, headers=HEADERS
        )

        assert response.json()["collection_id"] == collection["id"]

    def test_block_with_keyword_extraction(self, client, db_session):
        content = add_content(db_session, "a1", title="Crypto trading secrets")

        response = client.post(f"/content/{content.id}/block", json={"extract_keywords": True}, headers=HEADERS)

        assert response.json()["keywords_added"] == ["crypto", "trading", "secrets"]
        keywords = [k["keyword"] for k in client.get("/filters", headers=HEADERS).json()]
        assert sorted(keywords) == ["crypto", "secrets", "trading"]

    def test_history_by_type(self, client, db_session):
        content = add_content(db_session, "a1")
        client.post(f"/content/{content.id}/watch", json={"completion_rate": 0.5}, headers=HEADERS)
        client.post(f"/content/{content.id}/not-now", headers=HEADERS)

        watched = client.get("/history?type=WATCHED", headers=HEADERS).json()
        everything = client.get("/history", headers=HEADERS).json()

        assert len(watched) == 1
        assert watched[0]["interaction"]["completion_rate"] == 0.5
        assert len(everything) == 2

        response = client.delete("/history?type=NOT_NOW", headers=HEADERS)
        assert response.json()["deleted"] == 1


class TestCron:
    """Test the scheduler endpoint and its shared secret."""

    def test_requires_secret_when_configured(self, client, test_settings):
        use_settings(test_settings, cron_secret="s3cret")

        assert client.post("/cron/fetch-content").status_code == 401
        assert client.post("/cron/fetch-content", headers={"Authorization": "Bearer wrong"}).status_code == 401

        response = client.post("/cron/fetch-content", headers={"Authorization": "Bearer s3cret"})
        assert response.status_code == 200
        assert response.json()["total_sources"] == 0

    def test_open_in_development_without_secret(self, client, test_settings):
        use_settings(test_settings, cron_secret=None, environment="development")

        assert client.post("/cron/fetch-content").status_code == 200

    def test_misconfigured_in_production(self, client, test_settings):
        use_settings(test_settings, cron_secret=None, environment="production")

        assert client.post("/cron/fetch-content").status_code == 500

    def test_returns_stats(self, client, db_session, rss_adapter, test_settings):
        use_settings(test_settings, cron_secret=None, environment="development")
        add_source(db_session, user_id="user-1", external_id="feed-1")
        add_source(db_session, user_id="user-2", external_id="feed-2")
        rss_adapter.recent["feed-1"] = [make_item("x", source="feed-1")]

        stats = client.post("/cron/fetch-content").json()

        assert stats["total_sources"] == 2
        assert stats["success_count"] == 2
        assert stats["new_items_count"] == 1


class TestHealth:
    def test_health(self, client):
        with patch("feedhub.main.check_cache_health", return_value={"cache_connected": False}):
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["cache_connected"] is False
