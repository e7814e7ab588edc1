"""
HTTP API tests.

The app runs in-process over httpx's ASGI transport with the coordinator
and publisher dependencies pointed at the test database.
"""

import httpx
import pytest

from ideabank.dependencies import get_coordinator, get_publisher
from ideabank.main import app


@pytest.fixture
async def client(coordinator, publisher):
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    app.dependency_overrides[get_publisher] = lambda: publisher
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


@pytest.fixture
async def idle_client(coordinator):
    """API without a running publisher (PUBLISHER_ENABLED off)."""
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    app.dependency_overrides[get_publisher] = lambda: None
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


async def capture(client, quote="Stop trying to get rid of the tension.", **extra):
    response = await client.post("/ideas", json={"quote": quote, **extra})
    assert response.status_code == 201
    return response.json()["id"]


# =============================================================================
# IDEAS
# =============================================================================

class TestIdeasApi:

    async def test_capture_and_get(self, client):
        idea_id = await capture(client, tags=["Stoicism"])
        response = await client.get(f"/ideas/{idea_id}")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "new"
        assert body["tags"] == ["stoicism"]
        assert body["contents"] == []

    async def test_capture_converts_to_utc(self, client):
        idea_id = await capture(client, captured_at="2026-03-02T09:00:00+02:00")
        body = (await client.get(f"/ideas/{idea_id}")).json()
        assert body["captured_at"] == "2026-03-02T07:00:00"

    async def test_idempotent_capture(self, client):
        first = await client.post("/ideas", json={"quote": "q", "idempotency_key": "k1"})
        again = await client.post("/ideas", json={"quote": "q", "idempotency_key": "k1"})
        assert again.json() == {"id": first.json()["id"], "created": False}

    async def test_list_in_id_order(self, client):
        ids = [await capture(client, quote) for quote in ("a", "b", "c")]
        body = (await client.get("/ideas")).json()
        assert [i["id"] for i in body["ideas"]] == ids

    async def test_list_filters(self, client):
        a = await capture(client, "a", tags=["x"])
        await capture(client, "b")
        await client.post(f"/ideas/{a}/hold", json={"reason": "unclear"})

        by_tag = (await client.get("/ideas", params={"tag": "x"})).json()
        assert [i["id"] for i in by_tag["ideas"]] == [a]
        by_status = (await client.get("/ideas", params={"status": "On hold"})).json()
        assert [i["id"] for i in by_status["ideas"]] == [a]

    async def test_links_and_related(self, client):
        a = await capture(client, "a")
        b = await capture(client, "b")
        response = await client.post(f"/ideas/{a}/links/{b}")
        assert response.json()["cross_refs"] == [b]
        related = (await client.get(f"/ideas/{b}/related")).json()
        assert [i["id"] for i in related["ideas"]] == [a]

    async def test_organize_and_derive(self, client):
        idea_id = await capture(client)
        response = await client.post(f"/ideas/{idea_id}/organize", json={"chapter": "Chapter 1"})
        assert response.json()["chapter"] == "Chapter 1"

        response = await client.post(f"/ideas/{idea_id}/derive", json={"channels": ["twitter"]})
        assert [d["channel"] for d in response.json()["drafts"]] == ["twitter"]
        assert (await client.get(f"/ideas/{idea_id}")).json()["status"] == "in_creation"

    async def test_history(self, client):
        idea_id = await capture(client)
        await client.post(f"/ideas/{idea_id}/chapter", json={"chapter": "Chapter 1"})
        await client.post(f"/ideas/{idea_id}/organize")
        body = (await client.get(f"/ideas/{idea_id}/history")).json()
        assert body["status_walk"] == ["new", "organizing"]
        assert len(body["chapters"]) == 1

    async def test_import(self, client):
        markdown = "## 2026-02-02\n\n### #001 - 06:42 AM\n**Quote:** \"Imported\"\n"
        response = await client.post("/ideas/import", content=markdown.encode("utf-8"))
        assert response.json()["created"] == [1]

    async def test_stats(self, client):
        await capture(client)
        body = (await client.get("/ideas/stats")).json()
        assert body["total"] == 1
        assert "streak" in body


# =============================================================================
# ERROR MAPPING
# =============================================================================

class TestErrors:

    async def test_not_found(self, client):
        response = await client.get("/ideas/999")
        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    async def test_validation(self, client):
        response = await client.post("/ideas", json={"quote": "   "})
        assert response.status_code == 400

    async def test_import_rejects_non_utf8(self, client):
        response = await client.post("/ideas/import", content=b"\xff\xfe")
        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"

    async def test_invalid_transition(self, client):
        idea_id = await capture(client)
        response = await client.post(f"/ideas/{idea_id}/seal")
        assert response.status_code == 409
        assert response.json()["error"] == "InvalidTransitionError"

    async def test_cross_reference(self, client):
        idea_id = await capture(client)
        response = await client.post(f"/ideas/{idea_id}/links/77")
        assert response.status_code == 409
        assert response.json()["error"] == "CrossReferenceError"

    async def test_duplicate_publish(self, client, drafted_idea):
        _, (content,) = await drafted_idea()
        assert (await client.post(f"/content/{content.id}/publish")).status_code == 200
        response = await client.post(f"/content/{content.id}/publish")
        assert response.status_code == 409
        assert response.json()["error"] == "DuplicateChannelPublishError"


# =============================================================================
# CONTENT AND ALERTS
# =============================================================================

class TestContentApi:

    async def test_schedule_converts_to_utc(self, client, drafted_idea):
        _, (content,) = await drafted_idea()
        response = await client.post(
            f"/content/{content.id}/schedule", json={"at": "2026-03-02T12:00:00+02:00"}
        )
        assert response.status_code == 200
        assert response.json()["scheduled_at"] == "2026-03-02T10:00:00"

    async def test_cancel(self, client, drafted_idea):
        _, (content,) = await drafted_idea()
        await client.post(f"/content/{content.id}/publish")
        response = await client.post(f"/content/{content.id}/cancel")
        assert response.json()["lifecycle"] == "drafted"

    async def test_publish_without_publisher(self, idle_client, drafted_idea):
        _, (content,) = await drafted_idea()
        response = await idle_client.post(f"/content/{content.id}/publish")
        assert response.json()["lifecycle"] == "queued"

    async def test_queue_overview(self, client):
        body = (await client.get("/content/queue")).json()
        assert {row["channel"] for row in body["channels"]} == {
            "twitter", "threads", "substack", "book-section",
        }

    async def test_failed_publish_alert_flow(self, client, publisher, clients, drafted_idea):
        _, (content,) = await drafted_idea(channels=("threads",))
        clients["threads"].script("x", "x")
        await client.post(f"/content/{content.id}/publish")
        await publisher.dispatch("threads")

        alerts = (await client.get("/alerts", params={"unacknowledged": True})).json()
        assert alerts["unread"] == 1
        alert_id = alerts["alerts"][0]["id"]

        acked = await client.post(f"/alerts/{alert_id}/ack")
        assert acked.json()["acknowledged_at"] is not None

        retry = await client.post(f"/content/{content.id}/redraft")
        assert retry.status_code == 201
        assert retry.json()["retry_of_id"] == content.id


# =============================================================================
# REPORTS
# =============================================================================

class TestReportsApi:

    async def test_chapter_report(self, client, drafted_idea):
        await drafted_idea()
        body = (await client.get("/reports/chapters")).json()
        assert body["chapters"][0]["name"] == "Chapter 1"

        markdown = await client.get("/reports/chapters.md")
        assert markdown.text.startswith("---\n")

    async def test_archive_sweep(self, client, coordinator, drafted_idea):
        idea_id, (content,) = await drafted_idea()
        await client.post(f"/content/{content.id}/waive", json={"reason": "skip"})
        body = (await client.post("/reports/archive-sweep")).json()
        assert body == {"sealed": [idea_id], "count": 1}
