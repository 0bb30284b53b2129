"""
Tests for the Songsmith HTTP server (songsmith/server).

Runs the FastAPI app in-process with TestClient on the sample backend.

Tests:
- Health and root endpoints
- POST /api/run (JSON) and POST /api/run/stream (SSE)
- Quota enforcement (429 / error event)
- POST /api/approval
- Melody stream over a stored song
- Song and melody library endpoints, including per-user song access
"""

import json
import sqlite3

import pytest
from fastapi.testclient import TestClient

from songsmith.server.main import create_app, parse_args
from songsmith.server.session import GUEST_COOKIE, USER_ID_HEADER
from songsmith.services.quota import QuotaService


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def app(sample_settings, song_db):
    return create_app(settings=sample_settings, db=song_db)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def limited_app(app, song_db):
    """App with a one-run daily quota."""
    app.state.quota = QuotaService(song_db, limit=1)
    return app


def sse_events(response):
    """Decode a text/event-stream body into event dicts."""
    return [
        json.loads(line[len("data: "):])
        for line in response.text.splitlines()
        if line.startswith("data: ")
    ]


def create_song(client, emotion="sad", user_id=None):
    headers = {USER_ID_HEADER: user_id} if user_id else None
    response = client.post("/api/run", json={"lyrics": "text", "emotion": emotion}, headers=headers)
    assert response.status_code == 200
    return response.json()["songId"]


# ============================================================================
# HEALTH
# ============================================================================

class TestHealth:
    """Tests for the health and root endpoints."""

    def test_health(self, client):
        """Test health reports the sample backend."""
        response = client.get("/api/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["backend"] == "sample"
        assert body["version"]

    def test_health_live_backend(self, settings_manager, song_db):
        """Test the live backend is reported when sample mode is off."""
        client = TestClient(create_app(settings=settings_manager, db=song_db))
        assert client.get("/api/health").json()["backend"] == "live"

    def test_root(self, client):
        """Test the root endpoint names the server."""
        assert client.get("/").json()["name"] == "Songsmith Server"

    def test_parse_args_defaults(self):
        """Test CLI defaults."""
        args = parse_args([])
        assert (args.host, args.port, args.reload, args.log_level) == ("127.0.0.1", 8765, False, "info")


# ============================================================================
# LYRICS RUNS
# ============================================================================

class TestRun:
    """Tests for POST /api/run."""

    def test_run_persists_song(self, client, song_db):
        """Test a sample run returns the revised song and stores it."""
        response = client.post("/api/run", json={"lyrics": "text", "emotion": "sad"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["songStructure"]["title"] == "Sad Song (Revised)"
        assert body["creativeBrief"]["mood"] == "melancholic"
        assert body["iterationCount"] == 1
        assert body["evaluation"]["needsImprovement"] is False
        assert body["trace"]

        stored = song_db.get_song(body["songId"])
        assert stored["title"] == "Sad Song (Revised)"
        assert stored["inputEmotion"] == "sad"
        assert stored["iterationCount"] == 1

    def test_new_guest_gets_cookie(self, client):
        """Test an anonymous caller is issued a guest session cookie."""
        response = client.post("/api/run", json={"lyrics": "text", "emotion": "happy"})
        assert response.cookies.get(GUEST_COOKIE, "").startswith("guest_")

    def test_user_header_owns_song(self, client, song_db):
        """Test X-User-Id is recorded as the owner and no cookie is set."""
        response = client.post(
            "/api/run",
            json={"lyrics": "text", "emotion": "sad"},
            headers={USER_ID_HEADER: "user_1"},
        )

        assert GUEST_COOKIE not in response.cookies
        assert song_db.get_song(response.json()["songId"])["userId"] == "user_1"

    @pytest.mark.parametrize("body", [
        {"lyrics": "", "emotion": "sad"},
        {"lyrics": "text"},
        {"lyrics": "text", "emotion": "sad", "language": "fr"},
    ])
    def test_invalid_input(self, client, body):
        """Test malformed requests are rejected with 422."""
        assert client.post("/api/run", json=body).status_code == 422

    def test_failed_run_returns_trace(self, client, sample_settings, song_db):
        """Test a guardrail failure maps to 500 with the trace."""
        sample_settings.save_settings({
            "preferences": {"use_sample_backend": True},
            "guardrails": {"lyrics": {"max_tool_calls": 1}},
        })

        response = client.post("/api/run", json={"lyrics": "text", "emotion": "sad"})

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Max tool calls (1) exceeded"
        assert body["trace"]
        assert song_db.count_songs() == 0

    def test_save_failure_is_reported(self, client, song_db, monkeypatch):
        """Test a database error while saving returns a structured 500."""
        def broken_save(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(song_db, "save_song", broken_save)

        response = client.post("/api/run", json={"lyrics": "text", "emotion": "sad"})

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Failed to save song: database is locked"
        assert body["songStructure"]["title"] == "Sad Song (Revised)"
        assert "songId" not in body


class TestRunStream:
    """Tests for POST /api/run/stream."""

    def test_event_sequence(self, client, song_db):
        """Test the stream starts, reports progress, completes and saves."""
        response = client.post("/api/run/stream", json={"lyrics": "text", "emotion": "sad"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")

        events = sse_events(response)
        types = [event["type"] for event in events]
        assert types[0] == "run_started"
        assert events[0]["workflow"] == "lyrics"
        assert "progress" in types
        assert types[-2:] == ["complete", "saved"]

        complete = events[-2]
        assert complete["success"] is True
        assert complete["songStructure"]["title"] == "Sad Song (Revised)"
        assert song_db.get_song(events[-1]["songId"]) is not None

    def test_progress_reports_tool_calls(self, client):
        """Test each tool call is announced with its tool id."""
        events = sse_events(client.post("/api/run/stream", json={"lyrics": "text", "emotion": "sad"}))

        tool_ids = [
            event["toolId"]
            for event in events
            if event["type"] == "progress"
            and event["phase"] == "tool_call"
            and event["message"].startswith("Running:")
        ]
        assert tool_ids == ["generate-song-structure", "evaluate-lyrics", "improve-lyrics", "evaluate-lyrics"]

    def test_failed_run_emits_error(self, client, sample_settings, song_db):
        """Test a failed run ends with an error event and nothing is saved."""
        sample_settings.save_settings({
            "preferences": {"use_sample_backend": True},
            "guardrails": {"lyrics": {"max_steps": 1}},
        })

        events = sse_events(client.post("/api/run/stream", json={"lyrics": "text", "emotion": "sad"}))

        assert events[-1]["type"] == "error"
        assert events[-1]["error"] == "Max steps (1) exceeded"
        assert song_db.count_songs() == 0


class TestQuota:
    """Tests for quota enforcement on the run routes."""

    def test_run_over_quota(self, limited_app):
        """Test the second run of the day is refused with 429."""
        client = TestClient(limited_app)
        headers = {USER_ID_HEADER: "user_1"}

        first = client.post("/api/run", json={"lyrics": "text", "emotion": "sad"}, headers=headers)
        second = client.post("/api/run", json={"lyrics": "text", "emotion": "sad"}, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 429
        assert second.json() == {
            "success": False,
            "error": "Daily quota exceeded: 1/1 requests used",
            "limit": 1,
            "used": 1,
        }

    def test_stream_over_quota(self, limited_app):
        """Test a refused stream carries a single error event."""
        client = TestClient(limited_app)
        headers = {USER_ID_HEADER: "user_1"}
        client.post("/api/run", json={"lyrics": "text", "emotion": "sad"}, headers=headers)

        events = sse_events(
            client.post("/api/run/stream", json={"lyrics": "text", "emotion": "sad"}, headers=headers)
        )

        assert events == [{"type": "error", "error": "Quota exceeded: Daily quota exceeded: 1/1 requests used"}]

    def test_failed_run_not_counted(self, limited_app, sample_settings):
        """Test only successful runs use quota."""
        client = TestClient(limited_app)
        headers = {USER_ID_HEADER: "user_1"}
        sample_settings.save_settings({
            "preferences": {"use_sample_backend": True},
            "guardrails": {"lyrics": {"max_tool_calls": 1}},
        })

        assert client.post("/api/run", json={"lyrics": "text", "emotion": "sad"}, headers=headers).status_code == 500

        sample_settings.reset_to_defaults()
        sample_settings.set_preference("use_sample_backend", True)
        assert client.post("/api/run", json={"lyrics": "text", "emotion": "sad"}, headers=headers).status_code == 200

    def test_sample_backend_has_no_quota(self, client):
        """Test the default sample app never refuses."""
        for _ in range(7):
            assert client.post("/api/run", json={"lyrics": "text", "emotion": "sad"}).status_code == 200


# ============================================================================
# APPROVAL
# ============================================================================

class TestApproval:
    """Tests for POST /api/approval."""

    def test_unknown_id(self, client):
        """Test an unknown id is a 404 listing the pending ids."""
        response = client.post("/api/approval", json={"approvalId": "approval_x", "decision": "approve"})

        assert response.status_code == 404
        assert response.json() == {
            "error": "Approval request not found or already resolved",
            "approvalId": "approval_x",
            "availableIds": [],
        }

    def test_invalid_decision(self, client):
        """Test decisions outside approve/reject/regenerate are rejected."""
        response = client.post("/api/approval", json={"approvalId": "approval_x", "decision": "maybe"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_resolve_pending(self, app, client):
        """Test a pending request is resolved once and its waiter gets the decision."""
        store = app.state.approval_store
        request = store.create_request("generate-song-structure", {"title": "T"})

        first = client.post(
            "/api/approval",
            json={"approvalId": request.id, "decision": "regenerate", "feedback": "shorter chorus"},
        )
        second = client.post("/api/approval", json={"approvalId": request.id, "decision": "approve"})

        assert first.status_code == 200
        assert first.json() == {
            "success": True,
            "approvalId": request.id,
            "decision": "regenerate",
            "feedback": "shorter chorus",
        }
        assert second.status_code == 404

        decision = await store.wait_for_decision(request.id, timeout=1)
        assert decision.decision == "regenerate"
        assert decision.feedback == "shorter chorus"


# ============================================================================
# MELODIES
# ============================================================================

class TestMelodyStream:
    """Tests for POST /api/agents/melody/stream."""

    def test_unknown_song(self, client):
        """Test a missing song is reported as a single error event."""
        events = sse_events(client.post("/api/agents/melody/stream", json={"songId": "nope"}))
        assert events == [{"type": "error", "error": "Song not found"}]

    def test_melody_for_stored_song(self, client, song_db):
        """Test a melody is composed from the song's brief and stored."""
        song_id = create_song(client, emotion="sad")

        response = client.post("/api/agents/melody/stream", json={"songId": song_id, "tempo": 72})
        events = sse_events(response)

        assert events[0]["type"] == "run_started"
        assert events[0]["workflow"] == "melody"
        assert [event["type"] for event in events[-2:]] == ["complete", "saved"]

        complete = events[-2]
        assert complete["melodyStructure"]["key"] == "A minor"
        assert complete["melodyStructure"]["tempo"] == 72
        assert complete["evaluation"]["quality"] == 9.0
        assert complete["songStructure"]["title"] == "Sad Song (Revised)"

        melody = song_db.get_melody(events[-1]["melodyId"])
        assert melody["songId"] == song_id
        assert melody["tempo"] == 72

    def test_invalid_tempo(self, client):
        """Test tempo bounds are validated on the request."""
        response = client.post("/api/agents/melody/stream", json={"songId": "x", "tempo": 20})
        assert response.status_code == 422


class TestMelodyLibrary:
    """Tests for GET /api/melodies."""

    def test_list_by_song(self, client, song_db, melody_structure):
        """Test listing filters by songId."""
        first = create_song(client)
        second = create_song(client)
        song_db.save_melody(first, melody_structure)
        song_db.save_melody(first, melody_structure)
        song_db.save_melody(second, melody_structure)

        body = client.get("/api/melodies", params={"songId": first}).json()

        assert body["total"] == 2
        assert {melody["songId"] for melody in body["melodies"]} == {first}
        assert client.get("/api/melodies").json()["total"] == 3

    def test_get_melody(self, client, song_db, melody_structure):
        """Test one melody by id, and 404 for an unknown id."""
        melody_id = song_db.save_melody(create_song(client), melody_structure)

        assert client.get(f"/api/melodies/{melody_id}").json()["melody"]["key"] == "A minor"
        assert client.get("/api/melodies/nope").status_code == 404


# ============================================================================
# SONGS
# ============================================================================

class TestSongs:
    """Tests for the /api/songs endpoints."""

    def test_list_paginated(self, client):
        """Test newest-first listing with pagination metadata."""
        older = create_song(client, emotion="sad")
        newer = create_song(client, emotion="happy")

        body = client.get("/api/songs", params={"limit": 1}).json()

        assert [song["id"] for song in body["songs"]] == [newer]
        assert body["pagination"] == {"total": 2, "limit": 1, "offset": 0, "hasMore": True}

        body = client.get("/api/songs", params={"limit": 1, "offset": 1}).json()
        assert [song["id"] for song in body["songs"]] == [older]
        assert body["pagination"]["hasMore"] is False

    def test_sort_ascending(self, client):
        """Test order=asc returns the oldest first."""
        older = create_song(client)
        create_song(client)

        songs = client.get("/api/songs", params={"order": "asc"}).json()["songs"]
        assert songs[0]["id"] == older

    def test_bad_sort_field(self, client):
        """Test an unknown sort field is a 400."""
        response = client.get("/api/songs", params={"sortBy": "bogus"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot sort songs by: bogus"

    def test_get_and_delete(self, client):
        """Test a signed-in owner can fetch and delete their song once."""
        owner = {USER_ID_HEADER: "alice"}
        song_id = create_song(client, user_id="alice")

        assert client.get(f"/api/songs/{song_id}", headers=owner).json()["song"]["id"] == song_id
        assert client.delete(f"/api/songs/{song_id}", headers=owner).json() == {"success": True, "deleted": song_id}
        assert client.get(f"/api/songs/{song_id}", headers=owner).status_code == 404
        assert client.delete(f"/api/songs/{song_id}", headers=owner).status_code == 404

    def test_guest_reads_guest_song(self, client):
        """Test songs made without a user id stay readable by guests."""
        song_id = create_song(client)
        assert client.get(f"/api/songs/{song_id}").status_code == 200


class TestSongOwnership:
    """Tests for per-user access to stored songs."""

    def test_other_user_cannot_read(self, client):
        """Test another user's song is reported as missing."""
        song_id = create_song(client, user_id="alice")

        response = client.get(f"/api/songs/{song_id}", headers={USER_ID_HEADER: "mallory"})

        assert response.status_code == 404
        assert response.json()["detail"] == "Song not found"

    def test_guest_cannot_read_user_song(self, client):
        """Test a guest cannot read a signed-in user's song."""
        song_id = create_song(client, user_id="alice")
        assert client.get(f"/api/songs/{song_id}").status_code == 404

    def test_other_user_cannot_delete(self, client, song_db):
        """Test deleting another user's song is forbidden and keeps it."""
        song_id = create_song(client, user_id="alice")

        response = client.delete(f"/api/songs/{song_id}", headers={USER_ID_HEADER: "mallory"})

        assert response.status_code == 403
        assert song_db.get_song(song_id) is not None

    def test_guest_cannot_delete(self, client, song_db):
        """Test deletion requires a signed-in caller."""
        song_id = create_song(client)

        response = client.delete(f"/api/songs/{song_id}")

        assert response.status_code == 401
        assert song_db.get_song(song_id) is not None

    def test_delete_unknown_song(self, client):
        """Test a signed-in caller gets 404 for a missing song."""
        response = client.delete("/api/songs/nope", headers={USER_ID_HEADER: "alice"})
        assert response.status_code == 404
