"""
End-to-End API Tests
"""

from datetime import datetime, timedelta
from typing import List, Tuple

import httpx
import pytest
import pytest_asyncio

from motionswap.core.errors import ProviderError
from motionswap.services.error_classifier import ErrorClassifier
from motionswap.services.storage import GenerationDB
from tests.fixtures import SAMPLE_ANON_USER_ID, SAMPLE_USER_ID

pytestmark = pytest.mark.asyncio


class RecordingHost:
    """Execution host that records dispatches instead of enqueuing"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.dispatched: List[Tuple[int, str]] = []

    def dispatch(self, generation_id: int, run_id: str) -> str:
        if self.fail:
            raise ConnectionError("Redis unavailable")
        self.dispatched.append((generation_id, run_id))
        return run_id


def _headers(user_id: str = SAMPLE_USER_ID) -> dict:
    return {"X-User-Id": user_id}


def _submission(**overrides) -> dict:
    body = {
        "videoUrl": "https://blob.test/uploads/selfie.mp4",
        "characterImageUrl": "https://blob.test/characters/astronaut.png",
        "userId": SAMPLE_USER_ID,
        "characterName": "Astronaut",
    }
    body.update(overrides)
    return body


class TestGenerationAPI:
    """E2E tests for /api/generate and /api/generations"""

    @pytest.fixture
    def host(self):
        return RecordingHost()

    @pytest_asyncio.fixture
    async def client(self, test_db_session, host):
        """Create test client"""
        from motionswap.api.main import app
        from motionswap.api.routes.generations import get_execution_host
        from motionswap.models import get_db

        def override_get_db():
            yield test_db_session

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_execution_host] = lambda: host
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
        app.dependency_overrides.clear()

    async def test_submit_returns_before_running(self, client, host, test_db_session):
        response = await client.post("/api/generate", json=_submission(), headers=_headers())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Video generation started"
        assert data["runId"].startswith("run_")
        assert host.dispatched == [(data["generationId"], data["runId"])]

        generation = GenerationDB.get_generation(test_db_session, data["generationId"])
        assert generation.status == "processing"
        assert generation.user_id == SAMPLE_USER_ID

    async def test_submit_advances_pending_generation(self, client, host):
        created = await client.post(
            "/api/generations",
            json={"characterName": "Astronaut", "aspectRatio": "9:16"},
            headers=_headers(),
        )
        generation_id = created.json()["generationId"]

        response = await client.post(
            "/api/generate",
            json=_submission(generationId=generation_id),
            headers=_headers(),
        )

        assert response.status_code == 200
        assert response.json()["generationId"] == generation_id

    async def test_submit_missing_character_image(self, client, host, test_db_session):
        response = await client.post(
            "/api/generate",
            json=_submission(characterImageUrl=None),
            headers=_headers(),
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Video URL and character image URL are required"}
        assert host.dispatched == []
        assert GenerationDB.list_for_owner(test_db_session, SAMPLE_USER_ID) == []

    async def test_submit_without_user(self, client, host):
        response = await client.post("/api/generate", json=_submission(userId=None))

        assert response.status_code == 401
        assert response.json() == {"error": "User must be logged in"}
        assert host.dispatched == []

    async def test_submit_for_another_user(self, client, host):
        response = await client.post(
            "/api/generate",
            json=_submission(userId="user_someone_else"),
            headers=_headers(),
        )

        assert response.status_code == 401
        assert host.dispatched == []

    async def test_dispatch_failure_fails_generation(self, client, host, test_db_session):
        host.fail = True

        response = await client.post("/api/generate", json=_submission(), headers=_headers())

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to start video generation"}
        generations = GenerationDB.list_for_owner(test_db_session, SAMPLE_USER_ID)
        assert [g.status for g in generations] == ["failed"]
        assert generations[0].error_details["code"] == "DISPATCH_FAILED"

    async def test_list_includes_error_envelope(self, client, test_db_session):
        ok = GenerationDB.create_generation(
            test_db_session,
            user_id=SAMPLE_USER_ID,
            source_video_url="https://blob.test/a.mp4",
            character_image_url="https://blob.test/a.png",
        )
        GenerationDB.set_run_id(test_db_session, ok.id, "run_ok")
        GenerationDB.mark_completed(test_db_session, ok.id, "/blobs/generations/a.mp4")

        bad = GenerationDB.create_generation(
            test_db_session,
            user_id=SAMPLE_USER_ID,
            source_video_url="https://blob.test/b.mp4",
            character_image_url="https://blob.test/b.png",
        )
        envelope = ErrorClassifier().build_envelope(
            ProviderError("The input was rejected, no face detected", status_code=400, code="PROVIDER_REJECTED"),
            attempts=1,
        )
        GenerationDB.mark_failed(test_db_session, bad.id, envelope)

        response = await client.get("/api/generations", headers=_headers())

        assert response.status_code == 200
        assert "private" in response.headers["cache-control"]
        items = {g["id"]: g for g in response.json()["generations"]}
        assert items[ok.id]["status"] == "completed"
        assert items[ok.id]["video_url"] == "/blobs/generations/a.mp4"
        assert items[ok.id]["error"] is None
        assert items[bad.id]["status"] == "failed"
        assert items[bad.id]["error"]["code"] == "PROVIDER_REJECTED"
        assert items[bad.id]["error"]["kind"] == "provider_error"

    async def test_list_expires_stale_generations(self, client, test_db_session):
        generation = GenerationDB.create_generation(
            test_db_session,
            user_id=SAMPLE_USER_ID,
            source_video_url="https://blob.test/a.mp4",
            character_image_url="https://blob.test/a.png",
        )
        generation.created_at = datetime.utcnow() - timedelta(hours=1)
        generation.processing_started_at = generation.created_at
        test_db_session.commit()

        response = await client.get("/api/generations", headers=_headers())

        item = response.json()["generations"][0]
        assert item["status"] == "failed"
        assert item["error"]["code"] == "JOB_TIMEOUT"

    async def test_list_requires_identity(self, client):
        response = await client.get("/api/generations")

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    async def test_anonymous_identity(self, client):
        headers = {"X-Anonymous-User-Id": SAMPLE_ANON_USER_ID}
        created = await client.post("/api/generations", json={}, headers=headers)
        assert created.status_code == 200

        response = await client.get("/api/generations", headers=headers)
        assert [g["status"] for g in response.json()["generations"]] == ["uploading"]

    async def test_create_pending_rejects_unknown_aspect_ratio(self, client):
        response = await client.post(
            "/api/generations",
            json={"aspectRatio": "4:3"},
            headers=_headers(),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Request validation failed"

    async def test_patch_marks_upload_failure(self, client, test_db_session):
        created = await client.post("/api/generations", json={}, headers=_headers())
        generation_id = created.json()["generationId"]

        response = await client.patch(
            f"/api/generations/{generation_id}",
            json={"status": "failed", "errorMessage": "Upload failed: network error"},
            headers=_headers(),
        )

        assert response.status_code == 200
        generation = GenerationDB.get_generation(test_db_session, generation_id)
        assert generation.status == "failed"
        assert generation.completed_at is not None

        again = await client.patch(
            f"/api/generations/{generation_id}",
            json={"status": "failed"},
            headers=_headers(),
        )
        assert again.status_code == 409

    async def test_patch_rejects_other_statuses(self, client):
        created = await client.post("/api/generations", json={}, headers=_headers())
        generation_id = created.json()["generationId"]

        response = await client.patch(
            f"/api/generations/{generation_id}",
            json={"status": "completed"},
            headers=_headers(),
        )

        assert response.status_code == 400

    async def test_delete_is_owner_scoped(self, client, test_db_session):
        created = await client.post("/api/generations", json={}, headers=_headers())
        generation_id = created.json()["generationId"]

        other = await client.delete(
            f"/api/generations/{generation_id}",
            headers=_headers("user_someone_else"),
        )
        assert other.status_code == 404

        first = await client.delete(f"/api/generations/{generation_id}", headers=_headers())
        assert first.status_code == 200
        assert first.json() == {"success": True}

        second = await client.delete(f"/api/generations/{generation_id}", headers=_headers())
        assert second.status_code == 404
        assert second.json() == {"error": "Generation not found"}

        assert GenerationDB.get_generation(test_db_session, generation_id) is None

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
