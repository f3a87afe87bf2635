"""HTTP contract for /api/avatar."""
from sqlalchemy import update

from backend.core.database import get_db_session, subscriptions
from backend.core.errors import ProviderRejected, ProviderUnavailable
from backend.features.avatar.provider import ProviderStatus
from backend.features.entitlements.service import get_subscription, resolve_subscription

ALICE = {"X-User-Id": "user_alice"}
BOB = {"X-User-Id": "user_bob"}


def _generate(client, headers=ALICE, **overrides):
    body = {"script": "Hello there, welcome to the demo", "voice": "en-US-JennyNeural", "name": "Demo"}
    body.update(overrides)
    return client.post("/api/avatar/generate", json=body, headers=headers)


def test_generate_returns_job(client, fake_provider):
    response = _generate(client, avatarStyle="business", background={"color": "#000000FF"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "pending"
    assert data["id"] == fake_provider.submitted[0].job_id
    assert fake_provider.submitted[0].avatar_style == "business"
    assert fake_provider.submitted[0].background_color == "#000000FF"
    assert get_subscription("user_alice").videos_generated == 1


def test_generate_requires_identity(client, fake_provider):
    response = _generate(client, headers={})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "unauthorized"
    assert fake_provider.submitted == []


def test_generate_missing_script_is_400(client):
    response = client.post("/api/avatar/generate", json={"voice": "v"}, headers=ALICE)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "validation_error"


def test_quota_denial_body(client, fake_provider):
    resolve_subscription("user_alice")
    with get_db_session() as session:
        session.execute(
            update(subscriptions).where(subscriptions.c.user_id == "user_alice").values(videos_generated=5)
        )

    response = _generate(client)

    assert response.status_code == 403
    body = response.json()
    assert body["message"] == "Monthly limit reached"
    assert body["currentUsage"] == 5
    assert body["limit"] == 5
    assert body["planType"] == "free"
    assert body["error"]["code"] == "quota_exceeded"
    assert fake_provider.submitted == []


def test_length_denial_body(client):
    response = _generate(client, script=" ".join(["word"] * 75))
    assert response.status_code == 403
    body = response.json()
    assert body["error"]["code"] == "length_limit_exceeded"
    assert body["estimatedLength"] == 30
    assert body["limit"] == 30
    assert body["currentUsage"] == 0


def test_provider_rejection_is_passed_through(client, fake_provider):
    fake_provider.submit_error = ProviderRejected(
        "Video provider rejected the request", details="Voice not found", upstream_status=400
    )
    response = _generate(client, voice="voice1")
    assert response.status_code == 400
    assert response.json()["details"] == "Voice not found"
    assert client.get("/api/avatar/jobs", headers=ALICE).json()["count"] == 0


def test_provider_outage_is_5xx(client, fake_provider):
    fake_provider.submit_error = ProviderUnavailable("Video provider unavailable", upstream_status=503)
    response = _generate(client)
    assert response.status_code == 503
    assert response.json()["error"]["code"] == "provider_unavailable"


def test_status_refreshes_from_provider(client, fake_provider):
    job_id = _generate(client).json()["data"]["id"]
    fake_provider.statuses[job_id] = ProviderStatus(
        job_id=job_id, raw_status="Succeeded", result_url="https://cdn.example.test/a.mp4"
    )

    response = client.get(f"/api/avatar/status/{job_id}", headers=ALICE)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "completed"
    assert data["progress"] == 100
    assert data["videoUrl"] == "https://cdn.example.test/a.mp4"
    assert data["completedDate"] is not None


def test_status_of_someone_elses_job_is_403(client, fake_provider):
    job_id = _generate(client).json()["data"]["id"]
    response = client.get(f"/api/avatar/status/{job_id}", headers=BOB)
    assert response.status_code == 403
    assert response.json()["message"] == "Forbidden"
    assert fake_provider.fetch_calls == 0


def test_status_of_unknown_job_is_404(client):
    response = client.get("/api/avatar/status/does-not-exist", headers=ALICE)
    assert response.status_code == 404
    assert response.json()["message"] == "Video not found"


def test_jobs_lists_only_callers_jobs(client):
    _generate(client, name="first")
    _generate(client, name="second")
    _generate(client, headers=BOB)

    body = client.get("/api/avatar/jobs", headers=ALICE).json()
    assert body["count"] == 2
    assert {item["name"] for item in body["data"]} == {"first", "second"}
    assert all(item["progress"] == 10 for item in body["data"])


def test_complete_marks_job_done(client):
    job_id = _generate(client).json()["data"]["id"]
    response = client.post(f"/api/avatar/complete/{job_id}", headers=ALICE)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "completed"


def test_delete_and_legacy_delete(client, fake_provider):
    first = _generate(client).json()["data"]["id"]
    second = _generate(client).json()["data"]["id"]

    assert client.delete(f"/api/avatar/{first}", headers=ALICE).status_code == 200
    assert client.post(f"/api/avatar/delete/{second}", headers=ALICE).status_code == 200
    assert fake_provider.cancelled == [first, second]
    assert client.get("/api/avatar/jobs", headers=ALICE).json()["count"] == 0


def test_delete_someone_elses_job_is_403(client):
    job_id = _generate(client).json()["data"]["id"]
    assert client.delete(f"/api/avatar/{job_id}", headers=BOB).status_code == 403
    assert client.get("/api/avatar/jobs", headers=ALICE).json()["count"] == 1
