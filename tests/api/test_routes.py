"""Integration tests for the HTTP surface: queue, students, admin, health."""
import pytest

import moderation_lab.api.deps.auth as _auth
import moderation_lab.api.deps.providers as _prov
from moderation_lab.api.jobs.models import JobStatus


async def _submit(client, email="alice@school.edu", instructions="Be strict", **extra):
    body = {"email": email, "instructions": instructions, **extra}
    return await client.post("/api/queue/submit", json=body)


# ── Health & scenarios ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "degraded"
    assert data["providers"] == ["openai"]
    assert data["queued"] == 0
    assert any("anthropic" in w for w in resp.json()["meta"]["warnings"])


@pytest.mark.asyncio
async def test_scenarios_hide_expected_labels(client):
    resp = await client.get("/api/queue/scenarios")
    assert resp.status_code == 200
    scenarios = resp.json()["data"]
    assert len(scenarios) == 10
    assert set(scenarios[0]) == {"id", "text"}


# ── Submit / status / cancel ─────────────────────────────────────────


@pytest.mark.asyncio
async def test_submit(client):
    resp = await _submit(client, email="  Alice@School.EDU ")
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["data"]["email"] == "alice@school.edu"
    assert body["data"]["provider"] == "openai"
    assert body["data"]["status"] == "processing"
    assert body["meta"]["provider"] == "openai"
    assert body["meta"]["queue_position"] == 1


@pytest.mark.asyncio
async def test_submit_claude_model(client):
    resp = await _submit(client, model="claude-3-haiku-20240307")
    assert resp.status_code == 200
    assert resp.json()["data"]["provider"] == "anthropic"


@pytest.mark.asyncio
async def test_submit_duplicate_conflict(client):
    await _submit(client)
    resp = await _submit(client)
    assert resp.status_code == 409
    assert resp.json()["ok"] is False
    assert resp.json()["code"] == "duplicate_submission"
    assert "already" in resp.json()["error"]


@pytest.mark.asyncio
async def test_submit_queue_full(client):
    _prov.get_queue_manager()._max_queue_size = 1
    await _submit(client, email="a@school.edu")
    resp = await _submit(client, email="b@school.edu")
    assert resp.status_code == 429
    assert resp.json()["ok"] is False
    assert resp.json()["code"] == "queue_full"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"email": "not-an-email", "instructions": "x"},
        {"email": "a@nodot", "instructions": "x"},
        {"email": "a@school.edu", "instructions": "   "},
        {"email": "a@school.edu", "instructions": ""},
        {"email": "a@school.edu"},
    ],
)
async def test_submit_validation(client, body):
    resp = await client.post("/api/queue/submit", json=body)
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_status(client):
    job_id = (await _submit(client)).json()["data"]["id"]
    resp = await client.get("/api/queue/status", params={"email": "ALICE@school.edu"})
    assert resp.status_code == 200
    assert resp.json()["data"]["id"] == job_id
    assert resp.json()["meta"]["queue_position"] == 1


@pytest.mark.asyncio
async def test_status_without_job(client):
    resp = await client.get("/api/queue/status", params={"email": "nobody@school.edu"})
    assert resp.status_code == 200
    assert resp.json()["data"] is None


@pytest.mark.asyncio
async def test_status_bad_email(client):
    resp = await client.get("/api/queue/status", params={"email": "bogus"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_job(client):
    job_id = (await _submit(client)).json()["data"]["id"]
    resp = await client.get(f"/api/queue/jobs/{job_id}")
    assert resp.status_code == 200
    assert resp.json()["data"]["id"] == job_id


@pytest.mark.asyncio
async def test_get_job_not_found(client):
    resp = await client.get("/api/queue/jobs/nonexistent")
    assert resp.status_code == 404
    assert resp.json()["ok"] is False
    assert resp.json()["code"] == "job_not_found"


@pytest.mark.asyncio
async def test_job_events_not_found(client):
    resp = await client.get("/api/queue/jobs/nonexistent/events")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_second_submission_waits_in_line(client):
    _prov.get_queue_manager().update_provider_config("openai", max_concurrent=1)
    await _submit(client, email="a@school.edu")
    resp = await _submit(client, email="b@school.edu")
    assert resp.json()["data"]["status"] == "queued"
    assert resp.json()["meta"]["queue_position"] == 2


@pytest.mark.asyncio
async def test_cancel_queued_submission(client):
    _prov.get_queue_manager().update_provider_config("openai", max_concurrent=1)
    await _submit(client, email="a@school.edu")
    await _submit(client, email="b@school.edu")

    resp = await client.post("/api/queue/cancel", json={"email": "b@school.edu"})
    assert resp.status_code == 200
    assert resp.json()["data"]["cancelled"] is True

    status = await client.get("/api/queue/status", params={"email": "b@school.edu"})
    assert status.json()["data"] is None


@pytest.mark.asyncio
async def test_cancel_running_submission_refused(client):
    await _submit(client)
    resp = await client.post("/api/queue/cancel", json={"email": "alice@school.edu"})
    assert resp.status_code == 200
    assert resp.json()["data"]["cancelled"] is False


@pytest.mark.asyncio
async def test_cancel_without_job(client):
    resp = await client.post("/api/queue/cancel", json={"email": "nobody@school.edu"})
    assert resp.status_code == 404


# ── Completed runs & students ────────────────────────────────────────


@pytest.mark.asyncio
async def test_completed_run_reaches_leaderboard(client, processor, wait_until):
    processor.gate.set()
    job_id = (await _submit(client, instructions="Dogs are fine; sales are not.")).json()["data"]["id"]
    manager = _prov.get_queue_manager()
    await wait_until(lambda: manager.get_job(job_id).status == JobStatus.completed)
    await _prov.get_score_recorder().drain()

    job = (await client.get(f"/api/queue/jobs/{job_id}")).json()["data"]
    assert len(job["results"]) == 10
    assert all(r["is_correct"] for r in job["results"])

    board = (await client.get("/api/students/leaderboard")).json()["data"]
    assert board == [{"email": "alice@school.edu", "highest_score": 10, "prompt_count": 1}]

    history = await client.get("/api/students/alice@school.edu/history")
    assert history.status_code == 200
    versions = history.json()["data"]["versions"]
    assert [v["text"] for v in versions] == ["Dogs are fine; sales are not."]
    assert versions[0]["score"] == 10


@pytest.mark.asyncio
async def test_history_unknown_student(client):
    resp = await client.get("/api/students/nobody@school.edu/history")
    assert resp.status_code == 404


# ── Admin: queue ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_admin_stats_and_jobs(client):
    await _submit(client)
    stats = (await client.get("/api/admin/queue/stats")).json()["data"]
    assert stats["total_processing"] == 1
    assert stats["providers"]["openai"]["active_workers"] == 1

    jobs = (await client.get("/api/admin/queue/jobs")).json()["data"]
    assert [j["email"] for j in jobs] == ["alice@school.edu"]


@pytest.mark.asyncio
async def test_admin_pause_and_resume(client):
    resp = await client.post("/api/admin/queue/pause", params={"provider": "openai"})
    assert resp.status_code == 200
    assert resp.json()["data"]["providers"]["openai"]["is_paused"] is True

    queued = (await _submit(client)).json()["data"]
    assert queued["status"] == "queued"

    resp = await client.post("/api/admin/queue/resume", params={"provider": "openai"})
    assert resp.json()["data"]["providers"]["openai"]["is_paused"] is False
    assert resp.json()["data"]["total_processing"] == 1


@pytest.mark.asyncio
async def test_admin_pause_all(client):
    resp = await client.post("/api/admin/queue/pause")
    providers = resp.json()["data"]["providers"]
    assert all(p["is_paused"] for p in providers.values())


@pytest.mark.asyncio
async def test_admin_pause_unknown_provider(client):
    resp = await client.post("/api/admin/queue/pause", params={"provider": "gemini"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_admin_cancel_job(client):
    await client.post("/api/admin/queue/pause")
    job_id = (await _submit(client)).json()["data"]["id"]
    resp = await client.post(f"/api/admin/queue/jobs/{job_id}/cancel")
    assert resp.json()["data"] == {"job_id": job_id, "cancelled": True}

    resp = await client.post(f"/api/admin/queue/jobs/{job_id}/cancel")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_admin_clear_finished(client, processor, wait_until):
    processor.gate.set()
    job_id = (await _submit(client)).json()["data"]["id"]
    manager = _prov.get_queue_manager()
    await wait_until(lambda: manager.get_job(job_id).status == JobStatus.completed)

    resp = await client.post("/api/admin/queue/clear")
    assert resp.json()["data"] == {"cleared": 1}
    assert (await client.get(f"/api/queue/jobs/{job_id}")).status_code == 404


# ── Admin: providers ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_admin_list_providers(client):
    data = (await client.get("/api/admin/providers")).json()["data"]
    assert set(data) == {"openai", "anthropic"}
    assert data["openai"]["available"] is True
    assert data["anthropic"]["available"] is False
    assert data["openai"]["paused"] is False
    assert data["openai"]["max_concurrent"] == 2


@pytest.mark.asyncio
async def test_admin_patch_provider(client):
    resp = await client.patch("/api/admin/providers/openai", json={"max_concurrent": 4, "cooldown_ms": 250})
    assert resp.status_code == 200
    assert resp.json()["data"]["max_concurrent"] == 4
    assert resp.json()["data"]["cooldown_ms"] == 250
    assert _prov.get_queue_manager().get_provider_config("openai").max_concurrent == 4


@pytest.mark.asyncio
async def test_admin_patch_provider_empty(client):
    resp = await client.patch("/api/admin/providers/openai", json={})
    assert resp.status_code == 422
    assert resp.json()["ok"] is False


@pytest.mark.asyncio
async def test_admin_patch_provider_out_of_range(client):
    resp = await client.patch("/api/admin/providers/openai", json={"max_concurrent": 0})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_admin_patch_unknown_provider(client):
    resp = await client.patch("/api/admin/providers/gemini", json={"max_concurrent": 2})
    assert resp.status_code == 404


# ── Admin: template ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_admin_template_roundtrip(client):
    current = (await client.get("/api/admin/template")).json()["data"]["template"]
    assert "{{STUDENT_PROMPT}}" in current

    new = "Judge the image using: {{STUDENT_PROMPT}}"
    resp = await client.put("/api/admin/template", json={"template": new})
    assert resp.status_code == 200
    assert (await client.get("/api/admin/template")).json()["data"]["template"] == new
    assert await _prov.get_score_store().get_prompt_template() == new


@pytest.mark.asyncio
async def test_admin_template_too_short(client):
    resp = await client.put("/api/admin/template", json={"template": "short"})
    assert resp.status_code == 422


# ── Auth ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_admin_requires_token(client, monkeypatch):
    monkeypatch.setattr(_auth, "TEACHER_AUTH_ENABLED", True)
    monkeypatch.setattr(_auth, "TEACHER_TOKEN", "classroom-secret")

    assert (await client.get("/api/admin/queue/stats")).status_code == 401
    bad = await client.get("/api/admin/queue/stats", headers={"Authorization": "Bearer wrong"})
    assert bad.status_code == 401

    bearer = await client.get(
        "/api/admin/queue/stats", headers={"Authorization": "Bearer classroom-secret"}
    )
    assert bearer.status_code == 200
    api_key = await client.get("/api/admin/queue/stats", headers={"X-API-Key": "classroom-secret"})
    assert api_key.status_code == 200

    # student endpoints stay open
    assert (await client.get("/api/queue/scenarios")).status_code == 200


@pytest.mark.asyncio
async def test_admin_rejects_when_token_unset(client, monkeypatch):
    monkeypatch.setattr(_auth, "TEACHER_AUTH_ENABLED", True)
    monkeypatch.setattr(_auth, "TEACHER_TOKEN", "")
    resp = await client.get("/api/admin/queue/stats", headers={"X-API-Key": "anything"})
    assert resp.status_code == 401
