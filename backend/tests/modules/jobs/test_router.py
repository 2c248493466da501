from unittest.mock import patch

from app.core.config import settings
from app.modules.billing.repository import UsageRecorder
from app.modules.credits.repository import CreditLedger

USER = {"X-User-Email": "a@example.com"}


def test_si_job_is_processed_by_process_one(client, engine, fake_router, task_headers):
    CreditLedger(engine).set_balance("a@example.com", 10)

    with patch.object(settings, "JOB_EAGER_TRIGGER", False):
        created = client.post("/v1/jobs", json={"type": "si", "params": {"input": "Summarize this"}}, headers=USER)
    job_id = created.json()["job"]["id"]
    assert created.json()["job"]["status"] == "queued"

    processed = client.post("/v1/admin/process-one", headers=task_headers)
    fetched = client.get(f"/v1/jobs/{job_id}", headers=USER)

    assert processed.json() == {"processed": 1, "job_id": job_id, "status": "succeeded"}
    job = fetched.json()["job"]
    assert job["status"] == "succeeded"
    assert job["result"]["content"]
    events, _ = UsageRecorder(engine).list_usage("a@example.com")
    assert len(events) == 1
    assert events[0]["meta"] == {"job_id": job_id}


def test_eager_trigger_processes_job_in_background(client, engine, fake_router):
    CreditLedger(engine).set_balance("a@example.com", 10)

    with patch.object(settings, "JOB_EAGER_TRIGGER", True):
        created = client.post("/v1/jobs", json={"type": "si", "params": {"input": "hi"}}, headers=USER)

    job_id = created.json()["job"]["id"]
    assert client.get(f"/v1/jobs/{job_id}", headers=USER).json()["job"]["status"] == "succeeded"
    assert len(fake_router.calls) == 1


def test_create_rejects_unknown_type(client):
    response = client.post("/v1/jobs", json={"type": "render", "params": {}}, headers=USER)

    assert response.status_code == 400
    assert response.json()["error"] == "unsupported_type"


def test_run_job_synchronously(client, engine):
    CreditLedger(engine).set_balance("a@example.com", 1)

    response = client.post("/v1/jobs/run", json={"type": "si", "params": {"input": "hi"}}, headers=USER)

    assert response.status_code == 200
    body = response.json()
    assert body["mode"] == "sync"
    assert body["job"]["status"] == "succeeded"
    assert body["job"]["result"]["balance_after"] == 0.95


def test_other_callers_cannot_read_a_job(client, admin_headers):
    with patch.object(settings, "JOB_EAGER_TRIGGER", False):
        job_id = client.post("/v1/jobs", json={"type": "si", "params": {"input": "hi"}}, headers=USER).json()["job"]["id"]

    stranger = client.get(f"/v1/jobs/{job_id}", headers={"X-User-Email": "b@example.com"})
    admin = client.get(f"/v1/jobs/{job_id}", headers={**admin_headers, "X-User-Email": "ops@example.com"})

    assert stranger.status_code == 404
    assert stranger.json() == {"error": "not_found"}
    assert admin.status_code == 200


def test_list_jobs_for_caller(client):
    with patch.object(settings, "JOB_EAGER_TRIGGER", False):
        for _ in range(3):
            client.post("/v1/jobs", json={"type": "si", "params": {"input": "hi"}}, headers=USER)

    response = client.get("/v1/jobs", params={"limit": 2}, headers=USER)

    assert len(response.json()["items"]) == 2
    assert response.json()["next_cursor"] is not None


def test_patch_requires_admin_and_moves_forward(client, admin_headers):
    with patch.object(settings, "JOB_EAGER_TRIGGER", False):
        job_id = client.post("/v1/jobs", json={"type": "si", "params": {"input": "hi"}}, headers=USER).json()["job"]["id"]

    unauthorized = client.patch(f"/v1/jobs/{job_id}", json={"status": "failed"})
    patched = client.patch(f"/v1/jobs/{job_id}", json={"status": "failed", "result": {"error": "manual"}}, headers=admin_headers)
    backwards = client.patch(f"/v1/jobs/{job_id}", json={"status": "queued"}, headers=admin_headers)

    assert unauthorized.status_code == 401
    assert patched.json()["ok"] is True
    assert patched.json()["job"]["status"] == "failed"
    assert backwards.status_code == 409
    assert backwards.json()["error"] == "invalid_transition"


def test_process_one_requires_secret(client):
    response = client.post("/v1/admin/process-one", headers={"X-Admin-Task": "guess"})

    assert response.status_code == 403
    assert response.json() == {"error": "forbidden"}


def test_admin_key_alone_reads_a_job(client, admin_headers):
    with patch.object(settings, "JOB_EAGER_TRIGGER", False):
        job_id = client.post("/v1/jobs", json={"type": "si", "params": {"input": "hi"}}, headers=USER).json()["job"]["id"]

    response = client.get(f"/v1/jobs/{job_id}", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["job"]["id"] == job_id


def test_get_job_without_identity_or_admin_key(client):
    response = client.get("/v1/jobs/unknown")

    assert response.status_code == 400
    assert response.json() == {"error": "missing_email"}
