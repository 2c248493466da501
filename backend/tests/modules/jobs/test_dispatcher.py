import time
from unittest.mock import patch

import httpx

from app.core.config import settings
from app.core.database import build_engine, create_tables
from app.core.errors import AllProvidersFailedError
from app.modules.billing.repository import UsageRecorder
from app.modules.credits.repository import CreditLedger
from app.modules.jobs.dispatcher import JobSweeper, process_one, run_job_now, sweep, trigger_process_one
from app.modules.jobs.repository import JobStore


def _funded(engine, identity="a@example.com", amount=10):
    CreditLedger(engine).set_balance(identity, amount)
    return identity


def test_process_one_with_empty_queue(engine, fake_router):
    assert process_one(engine, fake_router) == {"processed": 0}
    assert fake_router.calls == []


def test_process_one_runs_and_bills_job(engine, fake_router):
    identity = _funded(engine)
    job = JobStore(engine).create(identity, "si", {"skill": "summarize", "input": "Long notes"})

    outcome = process_one(engine, fake_router)

    assert outcome == {"processed": 1, "job_id": job["id"], "status": "succeeded"}
    stored = JobStore(engine).get(job["id"])
    assert stored["result"]["content"] == "Here is a short answer."
    assert stored["result"]["credits_used"] == 0.05
    assert stored["result"]["balance_after"] == 9.95
    request = fake_router.calls[0]["request"]
    assert request.system.startswith("You are a precise summarizer")
    events, _ = UsageRecorder(engine).list_usage(identity)
    assert len(events) == 1
    assert events[0]["billing_key"] == f"job:{job['id']}"


def test_job_fails_without_credits(engine, fake_router):
    job = JobStore(engine).create("broke@example.com", "si", {"input": "hello"})

    outcome = process_one(engine, fake_router)

    assert outcome["status"] == "failed"
    result = JobStore(engine).get(job["id"])["result"]
    assert result["error"] == "insufficient_credits"
    assert result["balance"] == 0
    assert fake_router.calls == []


def test_job_fails_when_providers_are_exhausted(engine, fake_router):
    identity = _funded(engine)
    fake_router.error = AllProvidersFailedError([("groq", "timeout"), ("openai", "500")])
    job = JobStore(engine).create(identity, "completion", {"prompt": "hello", "system": "be brief"})

    process_one(engine, fake_router)

    result = JobStore(engine).get(job["id"])["result"]
    assert result["error"] == "all_providers_failed"
    assert "timeout" in result["detail"]
    assert CreditLedger(engine).get_balance(identity)["balance_credits"] == 10


def test_unexpected_handler_error_fails_job(engine, fake_router):
    identity = _funded(engine)
    fake_router.error = RuntimeError("boom")
    job = JobStore(engine).create(identity, "si", {"input": "hello"})

    process_one(engine, fake_router)

    stored = JobStore(engine).get(job["id"])
    assert stored["status"] == "failed"
    assert stored["result"] == {"error": "internal_error", "detail": "boom"}


def test_unsupported_type_fails_job(engine, fake_router):
    job = JobStore(engine).create("a@example.com", "render", {})

    process_one(engine, fake_router)

    assert JobStore(engine).get(job["id"])["result"]["error"] == "unsupported_type"


def test_sweep_stops_when_queue_is_empty(engine, fake_router):
    identity = _funded(engine)
    for _ in range(2):
        JobStore(engine).create(identity, "si", {"input": "hello"})

    assert sweep(engine, fake_router, max_jobs=5) == {"processed": 2, "ticks": 3}


def test_sweep_is_bounded_per_tick(engine, fake_router):
    identity = _funded(engine)
    for _ in range(7):
        JobStore(engine).create(identity, "si", {"input": "hello"})

    with patch.object(settings, "JOB_SWEEP_MAX_PER_TICK", 5):
        assert sweep(engine, fake_router) == {"processed": 5, "ticks": 5}
    assert len(JobStore(engine).list_for_identity(identity, limit=100)[0]) == 7


def test_run_job_now_returns_claimed_job_untouched(engine, fake_router):
    identity = _funded(engine)
    job = JobStore(engine).create(identity, "si", {"input": "hello"})
    JobStore(engine).claim(job["id"])

    current = run_job_now(job["id"], engine, fake_router)

    assert current["status"] == "running"
    assert fake_router.calls == []


def test_trigger_runs_in_process_without_base_url(engine, fake_router):
    identity = _funded(engine)
    job = JobStore(engine).create(identity, "si", {"input": "hello"})

    with patch.object(settings, "JOB_TRIGGER_BASE_URL", ""):
        trigger_process_one(engine, fake_router, request_id="rid-1")

    assert JobStore(engine).get(job["id"])["status"] == "succeeded"


def test_trigger_posts_to_process_one_with_task_secret(engine, fake_router):
    with patch.object(settings, "JOB_TRIGGER_BASE_URL", "https://api.example.com/"), patch(
        "app.modules.jobs.dispatcher.httpx.post",
        return_value=httpx.Response(200, request=httpx.Request("POST", "https://api.example.com")),
    ) as mock_post:
        trigger_process_one(engine, fake_router, request_id="rid-2")

    url = mock_post.call_args.args[0]
    headers = mock_post.call_args.kwargs["headers"]
    assert url == "https://api.example.com/v1/admin/process-one"
    assert headers["X-Admin-Task"] == "test-task-secret"
    assert headers["X-Request-Id"] == "rid-2"


def test_trigger_swallows_http_errors(engine, fake_router):
    with patch.object(settings, "JOB_TRIGGER_BASE_URL", "https://api.example.com"), patch(
        "app.modules.jobs.dispatcher.httpx.post",
        side_effect=httpx.ConnectError("refused"),
    ):
        trigger_process_one(engine, fake_router)


def test_job_sweeper_drains_queue_in_background(tmp_path, fake_router):
    engine = build_engine(f"sqlite:///{tmp_path / 'jobs.db'}")
    create_tables(engine)
    identity = _funded(engine)
    job = JobStore(engine).create(identity, "si", {"input": "hello"})

    sweeper = JobSweeper(engine, lambda: fake_router, interval_seconds=0.01).start()
    try:
        deadline = time.monotonic() + 5
        while time.monotonic() < deadline and JobStore(engine).get(job["id"])["status"] != "succeeded":
            time.sleep(0.02)
    finally:
        sweeper.stop()
        engine.dispose()

    assert len(fake_router.calls) == 1


def test_sweep_continues_after_job_is_settled_mid_run(engine, fake_router):
    identity = _funded(engine)
    store = JobStore(engine)
    first = store.create(identity, "si", {"input": "first"})
    second = store.create(identity, "si", {"input": "second"})
    complete = fake_router.complete

    def settle_first_then_complete(request, provider=None):
        if len(fake_router.calls) == 0:
            store.patch(first["id"], status="failed", result={"error": "cancelled"})
        return complete(request, provider)

    with patch.object(fake_router, "complete", side_effect=settle_first_then_complete):
        outcome = sweep(engine, fake_router, max_jobs=5)

    assert outcome == {"processed": 2, "ticks": 3}
    assert store.get(first["id"])["status"] == "failed"
    assert store.get(first["id"])["result"] == {"error": "cancelled"}
    assert store.get(second["id"])["status"] == "succeeded"


def test_process_one_reports_status_of_job_settled_mid_run(engine, fake_router):
    identity = _funded(engine)
    store = JobStore(engine)
    job = store.create(identity, "si", {"input": "hello"})
    complete = fake_router.complete

    def settle_then_complete(request, provider=None):
        store.patch(job["id"], status="succeeded", result={"content": "manual"})
        return complete(request, provider)

    with patch.object(fake_router, "complete", side_effect=settle_then_complete):
        outcome = process_one(engine, fake_router)

    assert outcome == {"processed": 1, "job_id": job["id"], "status": "succeeded"}
    assert store.get(job["id"])["result"] == {"content": "manual"}
