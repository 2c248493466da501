from app.modules.billing.pricing import credits_for_tokens, estimate_tokens
from app.modules.billing.service import charge_usage, ensure_funds
from app.modules.si.skills import build_completion_request


def run_completion_job(job: dict, engine, router) -> dict:
    """Run one billed completion for a job and return its result payload.

    Raises AppError subclasses for failures the dispatcher stores on the job.
    """
    params = job.get("params") or {}
    request = build_completion_request(params)

    estimated_cost = credits_for_tokens(estimate_tokens(request.system + request.prompt), 0)
    ensure_funds(job["identity"], estimated_cost, engine=engine)

    result = router.complete(request, provider=params.get("provider"))
    charge = charge_usage(
        identity=job["identity"],
        route=f"job:{job['type']}",
        result=result,
        meta={"job_id": job["id"]},
        billing_key=f"job:{job['id']}",
        engine=engine,
    )

    return {
        "content": result.text,
        "provider": result.provider,
        "model": result.model,
        "tokens_in": result.tokens_in,
        "tokens_out": result.tokens_out,
        "credits_used": charge["cost"],
        "balance_after": charge["balance"]["balance_credits"],
    }
