def test_healthz(client):
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ready_checks_database(client):
    response = client.get("/ready")

    assert response.status_code == 200
    assert response.json()["database"] is True


def test_request_id_is_echoed_or_generated(client):
    echoed = client.get("/healthz", headers={"X-Request-Id": "abc-123"})
    generated = client.get("/healthz")

    assert echoed.headers["X-Request-Id"] == "abc-123"
    assert len(generated.headers["X-Request-Id"]) == 32


def test_errors_carry_request_id(client):
    response = client.get("/v1/credits", headers={"X-Request-Id": "err-1"})

    assert response.status_code == 400
    assert response.headers["X-Request-Id"] == "err-1"
