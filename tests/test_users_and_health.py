from theme_api.services import tier_service


def test_health_endpoints(client):
    assert client.get("/api/health").json() == {"status": "ok"}
    assert client.get("/healthz").json() == {"ok": True}
    r = client.get("/readyz")
    assert r.status_code == 200
    body = r.json()
    assert body["database"] == "ok"
    assert body["routers"]["themes"] is True


def test_request_id_generated_and_echoed(client):
    r = client.get("/api/health")
    assert r.headers["X-Request-ID"]
    r = client.get("/api/health", headers={"X-Request-ID": "trace-abc"})
    assert r.headers["X-Request-ID"] == "trace-abc"


def test_error_envelope_carries_request_id(client):
    r = client.get("/api/themes/00000000-0000-0000-0000-000000000000", headers={"X-Request-ID": "trace-404"})
    assert r.status_code == 404
    error = r.json()["error"]
    assert error["message"] == "Theme not found"
    assert error["request_id"] == "trace-404"
    assert error["retryable"] is False


def test_users_me_creates_local_user(client, auth_headers, user_id):
    r = client.get("/api/users/me", headers=auth_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["user"]["id"] == str(user_id)
    assert body["user"]["email"] == "user@example.com"
    assert body["tier"] == "free"
    assert body["limits"]["detailedAnalysisPerMonth"] == 10
    assert body["usage"]["detailedAnalysis"] == 0
    assert body["upgradeOptions"] == ["basic", "pro"]


def test_users_me_reports_usage(client, session, auth_headers, user_id):
    client.get("/api/users/me", headers=auth_headers)
    tier_service.increment_usage(session, user_id, "detailedAnalysis", amount=3)
    body = client.get("/api/users/me", headers=auth_headers).json()
    assert body["usage"]["detailedAnalysis"] == 3
    assert body["usage"]["remaining"] == 7


def test_users_me_rejects_bad_tokens(client, make_token):
    assert client.get("/api/users/me").status_code == 401
    expired = make_token(expires_in=-60)
    assert client.get("/api/users/me", headers={"Authorization": f"Bearer {expired}"}).status_code == 401
    assert client.get("/api/users/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401
