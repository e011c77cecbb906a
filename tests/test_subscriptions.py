from types import SimpleNamespace

import pytest
import stripe

from theme_api.models.subscription import Subscription
from theme_api.models.user import User

CREATE_BODY = {
    "planName": "pro",
    "successUrl": "https://app.example.com/billing/success",
    "cancelUrl": "https://app.example.com/billing/cancel",
}


@pytest.fixture
def stripe_calls(monkeypatch):
    """Stub the Stripe SDK calls used by the subscription routes and record their kwargs."""
    calls = {}

    def record(name, result):
        def _call(*args, **kwargs):
            calls.setdefault(name, []).append((args, kwargs))
            return result
        return _call

    monkeypatch.setattr(stripe.Customer, "create", record("customer", SimpleNamespace(id="cus_new")))
    monkeypatch.setattr(
        stripe.checkout.Session, "create",
        record("checkout", SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.test/cs_test_1")),
    )
    monkeypatch.setattr(stripe.Subscription, "modify", record("modify", SimpleNamespace(id="sub_1")))
    monkeypatch.setattr(
        stripe.billing_portal.Session, "create",
        record("portal", SimpleNamespace(url="https://billing.stripe.test/p/session")),
    )
    return calls


def _subscribe(session, user_id, status="active", plan="basic", cancel_at_period_end=False, sub_id="sub_1"):
    user = session.get(User, user_id) or User(id=user_id, email="user@example.com")
    user.stripe_customer_id = "cus_existing"
    session.add(user)
    session.add(Subscription(
        user_id=user_id,
        stripe_subscription_id=sub_id,
        stripe_customer_id="cus_existing",
        plan_name=plan,
        status=status,
        cancel_at_period_end=cancel_at_period_end,
    ))
    session.commit()


def test_create_checkout_session(client, session, auth_headers, user_id, stripe_calls):
    r = client.post("/api/subscriptions/create", json=CREATE_BODY, headers=auth_headers)
    assert r.status_code == 200, r.text
    assert r.json() == {"sessionId": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}

    (_, customer_kwargs), = stripe_calls["customer"]
    assert customer_kwargs["metadata"] == {"userId": str(user_id)}
    (_, kwargs), = stripe_calls["checkout"]
    assert kwargs["customer"] == "cus_new"
    assert kwargs["mode"] == "subscription"
    assert kwargs["line_items"] == [{"price": "price_pro_test", "quantity": 1}]
    assert kwargs["metadata"] == {"userId": str(user_id), "planName": "pro"}
    assert kwargs["subscription_data"]["metadata"]["planName"] == "pro"

    session.expire_all()
    assert session.get(User, user_id).stripe_customer_id == "cus_new"


def test_create_reuses_existing_customer(client, session, auth_headers, user_id, stripe_calls):
    _subscribe(session, user_id, status="canceled")
    r = client.post("/api/subscriptions/create", json=CREATE_BODY, headers=auth_headers)
    assert r.status_code == 200
    assert "customer" not in stripe_calls
    assert stripe_calls["checkout"][0][1]["customer"] == "cus_existing"


def test_create_rejects_second_active_subscription(client, session, auth_headers, user_id, stripe_calls):
    _subscribe(session, user_id)
    r = client.post("/api/subscriptions/create", json=CREATE_BODY, headers=auth_headers)
    assert r.status_code == 400
    assert "checkout" not in stripe_calls


@pytest.mark.parametrize("body", [
    {**CREATE_BODY, "planName": "free"},
    {**CREATE_BODY, "successUrl": "not a url"},
    {"planName": "basic"},
])
def test_create_validation(client, auth_headers, body, stripe_calls):
    r = client.post("/api/subscriptions/create", json=body, headers=auth_headers)
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "validation_error"


def test_create_stripe_error_is_generic_500(client, auth_headers, stripe_calls, monkeypatch):
    def fail(**kwargs):
        raise stripe.StripeError("card network melted")

    monkeypatch.setattr(stripe.checkout.Session, "create", fail)
    r = client.post("/api/subscriptions/create", json=CREATE_BODY, headers=auth_headers)
    assert r.status_code == 500
    assert "melted" not in r.text


def test_routes_require_auth(client):
    assert client.post("/api/subscriptions/create", json=CREATE_BODY).status_code == 401
    assert client.get("/api/subscriptions/manage").status_code == 401
    assert client.post("/api/subscriptions/cancel").status_code == 401


def test_cancel_and_reactivate(client, session, auth_headers, user_id, stripe_calls):
    _subscribe(session, user_id)

    r = client.post("/api/subscriptions/cancel", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["cancel_at_period_end"] is True
    assert stripe_calls["modify"][-1] == (("sub_1",), {"cancel_at_period_end": True})

    r = client.post("/api/subscriptions/reactivate", headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["cancel_at_period_end"] is False
    assert stripe_calls["modify"][-1] == (("sub_1",), {"cancel_at_period_end": False})


def test_cancel_without_subscription_404(client, auth_headers, stripe_calls):
    assert client.post("/api/subscriptions/cancel", headers=auth_headers).status_code == 404
    assert "modify" not in stripe_calls


def test_reactivate_requires_pending_cancellation(client, session, auth_headers, user_id, stripe_calls):
    _subscribe(session, user_id)
    assert client.post("/api/subscriptions/reactivate", headers=auth_headers).status_code == 404


def test_manage_status(client, session, auth_headers, user_id):
    r = client.get("/api/subscriptions/manage", headers=auth_headers)
    assert r.status_code == 200
    assert r.json() == {"subscription": None, "tier": "free", "history": []}

    _subscribe(session, user_id, plan="pro", status="trialing")
    body = client.get("/api/subscriptions/manage", headers=auth_headers).json()
    assert body["subscription"]["plan_name"] == "pro"
    assert len(body["history"]) == 1


def test_portal_session(client, session, auth_headers, user_id, stripe_calls):
    assert client.post("/api/subscriptions/manage", headers=auth_headers).status_code == 404

    _subscribe(session, user_id)
    r = client.post(
        "/api/subscriptions/manage",
        json={"returnUrl": "https://app.example.com/account"},
        headers=auth_headers,
    )
    assert r.status_code == 200
    assert r.json() == {"url": "https://billing.stripe.test/p/session"}
    (_, kwargs), = stripe_calls["portal"]
    assert kwargs == {"customer": "cus_existing", "return_url": "https://app.example.com/account"}


def test_router_import_leaves_stripe_key_to_startup(monkeypatch):
    import importlib
    from theme_api.routers import subscriptions

    monkeypatch.setattr(stripe, "api_key", None)
    importlib.reload(subscriptions)
    assert stripe.api_key is None
