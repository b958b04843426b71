"""
Tests for the Stripe webhook and entitlement grants.
"""
from datetime import datetime, timedelta

import pytest
import stripe

from pixelcanvas.api import payments as payments_api
from pixelcanvas.models import User
from pixelcanvas.services.entitlements import (
    entitlement_for_price, grant_entitlement, downgrade_customer,
)

from conftest import client, make_user


def fake_event(event_type, obj):
    def construct_event(payload, sig_header, secret):
        assert secret == "whsec_test"
        return {"type": event_type, "data": {"object": obj}}
    return construct_event


def checkout(uid, price_id):
    return {"id": "cs_test", "metadata": {"uid": uid, "priceId": price_id}}


def post_webhook():
    return client.post("/webhook/stripe", content=b"{}", headers={"stripe-signature": "t=1,v1=x"})


# ============================================================================
# Entitlement Grants
# ============================================================================

def test_price_mapping():
    assert entitlement_for_price("price_colors_60") == "plus60"
    assert entitlement_for_price("price_colors_120") == "plus120"
    assert entitlement_for_price("price_colors_all") == "all"
    assert entitlement_for_price("price_pixels_100") == "pixels100"
    assert entitlement_for_price("price_unknown") is None
    assert entitlement_for_price("") is None


def test_pixel_top_up(test_db, sample_users):
    """pixels-100 adds to the existing free pixel balance."""
    granted = grant_entitlement(test_db, "u1", "price_pixels_100")
    assert granted == {"free_pixels": "+100"}
    test_db.expire_all()
    assert test_db.get(User, "u1").free_pixels == 200


def test_all_colors_expire_after_period(test_db, sample_users):
    now = datetime(2025, 3, 14, 12, 0, 0)
    grant_entitlement(test_db, "u1", "price_colors_all", now=now)
    test_db.expire_all()
    user = test_db.get(User, "u1")
    assert user.color_pack == "all"
    assert user.color_pack_expiry == now + timedelta(days=28)
    assert user.last_purchase_at == now


def test_color_pack_grant(test_db, sample_users):
    grant_entitlement(test_db, "u2", "price_colors_120")
    test_db.expire_all()
    assert test_db.get(User, "u2").color_pack == "plus120"


def test_grant_unknown_user_or_price(test_db, sample_users):
    assert grant_entitlement(test_db, "ghost", "price_colors_60") is None
    assert grant_entitlement(test_db, "u1", "price_other") is None


def test_downgrade_customer(test_db):
    test_db.add(make_user("subscriber", color_pack="all", stripe_customer_id="cus_1",
                          color_pack_expiry=datetime(2030, 1, 1)))
    test_db.commit()

    assert downgrade_customer(test_db, "cus_1") == "subscriber"
    test_db.expire_all()
    user = test_db.get(User, "subscriber")
    assert user.color_pack == "free"
    assert user.color_pack_expiry is None
    assert downgrade_customer(test_db, "cus_unknown") is None


# ============================================================================
# Webhook
# ============================================================================

def test_webhook_checkout_grants(sample_users, test_db, monkeypatch):
    monkeypatch.setattr(stripe.Webhook, "construct_event",
                        fake_event("checkout.session.completed", checkout("u1", "price_pixels_100")))

    response = post_webhook()
    assert response.status_code == 200
    assert response.json() == {"received": True}
    test_db.expire_all()
    assert test_db.get(User, "u1").free_pixels == 200


def test_webhook_subscription_deleted(test_db, monkeypatch):
    test_db.add(make_user("sub", color_pack="all", stripe_customer_id="cus_9"))
    test_db.commit()
    monkeypatch.setattr(stripe.Webhook, "construct_event",
                        fake_event("customer.subscription.deleted", {"customer": "cus_9"}))

    assert post_webhook().status_code == 200
    test_db.expire_all()
    assert test_db.get(User, "sub").color_pack == "free"


def test_webhook_ignores_other_events(monkeypatch):
    monkeypatch.setattr(stripe.Webhook, "construct_event", fake_event("invoice.paid", {}))
    assert post_webhook().status_code == 200


def test_webhook_bad_signature(monkeypatch):
    def reject(payload, sig_header, secret):
        raise stripe.SignatureVerificationError("bad signature", sig_header)

    monkeypatch.setattr(stripe.Webhook, "construct_event", reject)
    response = post_webhook()
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid signature"


def test_webhook_requires_secret(monkeypatch):
    monkeypatch.setattr(payments_api.settings, "stripe_webhook_secret", "")
    assert post_webhook().status_code == 500


@pytest.mark.parametrize("path", ["/api/payments/create-session", "/api/payments/customer-portal"])
def test_payment_routes_require_auth(path):
    if path.endswith("create-session"):
        response = client.post(path, json={"priceId": "price_colors_60"})
    else:
        response = client.get(path)
    assert response.status_code == 401
