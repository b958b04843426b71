"""
Payments API: Stripe checkout, billing portal and the entitlement webhook.

The webhook reads the raw request body, since Stripe signs the exact bytes.
"""
import logging
import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from pixelcanvas.auth import get_current_claims
from pixelcanvas.config import get_settings
from pixelcanvas.database import get_db
from pixelcanvas.models import User
from pixelcanvas.schemas import CheckoutRequest, CheckoutResponse, PortalResponse
from pixelcanvas.services.entitlements import grant_entitlement, downgrade_customer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])
webhook_router = APIRouter(tags=["payments"])
settings = get_settings()

stripe.api_key = settings.stripe_secret_key


def _ensure_customer(db: Session, claims: dict) -> str:
    uid = claims["uid"]
    user = db.get(User, uid)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    if user.stripe_customer_id:
        return user.stripe_customer_id

    customer = stripe.Customer.create(email=claims.get("email") or None, metadata={"uid": uid})
    user.stripe_customer_id = customer.id
    db.commit()
    logger.info(f"Linked user {uid} to Stripe customer {customer.id}")
    return customer.id


@router.post("/create-session", response_model=CheckoutResponse, summary="Create a checkout session")
async def create_session(
    payload: CheckoutRequest,
    request: Request,
    claims: dict = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    mode = "payment" if (payload.mode or "").lower() == "payment" else "subscription"
    origin = request.headers.get("origin", "")

    try:
        customer_id = _ensure_customer(db, claims)
        session = stripe.checkout.Session.create(
            customer=customer_id,
            payment_method_types=["card"],
            mode=mode,
            line_items=[{"price": payload.price_id, "quantity": 1}],
            metadata={"uid": claims["uid"], "mode": mode, "priceId": payload.price_id},
            success_url=payload.success_url or f"{origin}/success",
            cancel_url=payload.cancel_url or f"{origin}/cancel",
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout error: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    return CheckoutResponse(url=session.url, id=session.id)


@router.get("/customer-portal", response_model=PortalResponse, summary="Billing portal link")
async def customer_portal(
    request: Request,
    claims: dict = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    user = db.get(User, claims["uid"])
    if user is None or not user.stripe_customer_id:
        raise HTTPException(status_code=400, detail="User not linked to Stripe")

    try:
        portal = stripe.billing_portal.Session.create(
            customer=user.stripe_customer_id,
            return_url=request.headers.get("origin") or str(request.base_url),
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe portal error: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    return PortalResponse(url=portal.url)


def _field(obj, key, default=None):
    """Read a key from a Stripe object or plain dict, tolerating absence."""
    try:
        value = obj[key]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


def _purchased_price_ids(session) -> list:
    price_id = _field(_field(session, "metadata", {}), "priceId")
    if price_id:
        return [price_id]
    line_items = stripe.checkout.Session.list_line_items(session["id"], limit=10)
    return [item["price"]["id"] for item in line_items["data"]]


@webhook_router.post("/webhook/stripe", summary="Stripe webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    if not settings.stripe_webhook_secret:
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    try:
        event = stripe.Webhook.construct_event(payload, sig_header, settings.stripe_webhook_secret)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.error(f"Stripe webhook signature verification failed: {str(e)}")
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = event["type"]
    obj = event["data"]["object"]

    try:
        if event_type == "checkout.session.completed":
            uid = _field(_field(obj, "metadata", {}), "uid")
            if not uid:
                logger.error("Checkout session completed without uid metadata")
            else:
                for price_id in _purchased_price_ids(obj):
                    grant_entitlement(db, uid, price_id)
        elif event_type == "customer.subscription.deleted":
            downgrade_customer(db, _field(obj, "customer"))
        else:
            logger.info(f"Unhandled Stripe event type: {event_type}")
    except Exception as e:
        db.rollback()
        logger.error(f"Stripe webhook handler error: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Webhook handler failed")

    return {"received": True}
