"""
Entitlement grants issued from payment events.

Price ids are configured per deployment; each maps to one grant:
colors-60 / colors-120 unlock color packs, all-colors-monthly removes the
color restriction for a period, pixels-100 tops up the free pixel balance.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from pixelcanvas.config import get_settings
from pixelcanvas.models import User
from pixelcanvas.monitoring import record_custom_event

logger = logging.getLogger(__name__)
settings = get_settings()

PIXEL_TOP_UP = 100
MAX_GRANT_ATTEMPTS = 3


def entitlement_for_price(price_id: Optional[str]) -> Optional[str]:
    if not price_id:
        return None
    mapping = {
        settings.stripe_price_colors_60: "plus60",
        settings.stripe_price_colors_120: "plus120",
        settings.stripe_price_colors_all_monthly: "all",
        settings.stripe_price_pixels_100: "pixels100",
    }
    mapping.pop("", None)
    return mapping.get(price_id)


def _apply_grant(user: User, entitlement: str, now: datetime) -> dict:
    if entitlement == "pixels100":
        user.free_pixels = User.free_pixels + PIXEL_TOP_UP
        granted = {"free_pixels": f"+{PIXEL_TOP_UP}"}
    elif entitlement == "all":
        user.color_pack = "all"
        user.color_pack_expiry = now + timedelta(days=settings.all_colors_period_days)
        granted = {"color_pack": "all", "color_pack_expiry": user.color_pack_expiry.isoformat()}
    else:
        user.color_pack = entitlement
        granted = {"color_pack": entitlement}
    user.last_purchase_at = now
    return granted


def grant_entitlement(db: Session, uid: str, price_id: Optional[str],
                      now: Optional[datetime] = None) -> Optional[dict]:
    """
    Apply the grant bought with price_id to uid.

    Returns the applied changes, or None when the price or user is unknown.
    """
    entitlement = entitlement_for_price(price_id)
    if entitlement is None:
        logger.warning(f"Unknown price id {price_id!r} purchased by {uid}")
        return None

    now = now or datetime.utcnow()
    for attempt in range(1, MAX_GRANT_ATTEMPTS + 1):
        user = db.get(User, uid, populate_existing=True)
        if user is None:
            logger.warning(f"Entitlement {entitlement} for unknown user {uid} ignored")
            return None
        granted = _apply_grant(user, entitlement, now)
        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            logger.info(f"User {uid} changed during grant, retrying (attempt {attempt})")
            continue
        logger.info(f"Granted entitlements for {uid}: {granted}")
        record_custom_event("EntitlementGrant", {"uid": uid, "entitlement": entitlement})
        return granted

    raise RuntimeError(f"Could not grant {entitlement} to {uid}: user kept changing")


def downgrade_customer(db: Session, customer_id: Optional[str]) -> Optional[str]:
    """Drop the color pack of the user linked to a cancelled subscription."""
    if not customer_id:
        return None
    user = db.query(User).filter(User.stripe_customer_id == customer_id).first()
    if user is None:
        logger.info(f"No user linked to Stripe customer {customer_id}")
        return None
    user.color_pack = "free"
    user.color_pack_expiry = None
    db.commit()
    logger.info(f"Downgraded user {user.uid} after subscription cancellation")
    return user.uid
