"""
Pixel placement admission control.

A placement is admitted only if the user is out of cooldown, still has a unit
in one of its balance sources and is allowed to use the color. The pixel
write, the balance debit, the cooldown stamp and the three aggregate bumps
are committed in one transaction, so a rejected placement changes nothing.

Concurrency: the user row is read with SELECT ... FOR UPDATE (a row lock on
PostgreSQL) and carries a version column, so two racing placements by the
same user cannot both pass the checks. A StaleDataError means another
transaction won; the whole placement is retried from a fresh read.
"""
import logging
from typing import NamedTuple, Optional

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from pixelcanvas.config import get_settings
from pixelcanvas.errors import (
    PlacementError, PixelValidationError, Cooldown, InsufficientBalance,
    ColorLocked, UserNotFound, StorageUnavailable,
)
from pixelcanvas.grid import is_valid_coord, is_hex_color
from pixelcanvas.models import User
from pixelcanvas.monitoring import DatabaseTrace
from pixelcanvas.services.aggregates import increment_aggregates

logger = logging.getLogger(__name__)
settings = get_settings()

# Debited in this order; each is replenished independently by entitlements
BALANCE_SOURCES = ("free_pixels", "play_points")

UNRESTRICTED_COLOR_PACK = "all"

_UPSERT_PIXEL_SQL = text("""
    INSERT INTO pixels (x, y, color, owner, owner_name, filled_at)
    VALUES (:x, :y, :color, :owner, :owner_name, :filled_at)
    ON CONFLICT (x, y)
    DO UPDATE SET
        color = excluded.color,
        owner = excluded.owner,
        owner_name = excluded.owner_name,
        filled_at = excluded.filled_at
""")


class PlacementResult(NamedTuple):
    x: int
    y: int
    color: str
    owner: str
    owner_name: str
    balance_source: str
    cooldown_until: int

    def broadcast_payload(self) -> dict:
        return {"x": self.x, "y": self.y, "color": self.color, "owner": self.owner}


def validate_placement(x, y, color) -> None:
    if not is_valid_coord(x) or not is_valid_coord(y):
        raise PixelValidationError("Invalid coordinates")
    if not is_hex_color(color):
        raise PixelValidationError("Invalid color format. Use #RRGGBB")


def pick_balance_source(user: User) -> Optional[str]:
    for source in BALANCE_SOURCES:
        if (getattr(user, source) or 0) > 0:
            return source
    return None


def color_allowed(user: User, color: str) -> bool:
    if not isinstance(user.allowed_colors, list) or user.color_pack == UNRESTRICTED_COLOR_PACK:
        return True
    allowed = {c.lower() for c in user.allowed_colors if isinstance(c, str)}
    return color.lower() in allowed


def cooldown_remaining(user: User, now_ms: int, cooldown_ms: int) -> int:
    """Milliseconds until the user may place again; 0 if they may place now."""
    last_placed = user.last_placed_at or 0
    if last_placed <= 0:
        return 0
    elapsed = now_ms - last_placed
    if elapsed < cooldown_ms:
        return cooldown_ms - elapsed
    return 0


def snapshot_name(user: User) -> str:
    return user.display_name or user.email or "anon"


def _apply_placement(db: Session, uid: str, x: int, y: int, color: str, now_ms: int) -> PlacementResult:
    user = (
        db.query(User)
        .filter(User.uid == uid)
        .with_for_update()
        .populate_existing()
        .one_or_none()
    )
    if user is None:
        raise UserNotFound()

    wait_ms = cooldown_remaining(user, now_ms, settings.cooldown_ms)
    if wait_ms > 0:
        raise Cooldown(wait_ms)

    source = pick_balance_source(user)
    if source is None:
        raise InsufficientBalance()

    if not color_allowed(user, color):
        raise ColorLocked()

    owner_name = snapshot_name(user)
    db.execute(
        _UPSERT_PIXEL_SQL,
        {"x": x, "y": y, "color": color, "owner": uid, "owner_name": owner_name, "filled_at": now_ms},
    )

    setattr(user, source, getattr(user, source) - 1)
    user.pixels_drawn_all_time = (user.pixels_drawn_all_time or 0) + 1
    user.last_placed_at = now_ms
    db.flush()

    increment_aggregates(db, uid, now_ms)

    return PlacementResult(
        x=x,
        y=y,
        color=color,
        owner=uid,
        owner_name=owner_name,
        balance_source=source,
        cooldown_until=now_ms + settings.cooldown_ms,
    )


def place_pixel(db: Session, uid: str, x: int, y: int, color: str, now_ms: int) -> PlacementResult:
    """
    Admit and commit one placement for uid at now_ms.

    Raises a PlacementError subclass when the placement is rejected; in that
    case the session has been rolled back and no row was modified.
    """
    validate_placement(x, y, color)

    attempts = max(1, settings.place_max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            with DatabaseTrace("place_pixel"):
                result = _apply_placement(db, uid, x, y, color, now_ms)
                db.commit()
            return result
        except StaleDataError:
            db.rollback()
            logger.info(
                f"User {uid} changed during placement, retrying "
                f"(attempt {attempt}/{attempts})"
            )
        except PlacementError:
            db.rollback()
            raise
        except OperationalError as e:
            db.rollback()
            logger.error(f"Placement failed on storage: uid={uid}, error={str(e)}", exc_info=True)
            raise StorageUnavailable() from e

    logger.warning(f"Placement for {uid} abandoned after {attempts} conflicting attempts")
    raise StorageUnavailable("Too many concurrent placements, try again")
