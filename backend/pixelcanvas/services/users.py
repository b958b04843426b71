"""
User provisioning and profile lookups.
"""
import logging
import random
from typing import List, Optional

from sqlalchemy.orm import Session

from pixelcanvas.config import get_settings
from pixelcanvas.models import User

logger = logging.getLogger(__name__)
settings = get_settings()


def make_unique_code(uid: str) -> str:
    return f"{uid[:4].upper()}-{random.randint(1000, 9999)}"


def ensure_user(db: Session, claims: dict, display_name: Optional[str] = None,
                avatar_url: Optional[str] = None) -> User:
    """
    Return the user for the verified token claims, creating it with the
    default balance on first contact.
    """
    uid = claims["uid"]
    user = db.get(User, uid)
    if user:
        return user

    user = User(
        uid=uid,
        display_name=display_name or claims.get("name") or "Anon",
        email=claims.get("email"),
        avatar_url=avatar_url or claims.get("picture") or "",
        bio="",
        unique_code=make_unique_code(uid),
        free_pixels=settings.default_free_pixels,
        play_points=0,
        last_placed_at=0,
        pixels_drawn_all_time=0,
        is_banned=False,
        role="user",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created user {uid} with {user.free_pixels} free pixels")
    return user


def search_users(db: Session, query: str, limit: int = 20) -> List[User]:
    """Prefix search on display name or unique code, case-insensitive."""
    q = (query or "").strip().lower()
    if not q:
        return []
    pattern = f"{q}%"
    return (
        db.query(User)
        .filter(
            (User.display_name.ilike(pattern)) | (User.unique_code.ilike(pattern))
        )
        .order_by(User.display_name.asc())
        .limit(limit)
        .all()
    )
