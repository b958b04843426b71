"""
Shared request dependencies.
"""
import time

from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from pixelcanvas.auth import get_current_claims
from pixelcanvas.database import get_db
from pixelcanvas.models import User


def get_now_ms() -> int:
    """Server wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


def get_current_user(
    claims: dict = Depends(get_current_claims),
    db: Session = Depends(get_db),
) -> User:
    user = db.get(User, claims["uid"])
    if user is None:
        raise HTTPException(status_code=404, detail="not found")
    return user
