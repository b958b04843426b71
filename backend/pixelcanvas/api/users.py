"""
User API: provisioning, profiles, stats and search.
"""
import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query
from firebase_admin import auth as firebase_auth
from firebase_admin.exceptions import FirebaseError
from sqlalchemy.orm import Session

from pixelcanvas.api.deps import get_current_user
from pixelcanvas.auth import get_current_claims, get_firebase_app
from pixelcanvas.database import get_db
from pixelcanvas.models import User
from pixelcanvas.schemas import (
    UserCreate, UserOut, UserStats, BioUpdate, ProfileUpdate, SuccessResponse,
)
from pixelcanvas.services.users import ensure_user, search_users

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.post("/create", response_model=UserOut, summary="Create the caller's user record")
async def create_user(
    payload: UserCreate,
    claims: dict = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    """Idempotent: returns the existing record when the user already exists."""
    return ensure_user(db, claims, payload.display_name, payload.avatar_url)


@router.get("/me/stats", response_model=UserStats, summary="Caller's counters")
async def my_stats(user: User = Depends(get_current_user)):
    return user


@router.get("/search/query", response_model=List[UserOut], summary="Search users")
async def search(q: str = Query(""), db: Session = Depends(get_db)):
    return search_users(db, q)


@router.get("/{uid}", response_model=UserOut, summary="Fetch a profile")
async def get_user(uid: str, db: Session = Depends(get_db)):
    user = db.get(User, uid)
    if user is None:
        raise HTTPException(status_code=404, detail="not found")
    return user


def _require_self(claims: dict, uid: str):
    if claims["uid"] != uid:
        raise HTTPException(status_code=403, detail="not allowed")


@router.post("/{uid}/bio", response_model=SuccessResponse, summary="Update own bio")
async def update_bio(
    uid: str,
    payload: BioUpdate,
    claims: dict = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    _require_self(claims, uid)
    user = db.get(User, uid)
    if user is None:
        raise HTTPException(status_code=404, detail="not found")
    user.bio = payload.bio or ""
    db.commit()
    return SuccessResponse()


@router.post("/{uid}/profile", response_model=SuccessResponse, summary="Update own profile")
async def update_profile(
    uid: str,
    payload: ProfileUpdate,
    claims: dict = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    _require_self(claims, uid)
    user = db.get(User, uid)
    if user is None:
        raise HTTPException(status_code=404, detail="not found")
    if payload.display_name:
        user.display_name = payload.display_name
    if payload.avatar_url:
        user.avatar_url = payload.avatar_url
    db.commit()
    return SuccessResponse()


@router.delete("/{uid}", response_model=SuccessResponse, summary="Delete a user (admin only)")
async def delete_user(
    uid: str,
    claims: dict = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    requester = db.get(User, claims["uid"])
    if requester is None or requester.role != "admin":
        raise HTTPException(status_code=403, detail="admin only")

    user = db.get(User, uid)
    if user is None:
        raise HTTPException(status_code=404, detail="not found")
    db.delete(user)
    db.commit()
    logger.info(f"User {uid} deleted by admin {requester.uid}")

    try:
        firebase_auth.delete_user(uid, app=get_firebase_app())
    except (FirebaseError, ValueError) as e:
        logger.warning(f"Identity provider account for {uid} not deleted: {str(e)}")

    return SuccessResponse()
