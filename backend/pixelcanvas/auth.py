"""
Caller identity via Firebase ID tokens (``Authorization: Bearer <idToken>``).
"""
import base64
import json
import logging
from typing import Optional

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from fastapi import Header, HTTPException, status

from pixelcanvas.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def get_firebase_app():
    """Return the default Firebase app, initializing it on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    options = {}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id

    if settings.firebase_service_account:
        service_account = json.loads(
            base64.b64decode(settings.firebase_service_account).decode("utf-8")
        )
        options.setdefault("projectId", service_account.get("project_id"))
        cred = credentials.Certificate(service_account)
    else:
        logger.warning("FIREBASE_SERVICE_ACCOUNT not set; using application default credentials")
        cred = credentials.ApplicationDefault()

    app = firebase_admin.initialize_app(cred, options or None)
    logger.info("Firebase Admin initialized")
    return app


def extract_bearer_token(authorization: Optional[str]) -> str:
    parts = (authorization or "").split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing auth token")
    return parts[1]


def verify_token(token: str) -> dict:
    """Decode a Firebase ID token into its claims (uid, name, email, picture...)."""
    try:
        return firebase_auth.verify_id_token(token, app=get_firebase_app())
    except (firebase_auth.InvalidIdTokenError, firebase_auth.ExpiredIdTokenError,
            firebase_auth.RevokedIdTokenError, ValueError) as e:
        logger.warning(f"Rejected ID token: {str(e)}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


async def get_current_claims(authorization: Optional[str] = Header(default=None)) -> dict:
    """FastAPI dependency resolving the verified caller's token claims."""
    return verify_token(extract_bearer_token(authorization))
