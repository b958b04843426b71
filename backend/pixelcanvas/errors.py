"""
Placement failure taxonomy.

Each error knows the HTTP status it maps to and renders itself as the
``{success: false, error, waitMs?}`` body returned by the pixels API.
"""
from typing import Optional


class PlacementError(Exception):
    """Base class for every rejected placement."""

    status_code = 400
    error = "Failed to place pixel"

    def __init__(self, error: Optional[str] = None):
        if error is not None:
            self.error = error
        super().__init__(self.error)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.error}


class PixelValidationError(PlacementError):
    """Malformed coordinates or color. Never retried as-is."""

    status_code = 400
    error = "Invalid placement"


class Cooldown(PlacementError):
    """The user placed too recently; retryable after wait_ms."""

    status_code = 429
    error = "Cooldown"

    def __init__(self, wait_ms: int):
        self.wait_ms = wait_ms
        super().__init__()

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["waitMs"] = self.wait_ms
        return body


class InsufficientBalance(PlacementError):
    status_code = 402
    error = "No free pixels or play points"


class ColorLocked(PlacementError):
    status_code = 403
    error = "Color locked by your plan"


class UserNotFound(PlacementError):
    status_code = 404
    error = "User not found"


class StorageUnavailable(PlacementError):
    """Database unreachable, or the user row kept changing under us."""

    status_code = 503
    error = "Storage temporarily unavailable"
