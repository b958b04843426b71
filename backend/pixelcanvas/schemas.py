from pydantic import BaseModel, Field, StrictInt, StrictStr
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional, List


class CamelModel(BaseModel):
    """Base schema exposing snake_case fields as camelCase JSON keys."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class PlaceRequest(BaseModel):
    """
    Schema for a pixel placement request.

    Only the JSON types are checked here; bounds and color format are checked
    by the admission controller so they answer with the placement error body.

    Example:
        {"x": 5, "y": 5, "color": "#ff0000"}
    """
    x: StrictInt = Field(..., description="Column, 0 <= x < 10000")
    y: StrictInt = Field(..., description="Row, 0 <= y < 10000")
    color: StrictStr = Field(..., description="Color as #RRGGBB")

    class Config:
        json_schema_extra = {
            "example": {"x": 5, "y": 5, "color": "#ff0000"}
        }


class PlaceResponse(CamelModel):
    """
    Example:
        {"success": true, "cooldownUntil": 1760000010000}
    """
    success: bool = Field(True, description="Whether the pixel was placed")
    cooldown_until: int = Field(..., description="Epoch ms after which the user may place again")


class PlaceErrorResponse(CamelModel):
    """
    Example:
        {"success": false, "error": "Cooldown", "waitMs": 6000}
    """
    success: bool = False
    error: str = Field(..., description="Why the placement was rejected")
    wait_ms: Optional[int] = Field(None, description="Only for cooldown rejections")


class PixelOut(CamelModel):
    x: int
    y: int
    color: str
    owner: str
    owner_name: str
    filled_at: int = Field(..., description="Epoch ms of the write")


class LeaderboardEntry(BaseModel):
    """
    Example:
        {"uid": "u123", "name": "painter", "count": 42}
    """
    uid: str = Field(..., description="User identity")
    name: str = Field(..., description="Display name, or the uid when unknown")
    count: int = Field(..., description="Placements inside the selected period")


class UserCreate(CamelModel):
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


class UserOut(CamelModel):
    uid: str
    display_name: str
    avatar_url: str = ""
    bio: str = ""
    unique_code: Optional[str] = None
    pixels_drawn_all_time: int = 0
    free_pixels: int = 0
    play_points: int = 0
    last_placed_at: int = 0
    color_pack: Optional[str] = None
    allowed_colors: Optional[List[str]] = None
    role: str = "user"
    is_banned: bool = False
    created_at: Optional[datetime] = None


class UserStats(CamelModel):
    pixels_drawn_all_time: int = 0
    play_points: int = 0
    free_pixels: int = 0
    last_placed_at: int = 0


class BioUpdate(BaseModel):
    bio: Optional[str] = ""


class ProfileUpdate(CamelModel):
    display_name: Optional[str] = Field(None, max_length=100)
    avatar_url: Optional[str] = Field(None, max_length=500)


class SuccessResponse(BaseModel):
    success: bool = True


class ChatSend(BaseModel):
    text: Optional[str] = None


class ChatMessageOut(CamelModel):
    id: int
    sender: str = Field(..., alias="from")
    sender_name: str = Field(..., alias="fromName")
    text: str
    created_at: Optional[datetime] = None


class ChatSendResponse(BaseModel):
    success: bool = True
    id: int


class CheckoutRequest(CamelModel):
    """
    Example:
        {"priceId": "price_123", "mode": "payment"}
    """
    price_id: str = Field(..., min_length=1)
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None
    mode: Optional[str] = Field(None, description="'payment' or 'subscription' (default)")


class CheckoutResponse(BaseModel):
    url: str
    id: str


class PortalResponse(BaseModel):
    url: str


class ErrorResponse(BaseModel):
    """
    Example:
        {"error": "Box too large", "status_code": 400}
    """
    error: str = Field(..., description="Error type or message")
    detail: Optional[str] = Field(None, description="Detailed error message")
    status_code: Optional[int] = Field(None, description="HTTP status code")
