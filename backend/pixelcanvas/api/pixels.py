"""
Pixel API: placement admission and box reads.

- POST /api/pixels/place validates, runs the placement transaction and
  broadcasts the committed pixel to every realtime subscriber
- GET /api/pixels/box returns the written cells inside a bounded box
"""
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from pixelcanvas.api.deps import get_now_ms
from pixelcanvas.auth import get_current_claims
from pixelcanvas.cache import cache
from pixelcanvas.config import get_settings
from pixelcanvas.database import get_db
from pixelcanvas.errors import PlacementError, Cooldown
from pixelcanvas.grid import is_valid_coord
from pixelcanvas.models import Pixel
from pixelcanvas.monitoring import monitor_transaction, record_custom_event
from pixelcanvas.realtime import manager, PIXEL_PLACED
from pixelcanvas.schemas import PlaceRequest, PlaceResponse, PlaceErrorResponse, PixelOut, ErrorResponse
from pixelcanvas.services.placement import place_pixel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pixels", tags=["pixels"])
settings = get_settings()


@router.post(
    "/place",
    response_model=PlaceResponse,
    responses={
        400: {"model": PlaceErrorResponse, "description": "Invalid coordinates or color"},
        402: {"model": PlaceErrorResponse, "description": "No free pixels or play points"},
        403: {"model": PlaceErrorResponse, "description": "Color locked by the user's plan"},
        404: {"model": PlaceErrorResponse, "description": "User record not provisioned"},
        429: {"model": PlaceErrorResponse, "description": "Cooldown; retry after waitMs"},
        503: {"model": PlaceErrorResponse, "description": "Storage unavailable"},
    },
    summary="Place a pixel",
)
@monitor_transaction("pixels/place")
async def place(
    placement: PlaceRequest,
    request: Request,
    claims: dict = Depends(get_current_claims),
    db: Session = Depends(get_db),
    now_ms: int = Depends(get_now_ms),
):
    """
    Place one pixel for the authenticated caller.

    Enforces the per-user cooldown, debits one unit (free pixels first, then
    play points), checks the color against the user's plan, overwrites the
    cell and bumps the day/month/year leaderboard buckets, all in one
    transaction. On success the pixel is broadcast as `pixelPlaced`.
    """
    uid = claims["uid"]
    logger.info(
        f"Placement request: uid={uid}, x={placement.x}, y={placement.y}, "
        f"color={placement.color}, client_ip={request.client.host if request.client else 'unknown'}"
    )

    try:
        result = place_pixel(db, uid, placement.x, placement.y, placement.color, now_ms)
    except Cooldown as e:
        logger.info(f"Placement on cooldown: uid={uid}, wait_ms={e.wait_ms}")
        raise
    except PlacementError as e:
        logger.warning(f"Placement rejected: uid={uid}, status={e.status_code}, reason={e.error}")
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Placement failed: uid={uid}, error={str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to place pixel")

    cache.invalidate_top_cache()

    try:
        await manager.broadcast(PIXEL_PLACED, result.broadcast_payload())
    except Exception as e:
        logger.warning(f"Socket broadcast failed: {str(e)}")

    record_custom_event("PixelPlacement", {"uid": uid, "source": result.balance_source})
    logger.info(f"Placement committed: uid={uid}, x={result.x}, y={result.y}, source={result.balance_source}")

    return PlaceResponse(success=True, cooldown_until=result.cooldown_until)


@router.get(
    "/box",
    response_model=List[PixelOut],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid or oversized box"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
    summary="Get pixels inside a box",
)
async def get_box(
    left: int = Query(0, description="Leftmost column (inclusive)"),
    top: int = Query(0, description="Top row (inclusive)"),
    right: Optional[int] = Query(None, description="Rightmost column (inclusive), default left+100"),
    bottom: Optional[int] = Query(None, description="Bottom row (inclusive), default top+100"),
    limit: Optional[int] = Query(None, ge=1, description="Maximum cells returned (capped at 2000)"),
    db: Session = Depends(get_db),
):
    """
    Return the written cells with left <= x <= right and top <= y <= bottom.

    Width and height of the box may not exceed 2000 cells each; clients
    split larger views into several requests.
    """
    right = left + 100 if right is None else right
    bottom = top + 100 if bottom is None else bottom
    limit = min(limit or settings.default_box_limit, settings.max_box_limit)

    for name, value in (("left", left), ("top", top), ("right", right), ("bottom", bottom)):
        if not is_valid_coord(value):
            raise HTTPException(status_code=400, detail=f"Invalid {name}")
    if right < left or bottom < top:
        raise HTTPException(status_code=400, detail="Invalid box")
    if right - left + 1 > settings.max_box_span or bottom - top + 1 > settings.max_box_span:
        raise HTTPException(status_code=400, detail="Box too large")

    try:
        pixels = (
            db.query(Pixel)
            .filter(Pixel.x.between(left, right), Pixel.y.between(top, bottom))
            .order_by(Pixel.x, Pixel.y)
            .limit(limit)
            .all()
        )
    except Exception as e:
        logger.error(f"Box query failed: ({left},{top})-({right},{bottom}), error={str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch pixels")

    logger.debug(f"Box ({left},{top})-({right},{bottom}) returned {len(pixels)} pixels")
    return pixels
