"""
Leaderboard API over the day/month/year placement buckets.

Responses are cached in Redis per bucket and limit; every committed
placement invalidates them.
"""
import logging
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from pixelcanvas.api.deps import get_now_ms
from pixelcanvas.cache import cache, top_key
from pixelcanvas.config import get_settings
from pixelcanvas.database import get_db
from pixelcanvas.grid import period_ids
from pixelcanvas.monitoring import record_custom_metric
from pixelcanvas.schemas import LeaderboardEntry
from pixelcanvas.services.aggregates import RANGE_TO_PERIOD, top_n, resolve_names

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])
settings = get_settings()


@router.get(
    "/top",
    response_model=List[LeaderboardEntry],
    status_code=200,
    responses={
        200: {
            "description": "Top painters of the period",
            "content": {
                "application/json": {
                    "example": [
                        {"uid": "u1", "name": "painter1", "count": 120},
                        {"uid": "u2", "name": "u2", "count": 80},
                    ]
                }
            }
        },
        400: {"description": "Invalid range"},
        500: {"description": "Internal server error"},
    },
    summary="Get top painters",
    description="""
    Top painters of the current UTC day, month or year, sorted by placement
    count (descending, ties by uid). An empty period returns `[]`.

    `limit` defaults to 50 and is capped at 100.
    """
)
async def get_top_painters(
    range_: str = Query("today", alias="range", description="today | month | year"),
    limit: int = Query(settings.leaderboard_default_limit, ge=1, description="Number of entries (capped at 100)"),
    db: Session = Depends(get_db),
    now_ms: int = Depends(get_now_ms),
):
    period = RANGE_TO_PERIOD.get(range_.lower())
    if period is None:
        raise HTTPException(status_code=400, detail="Invalid range")
    limit = min(limit, settings.leaderboard_max_limit)

    cache_key = top_key(period, period_ids(now_ms)[period], limit)
    cached_data = cache.get(cache_key)
    if cached_data is not None:
        logger.debug(f"Cache hit for leaderboard: {cache_key}")
        record_custom_metric("Custom/Leaderboard/CacheHit", 1)
        return cached_data

    try:
        entries = resolve_names(db, top_n(db, period, limit, now_ms))
    except Exception as e:
        logger.error(f"Failed to load leaderboard: range={range_}, error={str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load leaderboard")

    record_custom_metric("Custom/Leaderboard/CacheMiss", 1)
    cache.set(cache_key, entries, settings.cache_ttl_top)
    logger.info(f"Leaderboard {period} loaded from database: {len(entries)} entries")
    return entries
