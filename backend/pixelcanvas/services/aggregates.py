"""
Time-bucketed placement counters and the leaderboard read path.

Every successful placement bumps the user's row in the current day, month and
year bucket. Buckets are never decremented. Reads sort one bucket by count
descending with uid ascending as the tie-break.
"""
import logging
from typing import Dict, List

from sqlalchemy import text
from sqlalchemy.orm import Session

from pixelcanvas.grid import PERIODS, period_ids
from pixelcanvas.models import StatsAggregate, User

logger = logging.getLogger(__name__)

# Public range names accepted by the leaderboard API
RANGE_TO_PERIOD = {
    "today": "day",
    "month": "month",
    "year": "year",
}

_INCREMENT_SQL = text("""
    INSERT INTO stats_aggregates (period, period_id, uid, pixel_count)
    VALUES (:period, :period_id, :uid, 1)
    ON CONFLICT (period, period_id, uid)
    DO UPDATE SET pixel_count = stats_aggregates.pixel_count + 1
""")


def increment_aggregates(db: Session, uid: str, now_ms: int) -> Dict[str, str]:
    """
    Add one placement for uid to each bucket containing now_ms.

    Runs inside the caller's transaction. Returns the bucket ids touched.
    """
    buckets = period_ids(now_ms)
    for period in PERIODS:
        db.execute(_INCREMENT_SQL, {"period": period, "period_id": buckets[period], "uid": uid})
    return buckets


def top_n(db: Session, period: str, limit: int, as_of_ms: int) -> List[dict]:
    """
    Top `limit` users of the bucket containing as_of_ms.

    A bucket nobody has placed in yet yields an empty list.
    """
    if period not in PERIODS:
        raise ValueError(f"Unknown period: {period}")

    period_id = period_ids(as_of_ms)[period]
    rows = (
        db.query(StatsAggregate.uid, StatsAggregate.pixel_count)
        .filter(StatsAggregate.period == period, StatsAggregate.period_id == period_id)
        .order_by(StatsAggregate.pixel_count.desc(), StatsAggregate.uid.asc())
        .limit(limit)
        .all()
    )
    return [{"uid": uid, "count": int(count)} for uid, count in rows]


def resolve_names(db: Session, entries: List[dict]) -> List[dict]:
    """Attach display names, falling back to the uid when none is stored."""
    if not entries:
        return []

    uids = [entry["uid"] for entry in entries]
    names = dict(
        db.query(User.uid, User.display_name).filter(User.uid.in_(uids)).all()
    )
    return [
        {"uid": entry["uid"], "name": names.get(entry["uid"]) or entry["uid"], "count": entry["count"]}
        for entry in entries
    ]
