from sqlalchemy import (
    Column, Integer, String, BigInteger, Boolean, Text, JSON, TIMESTAMP, Index,
)
from sqlalchemy.sql import func
from pixelcanvas.database import Base


class User(Base):
    """
    Player account keyed by the identity provider's uid.

    free_pixels and play_points are the two balance sources a placement can
    draw from; last_placed_at (epoch ms, 0 = never) drives the cooldown.
    The version column makes concurrent updates of the same row fail with
    StaleDataError instead of silently overwriting each other.
    """
    __tablename__ = "users"

    uid = Column(String(128), primary_key=True)
    display_name = Column(String(100), nullable=False, default="Anon", index=True)
    email = Column(String(255), nullable=True)
    avatar_url = Column(String(500), nullable=False, default="")
    bio = Column(Text, nullable=False, default="")
    unique_code = Column(String(16), nullable=True)

    free_pixels = Column(Integer, nullable=False, default=100)
    play_points = Column(Integer, nullable=False, default=0)
    last_placed_at = Column(BigInteger, nullable=False, default=0)
    pixels_drawn_all_time = Column(BigInteger, nullable=False, default=0)

    color_pack = Column(String(20), nullable=True)
    allowed_colors = Column(JSON, nullable=True)
    color_pack_expiry = Column(TIMESTAMP, nullable=True)
    stripe_customer_id = Column(String(64), nullable=True, index=True)
    last_purchase_at = Column(TIMESTAMP, nullable=True)

    role = Column(String(20), nullable=False, default="user")
    is_banned = Column(Boolean, nullable=False, default=False)
    created_at = Column(TIMESTAMP, server_default=func.now())

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class Pixel(Base):
    """
    Last write to a single cell. owner_name is a display-name snapshot taken
    at filled_at and may go stale.
    """
    __tablename__ = "pixels"

    x = Column(Integer, primary_key=True)
    y = Column(Integer, primary_key=True)
    color = Column(String(7), nullable=False)
    owner = Column(String(128), nullable=False, index=True)
    owner_name = Column(String(255), nullable=False, default="anon")
    filled_at = Column(BigInteger, nullable=False)  # epoch ms


class StatsAggregate(Base):
    """Placement count of one user inside one calendar bucket."""
    __tablename__ = "stats_aggregates"

    period = Column(String(10), primary_key=True)  # day | month | year
    period_id = Column(String(10), primary_key=True)  # YYYY-MM-DD | YYYY-MM | YYYY
    uid = Column(String(128), primary_key=True)
    pixel_count = Column(BigInteger, nullable=False, default=0)

    # Top-N reads for one bucket
    __table_args__ = (
        Index('idx_stats_bucket_count', period, period_id, pixel_count.desc()),
    )


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sender = Column(String(128), nullable=False, index=True)
    sender_name = Column(String(255), nullable=False, default="anon")
    text = Column(Text, nullable=False)
    created_at = Column(TIMESTAMP, server_default=func.now(), nullable=False, index=True)
