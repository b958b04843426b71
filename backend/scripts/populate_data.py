"""
Script to seed a development database with painters, pixels and leaderboard
buckets. Placements are simulated over the last 30 days, clustered around a
few hot spots, and replayed into the day/month/year aggregates.
"""
import sys
import os
import time
import random
from collections import Counter

# Add parent directory to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from faker import Faker
from sqlalchemy import text

from pixelcanvas.config import get_settings
from pixelcanvas.database import SessionLocal, init_db
from pixelcanvas.grid import GRID_SIZE, PERIODS, clamp, period_ids
from pixelcanvas.services.users import make_unique_code

fake = Faker()
settings = get_settings()

PALETTE = [
    "#000000", "#ffffff", "#ff4d6d", "#ff0000", "#ff9900", "#ffee00",
    "#33cc33", "#00aaff", "#3344ff", "#9933ff", "#8b4513", "#888888",
]
DAY_MS = 24 * 60 * 60 * 1000


def generate_users(session, total_users=5_000, batch_size=1_000):
    """Generate and insert users in batches. Returns their uids."""
    print(f"\nGenerating {total_users:,} users...")
    start_time = time.time()
    uids = []

    for batch_start in range(0, total_users, batch_size):
        batch_end = min(batch_start + batch_size, total_users)

        users_data = []
        for i in range(batch_start, batch_end):
            uid = fake.unique.bothify(text="seed????????????").lower()
            uids.append(uid)
            users_data.append({
                'uid': uid,
                'display_name': fake.user_name()[:100],
                'email': f"{uid}@{fake.domain_name()}",
                'unique_code': make_unique_code(uid),
                'free_pixels': random.randint(0, settings.default_free_pixels),
                'play_points': random.randint(0, 50),
            })

        insert_query = text("""
            INSERT INTO users (uid, display_name, email, avatar_url, bio, unique_code,
                               free_pixels, play_points, last_placed_at, pixels_drawn_all_time,
                               role, is_banned, version)
            VALUES (:uid, :display_name, :email, '', '', :unique_code,
                    :free_pixels, :play_points, 0, 0, 'user', false, 1)
        """)
        session.execute(insert_query, users_data)
        session.commit()

        elapsed = time.time() - start_time
        rate = batch_end / elapsed if elapsed > 0 else 0
        print(f"Progress: {batch_end / total_users * 100:.1f}% ({batch_end:,}/{total_users:,}) - "
              f"{rate:.0f} users/sec")

    print(f"✓ Created {total_users:,} users in {time.time() - start_time:.2f} seconds")
    return uids


def simulate_placements(uids, total_placements=200_000, hot_spots=12):
    """
    Build placement events (uid, x, y, color, at_ms).

    A few users paint far more than others, and most strokes land near a hot
    spot so the board has recognizable areas.
    """
    print(f"\nSimulating {total_placements:,} placements...")
    now_ms = int(time.time() * 1000)
    spots = [(random.randrange(GRID_SIZE), random.randrange(GRID_SIZE)) for _ in range(hot_spots)]
    weights = [random.paretovariate(1.2) for _ in uids]

    events = []
    for uid in random.choices(uids, weights=weights, k=total_placements):
        cx, cy = random.choice(spots)
        x = clamp(int(random.gauss(cx, 150)), 0, GRID_SIZE - 1)
        y = clamp(int(random.gauss(cy, 150)), 0, GRID_SIZE - 1)
        at_ms = now_ms - random.randint(0, 30 * DAY_MS)
        events.append((uid, x, y, random.choice(PALETTE), at_ms))
    events.sort(key=lambda e: e[4])
    return events


def write_pixels(session, events, names, batch_size=5_000):
    """Keep the last write of every cell, as placements would."""
    latest = {}
    for uid, x, y, color, at_ms in events:
        latest[(x, y)] = (uid, color, at_ms)

    rows = [
        {'x': x, 'y': y, 'color': color, 'owner': uid, 'owner_name': names[uid], 'filled_at': at_ms}
        for (x, y), (uid, color, at_ms) in latest.items()
    ]
    insert_query = text("""
        INSERT INTO pixels (x, y, color, owner, owner_name, filled_at)
        VALUES (:x, :y, :color, :owner, :owner_name, :filled_at)
    """)
    for batch_start in range(0, len(rows), batch_size):
        session.execute(insert_query, rows[batch_start:batch_start + batch_size])
        session.commit()
    print(f"✓ Wrote {len(rows):,} distinct pixels")


def write_user_counters(session, events):
    drawn = Counter(e[0] for e in events)
    last_placed = {}
    for uid, _, _, _, at_ms in events:
        last_placed[uid] = at_ms

    update_query = text("""
        UPDATE users SET pixels_drawn_all_time = :drawn, last_placed_at = :last_placed
        WHERE uid = :uid
    """)
    session.execute(update_query, [
        {'uid': uid, 'drawn': count, 'last_placed': last_placed[uid]}
        for uid, count in drawn.items()
    ])
    session.commit()
    print(f"✓ Updated counters of {len(drawn):,} painters")


def write_aggregates(session, events, batch_size=5_000):
    """Replay every placement into its day, month and year bucket."""
    counts = Counter()
    for uid, _, _, _, at_ms in events:
        buckets = period_ids(at_ms)
        for period in PERIODS:
            counts[(period, buckets[period], uid)] += 1

    rows = [
        {'period': period, 'period_id': period_id, 'uid': uid, 'pixel_count': count}
        for (period, period_id, uid), count in counts.items()
    ]
    insert_query = text("""
        INSERT INTO stats_aggregates (period, period_id, uid, pixel_count)
        VALUES (:period, :period_id, :uid, :pixel_count)
    """)
    for batch_start in range(0, len(rows), batch_size):
        session.execute(insert_query, rows[batch_start:batch_start + batch_size])
        session.commit()
    print(f"✓ Wrote {len(rows):,} aggregate buckets")


def print_statistics(session):
    """Print database statistics."""
    print("\n" + "="*60)
    print("DATABASE STATISTICS")
    print("="*60)

    for table in ("users", "pixels", "stats_aggregates"):
        result = session.execute(text(f"SELECT COUNT(*) FROM {table}"))
        print(f"{table}: {result.scalar():,}")

    today = period_ids(int(time.time() * 1000))["day"]
    result = session.execute(text("""
        SELECT s.uid, u.display_name, s.pixel_count
        FROM stats_aggregates s
        LEFT JOIN users u ON u.uid = s.uid
        WHERE s.period = 'day' AND s.period_id = :period_id
        ORDER BY s.pixel_count DESC, s.uid ASC
        LIMIT 5
    """), {'period_id': today})

    print(f"\nTop 5 Painters Today ({today}):")
    for idx, (uid, name, count) in enumerate(result.fetchall(), 1):
        print(f"  {idx}. {name or uid}: {count:,} pixels")

    print("="*60)


def main():
    """Main execution function."""
    print("="*60)
    print("PIXELCANVAS DATA POPULATION SCRIPT")
    print("="*60)
    print(f"Database: {settings.database_url}")
    print("="*60)

    overall_start = time.time()
    init_db()
    session = SessionLocal()

    try:
        uids = generate_users(session)
        names = dict(session.execute(text("SELECT uid, display_name FROM users")).fetchall())
        events = simulate_placements(uids)
        write_pixels(session, events, names)
        write_user_counters(session, events)
        write_aggregates(session, events)
        print_statistics(session)

        print(f"\n✓ Total execution time: {time.time() - overall_start:.2f} seconds")
        print("✓ Data population completed successfully!")

    except Exception as e:
        print(f"\n✗ Error during data population: {e}")
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()
