"""
Integration tests for the pixel placement and box endpoints.
"""
from pixelcanvas.models import Pixel, User, StatsAggregate

from conftest import BASE_TIME_MS, client, auth, make_user


def place(uid, x, y, color="#ff0000"):
    return client.post("/api/pixels/place", json={"x": x, "y": y, "color": color}, headers=auth(uid))


# ============================================================================
# Place Pixel Tests
# ============================================================================

def test_place_success(sample_users, broadcasts):
    """A valid placement returns the end of the caller's cooldown."""
    response = place("u1", 5, 5)
    assert response.status_code == 200
    assert response.json() == {"success": True, "cooldownUntil": BASE_TIME_MS + 10_000}


def test_place_broadcasts_pixel(sample_users, broadcasts):
    """Committed pixels are pushed to subscribers as pixelPlaced."""
    place("u1", 5, 6, "#00ff00")
    assert broadcasts == [("pixelPlaced", {"x": 5, "y": 6, "color": "#00ff00", "owner": "u1"})]


def test_place_cooldown(sample_users, broadcasts, clock):
    """A second placement inside the window answers 429 with waitMs."""
    assert place("u1", 1, 1).status_code == 200
    clock.advance(4000)

    response = place("u1", 2, 2)
    assert response.status_code == 429
    assert response.json() == {"success": False, "error": "Cooldown", "waitMs": 6000}
    assert len(broadcasts) == 1


def test_place_out_of_range(sample_users, test_db, broadcasts):
    """x = N is rejected with no pixel written."""
    response = place("u1", 10_000, 0)
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid coordinates"}
    assert test_db.query(Pixel).count() == 0
    assert broadcasts == []


def test_place_bad_color(sample_users):
    response = place("u1", 1, 1, "blue")
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid color format. Use #RRGGBB"


def test_place_wrong_json_types():
    """Non-integer coordinates fail request validation with 400."""
    response = client.post(
        "/api/pixels/place", json={"x": "5", "y": 5, "color": "#ff0000"}, headers=auth("u1")
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Validation Error"


def test_place_missing_fields():
    response = client.post("/api/pixels/place", json={"x": 5}, headers=auth("u1"))
    assert response.status_code == 400


def test_place_requires_auth():
    response = client.post("/api/pixels/place", json={"x": 1, "y": 1, "color": "#ff0000"})
    assert response.status_code == 401
    assert response.json()["error"] == "Missing auth token"


def test_place_unknown_user():
    response = place("nobody", 1, 1)
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "User not found"}


def test_place_insufficient_balance(test_db):
    test_db.add(make_user("broke", free_pixels=0, play_points=0))
    test_db.commit()

    response = place("broke", 1, 1)
    assert response.status_code == 402
    assert response.json() == {"success": False, "error": "No free pixels or play points"}


def test_place_color_locked(test_db):
    test_db.add(make_user("basic", color_pack="free", allowed_colors=["#000000"]))
    test_db.commit()

    response = place("basic", 1, 1, "#ff0000")
    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Color locked by your plan"}


def test_place_updates_user_and_aggregates(sample_users, test_db, broadcasts):
    """One success debits one unit and bumps all three buckets."""
    place("u2", 9, 9)

    test_db.expire_all()
    user = test_db.get(User, "u2")
    assert user.free_pixels == 99
    assert user.last_placed_at == BASE_TIME_MS
    counts = sorted(
        (a.period, a.pixel_count)
        for a in test_db.query(StatsAggregate).filter(StatsAggregate.uid == "u2")
    )
    assert counts == [("day", 1), ("month", 1), ("year", 1)]


# ============================================================================
# Box Tests
# ============================================================================

def seed_pixels(db, cells):
    db.add_all([
        Pixel(x=x, y=y, color="#123456", owner="u1", owner_name="painter-u1", filled_at=BASE_TIME_MS)
        for x, y in cells
    ])
    db.commit()


def test_box_returns_cells_inside(test_db):
    """Only cells inside the inclusive box come back, in camelCase."""
    seed_pixels(test_db, [(0, 0), (10, 10), (20, 20), (150, 5)])

    response = client.get("/api/pixels/box?left=0&top=0&right=20&bottom=20")
    assert response.status_code == 200
    data = response.json()
    assert [(p["x"], p["y"]) for p in data] == [(0, 0), (10, 10), (20, 20)]
    assert data[0] == {
        "x": 0, "y": 0, "color": "#123456", "owner": "u1",
        "ownerName": "painter-u1", "filledAt": BASE_TIME_MS,
    }


def test_box_defaults_to_100_cells(test_db):
    """right/bottom default to left+100/top+100."""
    seed_pixels(test_db, [(100, 100), (101, 100)])
    data = client.get("/api/pixels/box").json()
    assert [(p["x"], p["y"]) for p in data] == [(100, 100)]


def test_box_respects_limit(test_db):
    seed_pixels(test_db, [(x, 0) for x in range(10)])
    data = client.get("/api/pixels/box?left=0&top=0&right=9&bottom=0&limit=4").json()
    assert len(data) == 4


def test_box_too_large():
    """A 2501-wide box is rejected."""
    response = client.get("/api/pixels/box?left=0&top=0&right=2500&bottom=0&limit=1000")
    assert response.status_code == 400
    assert response.json()["error"] == "Box too large"


def test_box_max_span_allowed():
    """Exactly 2000 wide is still accepted."""
    response = client.get("/api/pixels/box?left=0&top=0&right=1999&bottom=0")
    assert response.status_code == 200


def test_box_invalid_coordinate():
    response = client.get("/api/pixels/box?left=-1&top=0&right=10&bottom=10")
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid left"


def test_box_reversed():
    response = client.get("/api/pixels/box?left=10&top=0&right=5&bottom=10")
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid box"


def test_box_non_numeric():
    response = client.get("/api/pixels/box?left=abc")
    assert response.status_code == 400
