"""
Integration tests for the leaderboard endpoint.
"""
import pytest

from pixelcanvas.models import StatsAggregate

from conftest import client, auth


@pytest.fixture
def sample_aggregates(test_db, sample_users):
    """Counts in the current buckets plus one stale day bucket."""
    rows = [
        StatsAggregate(period="day", period_id="2025-03-14", uid="u1", pixel_count=5),
        StatsAggregate(period="day", period_id="2025-03-14", uid="u2", pixel_count=9),
        StatsAggregate(period="day", period_id="2025-03-14", uid="zz", pixel_count=5),
        StatsAggregate(period="day", period_id="2025-03-13", uid="u3", pixel_count=50),
        StatsAggregate(period="month", period_id="2025-03", uid="u3", pixel_count=70),
        StatsAggregate(period="month", period_id="2025-03", uid="u1", pixel_count=5),
        StatsAggregate(period="year", period_id="2025", uid="u1", pixel_count=200),
    ]
    test_db.add_all(rows)
    test_db.commit()
    return rows


# ============================================================================
# Top Painters Tests
# ============================================================================

def test_top_today(sample_aggregates):
    """Current day bucket sorted by count, ties by uid, unknown uids named by uid."""
    response = client.get("/api/leaderboard/top?range=today")
    assert response.status_code == 200
    assert response.json() == [
        {"uid": "u2", "name": "bob", "count": 9},
        {"uid": "u1", "name": "painter-u1", "count": 5},
        {"uid": "zz", "name": "zz", "count": 5},
    ]


def test_top_defaults_to_today(sample_aggregates):
    response = client.get("/api/leaderboard/top")
    assert [e["uid"] for e in response.json()] == ["u2", "u1", "zz"]


def test_top_month(sample_aggregates):
    data = client.get("/api/leaderboard/top?range=month").json()
    assert [(e["uid"], e["count"]) for e in data] == [("u3", 70), ("u1", 5)]


def test_top_year(sample_aggregates):
    data = client.get("/api/leaderboard/top?range=year").json()
    assert data == [{"uid": "u1", "name": "painter-u1", "count": 200}]


def test_top_limit(sample_aggregates):
    data = client.get("/api/leaderboard/top?range=today&limit=2").json()
    assert len(data) == 2


def test_top_limit_capped_at_100(test_db):
    """Limits above 100 are clamped, not rejected."""
    test_db.add_all([
        StatsAggregate(period="day", period_id="2025-03-14", uid=f"user{i:03d}", pixel_count=i)
        for i in range(120)
    ])
    test_db.commit()

    response = client.get("/api/leaderboard/top?range=today&limit=500")
    assert response.status_code == 200
    assert len(response.json()) == 100
    assert response.json()[0] == {"uid": "user119", "name": "user119", "count": 119}


def test_top_empty_period():
    response = client.get("/api/leaderboard/top?range=year")
    assert response.status_code == 200
    assert response.json() == []


def test_top_invalid_range():
    response = client.get("/api/leaderboard/top?range=week")
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid range"


def test_top_invalid_limit():
    response = client.get("/api/leaderboard/top?limit=0")
    assert response.status_code == 400


def test_top_reflects_placements(sample_users, broadcasts, clock):
    """Placements through the API show up in the day ranking."""
    client.post("/api/pixels/place", json={"x": 1, "y": 1, "color": "#000000"}, headers=auth("u2"))
    client.post("/api/pixels/place", json={"x": 2, "y": 1, "color": "#000000"}, headers=auth("u1"))
    clock.advance(10_000)
    client.post("/api/pixels/place", json={"x": 3, "y": 1, "color": "#000000"}, headers=auth("u1"))

    data = client.get("/api/leaderboard/top?range=today").json()
    assert [(e["uid"], e["count"]) for e in data] == [("u1", 2), ("u2", 1)]
