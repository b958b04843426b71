"""
Tests for the client tile cache.
"""
from pixelcanvas.client.tile_cache import TileCache

from conftest import FakeClock


def test_eviction_keeps_size_at_limit():
    """Inserting past the limit evicts the least recently touched tile."""
    cache = TileCache(limit=3, clock=FakeClock())
    for key in ("0_0", "1_0", "2_0"):
        cache.put(key, [])
    evicted = cache.put("3_0", [])

    assert evicted == ["0_0"]
    assert len(cache) == 3
    assert "0_0" not in cache


def test_reading_moves_tile_to_most_recent():
    cache = TileCache(limit=3, clock=FakeClock())
    for key in ("a", "b", "c"):
        cache.put(key, [])

    assert cache.get("a") is not None
    evicted = cache.put("d", [])
    assert evicted == ["b"]
    assert cache.keys() == ["c", "a", "d"]


def test_touch_updates_timestamp():
    clock = FakeClock(1000)
    cache = TileCache(limit=2, clock=clock)
    cache.put("a", [])
    clock.advance(500)
    cache.touch("a")
    assert cache.get("a").last_touched == 1500


def test_contains_does_not_touch():
    cache = TileCache(limit=2, clock=FakeClock())
    cache.put("a", [])
    cache.put("b", [])
    assert "a" in cache
    cache.put("c", [])
    assert "a" not in cache


def test_put_accepts_box_response():
    cache = TileCache(limit=2, clock=FakeClock())
    cache.put("0_0", [{"x": 1, "y": 2, "color": "#ff0000"}, {"x": 3, "y": 4, "color": "#00ff00"}])
    assert cache.get("0_0").pixels == {"1_2": "#ff0000", "3_4": "#00ff00"}


def test_upsert_pixel_only_into_cached_tile():
    cache = TileCache(limit=2, tile_size=64, clock=FakeClock())
    cache.put("1_0", [])

    assert cache.upsert_pixel(70, 3, "#abcdef")
    assert cache.get("1_0").pixels == {"70_3": "#abcdef"}
    assert not cache.upsert_pixel(5, 5, "#abcdef")
    assert "0_0" not in cache


def test_stats():
    cache = TileCache(limit=1, clock=FakeClock())
    cache.put("a", {"1_1": "#000000"})
    cache.put("b", {"2_2": "#000000", "3_3": "#000000"})
    assert cache.stats() == {"tiles": 1, "limit": 1, "pixels": 2, "evictions": 1}
