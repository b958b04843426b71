"""
Bounded LRU cache of board tiles for the canvas client.

Each tile maps cell keys ("x_y") to colors. Reads refresh recency; inserting
past the limit evicts the least recently touched tiles.
"""
import logging
from collections import OrderedDict
from typing import Callable, Dict, Iterable, List, Optional, Union

from pixelcanvas.grid import TILE_SIZE, pixel_key, tile_key_for
from pixelcanvas.client.scheduler import wall_clock_ms

logger = logging.getLogger(__name__)


class Tile:
    __slots__ = ("pixels", "last_touched")

    def __init__(self, pixels: Optional[Dict[str, str]] = None, last_touched: int = 0):
        self.pixels = pixels if pixels is not None else {}
        self.last_touched = last_touched

    def __repr__(self):
        return f"Tile({len(self.pixels)} pixels, last_touched={self.last_touched})"


def pixels_to_map(pixels: Union[Iterable[dict], Dict[str, str], None]) -> Dict[str, str]:
    """Normalize a box response (list of {x, y, color}) or a ready map."""
    if not pixels:
        return {}
    if isinstance(pixels, dict):
        return dict(pixels)
    return {pixel_key(p["x"], p["y"]): p["color"] for p in pixels}


class TileCache:
    def __init__(self, limit: int = 500, tile_size: int = TILE_SIZE,
                 clock: Optional[Callable[[], int]] = None):
        if limit < 1:
            raise ValueError("limit must be positive")
        self.limit = limit
        self.tile_size = tile_size
        self._clock = clock or wall_clock_ms
        self._tiles: "OrderedDict[str, Tile]" = OrderedDict()
        self.evictions = 0

    def __contains__(self, key: str) -> bool:
        # presence only; does not count as a touch
        return key in self._tiles

    def __len__(self) -> int:
        return len(self._tiles)

    def keys(self) -> List[str]:
        """Keys from least to most recently touched."""
        return list(self._tiles)

    def touch(self, key: str) -> bool:
        tile = self._tiles.get(key)
        if tile is None:
            return False
        tile.last_touched = self._clock()
        self._tiles.move_to_end(key)
        return True

    def get(self, key: str) -> Optional[Tile]:
        if not self.touch(key):
            return None
        return self._tiles[key]

    def put(self, key: str, pixels=None) -> List[str]:
        """Insert or replace a tile; returns the keys evicted to stay in bounds."""
        self._tiles[key] = Tile(pixels_to_map(pixels), self._clock())
        self._tiles.move_to_end(key)

        evicted = []
        while len(self._tiles) > self.limit:
            old_key, _ = self._tiles.popitem(last=False)
            evicted.append(old_key)
        if evicted:
            self.evictions += len(evicted)
            logger.debug(f"Evicted tiles {evicted}")
        return evicted

    def upsert_pixel(self, x: int, y: int, color: str) -> bool:
        """Update one cell in place if its tile is cached."""
        tile = self.get(tile_key_for(x, y, self.tile_size))
        if tile is None:
            return False
        tile.pixels[pixel_key(x, y)] = color
        return True

    def clear(self):
        self._tiles.clear()

    def stats(self) -> dict:
        return {
            "tiles": len(self._tiles),
            "limit": self.limit,
            "pixels": sum(len(t.pixels) for t in self._tiles.values()),
            "evictions": self.evictions,
        }
