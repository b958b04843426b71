"""
Coordinate and tiling model shared by the server and the canvas client.

The board is the integer plane [0, GRID_SIZE) x [0, GRID_SIZE). Clients cache
it in square tiles of TILE_SIZE cells keyed "tx_ty"; single cells are keyed
"x_y".
"""
import math
import re
from datetime import datetime, timezone
from typing import NamedTuple, Tuple

GRID_SIZE = 10_000
TILE_SIZE = 64
COOLDOWN_MS = 10_000
MAX_BOX_CELLS = 2000
COLOR_LENGTH = 7  # '#RRGGBB'

HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")

PERIODS = ("day", "month", "year")


class Box(NamedTuple):
    """Inclusive axis-aligned box of cells."""
    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left + 1

    @property
    def height(self) -> int:
        return self.bottom - self.top + 1

    @property
    def area(self) -> int:
        return max(0, self.width) * max(0, self.height)

    def intersects(self, other: "Box") -> bool:
        return not (
            other.right < self.left or other.left > self.right
            or other.bottom < self.top or other.top > self.bottom
        )


def is_valid_coord(n, grid_size: int = GRID_SIZE) -> bool:
    """True for a plain int inside [0, grid_size)."""
    if isinstance(n, bool) or not isinstance(n, int):
        return False
    return 0 <= n < grid_size


def is_hex_color(s) -> bool:
    return isinstance(s, str) and len(s) == COLOR_LENGTH and HEX_COLOR_RE.match(s) is not None


def pixel_key(x: int, y: int) -> str:
    return f"{x}_{y}"


def parse_pixel_key(key: str) -> Tuple[int, int]:
    x, y = key.split("_")
    return int(x), int(y)


def tile_key_for(x: int, y: int, tile_size: int = TILE_SIZE) -> str:
    return f"{math.floor(x / tile_size)}_{math.floor(y / tile_size)}"


def tile_bounds(key: str, tile_size: int = TILE_SIZE) -> Box:
    tx, ty = (int(part) for part in key.split("_"))
    left = tx * tile_size
    top = ty * tile_size
    return Box(left, top, left + tile_size - 1, top + tile_size - 1)


def clamp(n, low, high):
    return max(low, min(high, n))


def period_ids(now_ms: int) -> dict:
    """Map each aggregate period to its UTC calendar bucket id for now_ms."""
    dt = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc)
    return {
        "day": dt.strftime("%Y-%m-%d"),
        "month": dt.strftime("%Y-%m"),
        "year": dt.strftime("%Y"),
    }
