"""
Screen/world mapping for a pannable, zoomable view of the board.

World coordinates are board cells; ``zoom`` is screen pixels per cell and
``(center_x, center_y)`` is the world point under the middle of the screen.
"""
import math
from typing import List, Tuple

from pixelcanvas.grid import GRID_SIZE, TILE_SIZE, Box, clamp


class Viewport:
    def __init__(self, width: float, height: float, center_x: float = GRID_SIZE / 2,
                 center_y: float = GRID_SIZE / 2, zoom: float = 0.5,
                 grid_size: int = GRID_SIZE, tile_size: int = TILE_SIZE,
                 min_zoom: float = 0.05, max_zoom: float = 8.0):
        self.width = width
        self.height = height
        self.center_x = center_x
        self.center_y = center_y
        self.grid_size = grid_size
        self.tile_size = tile_size
        self.min_zoom = min_zoom
        self.max_zoom = max_zoom
        self.zoom = clamp(zoom, min_zoom, max_zoom)

    def world_to_screen(self, wx: float, wy: float) -> Tuple[float, float]:
        return (
            self.width / 2 + (wx - self.center_x) * self.zoom,
            self.height / 2 + (wy - self.center_y) * self.zoom,
        )

    def screen_to_world(self, sx: float, sy: float) -> Tuple[int, int]:
        """Cell under a screen point."""
        return (
            math.floor((sx - self.width / 2) / self.zoom + self.center_x),
            math.floor((sy - self.height / 2) / self.zoom + self.center_y),
        )

    def visible_box(self, padding_tiles: int = 0) -> Box:
        """World box covered by the screen, widened by whole tiles. Not clamped."""
        half_w = (self.width / 2) / self.zoom
        half_h = (self.height / 2) / self.zoom
        pad = padding_tiles * self.tile_size
        return Box(
            math.floor(self.center_x - half_w) - pad,
            math.floor(self.center_y - half_h) - pad,
            math.ceil(self.center_x + half_w) + pad,
            math.ceil(self.center_y + half_h) + pad,
        )

    def tiles_in_view(self, padding_tiles: int = 1) -> List[str]:
        """Keys of on-board tiles intersecting the (padded) visible box, row by row."""
        box = self.visible_box(padding_tiles)
        last = self.grid_size - 1
        if box.right < 0 or box.bottom < 0 or box.left > last or box.top > last:
            return []

        t_left = clamp(box.left, 0, last) // self.tile_size
        t_top = clamp(box.top, 0, last) // self.tile_size
        t_right = clamp(box.right, 0, last) // self.tile_size
        t_bottom = clamp(box.bottom, 0, last) // self.tile_size
        return [
            f"{tx}_{ty}"
            for ty in range(t_top, t_bottom + 1)
            for tx in range(t_left, t_right + 1)
        ]

    def pan(self, dx: float, dy: float):
        """Drag the view by a screen-space delta."""
        self.center_x -= dx / self.zoom
        self.center_y -= dy / self.zoom

    def zoom_at(self, sx: float, sy: float, factor: float):
        """Scale zoom by factor, keeping the world point under (sx, sy) fixed."""
        wx = (sx - self.width / 2) / self.zoom + self.center_x
        wy = (sy - self.height / 2) / self.zoom + self.center_y
        self.zoom = clamp(self.zoom * factor, self.min_zoom, self.max_zoom)
        self.center_x = wx - (sx - self.width / 2) / self.zoom
        self.center_y = wy - (sy - self.height / 2) / self.zoom

    def resize(self, width: float, height: float):
        self.width = width
        self.height = height
