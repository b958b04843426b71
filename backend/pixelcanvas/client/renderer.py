"""
Canvas client: tile cache, viewport and optimistic placement in one object.

The renderer owns all client state and draws onto an abstract ``Surface``
(anything with ``clear`` and ``fill_rect``). Pixels come from a
``PixelSource``; realtime ``pixelPlaced`` events are applied to cached tiles
only, so off-screen state catches up on the next viewport fetch.
"""
import asyncio
import logging
import math
from typing import Callable, Dict, List, NamedTuple, Optional, Protocol, Tuple

from pixelcanvas.config import ClientSettings
from pixelcanvas.grid import (
    Box, clamp, is_hex_color, is_valid_coord, parse_pixel_key, pixel_key,
    tile_bounds, tile_key_for,
)
from pixelcanvas.realtime import PIXEL_PLACED
from pixelcanvas.client.pixel_source import PixelSource, PlaceOutcome, split_box
from pixelcanvas.client.scheduler import DebounceScheduler
from pixelcanvas.client.tile_cache import TileCache
from pixelcanvas.client.viewport import Viewport

logger = logging.getLogger(__name__)

FETCH_VISIBLE_TASK = "fetch-visible"
SWEEP_TASK = "sweep-pending"
RETRY_TASK_PREFIX = "retry:"
PENDING_ALPHA = "88"
PROGRESS_COLOR = "#00000066"
PROGRESS_HEIGHT = 3


class TileFetchError(Exception):
    """Part of a tile could not be read from the pixel source."""


class Surface(Protocol):
    width: float
    height: float

    def clear(self, color: str) -> None:
        ...

    def fill_rect(self, x: int, y: int, w: int, h: int, color: str) -> None:
        ...


class PendingFill(NamedTuple):
    color: str
    until_ms: int
    total_ms: int


class CanvasRenderer:
    def __init__(self, source: PixelSource, surface: Surface,
                 settings: Optional[ClientSettings] = None,
                 scheduler: Optional[DebounceScheduler] = None,
                 notify: Optional[Callable[[str], None]] = None):
        self.settings = settings if settings is not None else ClientSettings()
        self.source = source
        self.surface = surface
        # an idle scheduler is falsy (no pending tasks)
        self.scheduler = scheduler if scheduler is not None else DebounceScheduler()
        self.clock = self.scheduler.clock
        self.notify = notify

        s = self.settings
        self.cache = TileCache(s.cache_tile_limit, s.tile_size, self.clock)
        self.viewport = Viewport(
            surface.width, surface.height,
            center_x=s.grid_size / 2, center_y=s.grid_size / 2,
            zoom=s.initial_zoom, grid_size=s.grid_size, tile_size=s.tile_size,
            min_zoom=s.min_zoom, max_zoom=s.max_zoom,
        )
        self.pending: Dict[str, PendingFill] = {}
        self._retries: Dict[str, int] = {}
        self.current_color = "#ff4d6d"
        self._sweeping = False

    # ------------------------------------------------------------------
    # lifecycle

    def start(self):
        """Begin the periodic pending sweep and load the initial view."""
        self._sweeping = True
        self.scheduler.schedule(SWEEP_TASK, self.sweep_pending, self.settings.pending_sweep_ms)
        self.schedule_fetch_visible()

    def stop(self):
        self._sweeping = False
        self.scheduler.cancel(SWEEP_TASK)
        self.scheduler.cancel(FETCH_VISIBLE_TASK)
        for key in self._retries:
            self.scheduler.cancel(RETRY_TASK_PREFIX + key)
        self._retries.clear()

    # ------------------------------------------------------------------
    # fetching

    def schedule_fetch_visible(self):
        self.scheduler.schedule(FETCH_VISIBLE_TASK, self.load_visible_tiles,
                                self.settings.fetch_debounce_ms)

    async def _fetch_parts(self, box: Box) -> Tuple[List[dict], int]:
        last = self.settings.grid_size - 1
        box = Box(
            clamp(box.left, 0, last), clamp(box.top, 0, last),
            clamp(box.right, 0, last), clamp(box.bottom, 0, last),
        )
        limit = self.settings.max_box_cells
        pixels = []
        failed = 0
        for part in split_box(box, limit):
            try:
                pixels.extend(await self.source.fetch_box(part, limit))
            except Exception as e:
                failed += 1
                logger.error(f"Box fetch failed for {tuple(part)}: {str(e)}")
        return pixels, failed

    async def fetch_box(self, box: Box) -> List[dict]:
        """All written cells in box, clamped to the board and split under the cell cap."""
        pixels, _ = await self._fetch_parts(box)
        return pixels

    async def fetch_tile(self, key: str):
        """
        Replace a tile with authoritative data; its pending overlays end.

        Raises TileFetchError when any part of the tile could not be read,
        leaving the cache and the overlays untouched.
        """
        pixels, failed = await self._fetch_parts(tile_bounds(key, self.settings.tile_size))
        if failed:
            raise TileFetchError(f"{failed} box request(s) failed for tile {key}")
        self.cache.put(key, pixels)
        self._retries.pop(key, None)
        self.scheduler.cancel(RETRY_TASK_PREFIX + key)
        ts = self.settings.tile_size
        for cell in [k for k in self.pending if tile_key_for(*parse_pixel_key(k), ts) == key]:
            del self.pending[cell]

    async def load_visible_tiles(self) -> List[str]:
        """Fetch every missing tile around the view, then redraw. Returns fetched keys."""
        missing = []
        for key in self.viewport.tiles_in_view(1):
            if self.cache.touch(key) or RETRY_TASK_PREFIX + key in self.scheduler:
                continue
            missing.append(key)

        results = await asyncio.gather(
            *(self.fetch_tile(key) for key in missing), return_exceptions=True
        )
        for key, result in zip(missing, results):
            if isinstance(result, Exception):
                logger.error(f"Tile fetch failed: {key}: {str(result)}")
                self.schedule_retry(key)
        if missing:
            logger.debug(f"Loaded {len(missing)} tiles")
        self.render()
        return missing

    def schedule_retry(self, key: str) -> int:
        """Queue another fetch of a failed tile, doubling the delay each attempt."""
        attempt = self._retries.get(key, 0)
        self._retries[key] = attempt + 1
        delay = min(self.settings.retry_max_ms, self.settings.retry_base_ms * 2 ** attempt)
        self.scheduler.schedule(RETRY_TASK_PREFIX + key, lambda: self._retry_tile(key), delay)
        return delay

    async def _retry_tile(self, key: str):
        bounds = tile_bounds(key, self.settings.tile_size)
        if not bounds.intersects(self.viewport.visible_box(1)):
            # scrolled away; the next viewport fetch picks it up
            self._retries.pop(key, None)
            return
        try:
            await self.fetch_tile(key)
        except TileFetchError as e:
            logger.warning(f"Retry of tile {key} failed: {str(e)}")
            self.schedule_retry(key)
            return
        self.render()

    # ------------------------------------------------------------------
    # realtime

    def on_pixel_placed(self, data: dict) -> bool:
        """Apply a pixelPlaced delta if its tile is cached; drop it otherwise."""
        x, y, color = data.get("x"), data.get("y"), data.get("color")
        if not is_valid_coord(x, self.settings.grid_size) or not is_valid_coord(y, self.settings.grid_size):
            return False
        if not is_hex_color(color):
            logger.debug(f"Ignoring pixelPlaced with bad color: {color!r}")
            return False
        if not self.cache.upsert_pixel(x, y, color):
            return False
        self.render()
        return True

    def on_event(self, event: str, data: dict):
        if event == PIXEL_PLACED:
            self.on_pixel_placed(data)

    # ------------------------------------------------------------------
    # drawing

    def render(self) -> int:
        """Redraw the frame; returns the number of cached cells drawn."""
        vp = self.viewport
        self.surface.clear(self.settings.background)
        size = max(1, math.floor(vp.zoom))
        drawn = 0

        for key in vp.tiles_in_view(0):
            tile = self.cache.get(key)
            if tile is None:
                continue
            for cell, color in tile.pixels.items():
                sx, sy = vp.world_to_screen(*parse_pixel_key(cell))
                if sx + size < 0 or sx - size > vp.width or sy + size < 0 or sy - size > vp.height:
                    continue
                self.surface.fill_rect(round(sx), round(sy), size, size, color)
                drawn += 1

        now = self.clock()
        for cell, fill in list(self.pending.items()):
            remain = fill.until_ms - now
            if remain <= 0:
                del self.pending[cell]
                continue
            sx, sy = vp.world_to_screen(*parse_pixel_key(cell))
            x, y = round(sx), round(sy)
            self.surface.fill_rect(x, y, size, size, fill.color + PENDING_ALPHA)
            frac = (fill.total_ms - remain) / fill.total_ms if fill.total_ms > 0 else 0
            bar_h = min(PROGRESS_HEIGHT, size)
            self.surface.fill_rect(x, y + size - bar_h, max(1, math.floor(size * frac)), bar_h,
                                   PROGRESS_COLOR)
        return drawn

    def sweep_pending(self) -> int:
        """Drop expired pending overlays and reschedule the sweep."""
        now = self.clock()
        expired = [cell for cell, fill in self.pending.items() if fill.until_ms <= now]
        for cell in expired:
            del self.pending[cell]
        if expired:
            self.render()
        if self._sweeping:
            self.scheduler.schedule(SWEEP_TASK, self.sweep_pending, self.settings.pending_sweep_ms)
        return len(expired)

    # ------------------------------------------------------------------
    # interaction

    def set_color(self, color: str):
        if not is_hex_color(color):
            raise ValueError("Invalid color format")
        self.current_color = color

    def pan(self, dx: float, dy: float):
        self.viewport.pan(dx, dy)
        self.schedule_fetch_visible()
        self.render()

    def zoom_at(self, sx: float, sy: float, factor: float):
        self.viewport.zoom_at(sx, sy, factor)
        self.schedule_fetch_visible()
        self.render()

    def resize(self, width: float, height: float):
        self.viewport.resize(width, height)
        self.schedule_fetch_visible()
        self.render()

    async def place_at_screen(self, sx: float, sy: float) -> PlaceOutcome:
        wx, wy = self.viewport.screen_to_world(sx, sy)
        grid_size = self.settings.grid_size
        if not is_valid_coord(wx, grid_size) or not is_valid_coord(wy, grid_size):
            return PlaceOutcome(False, error="Outside the board")
        return await self.place_pixel_at(wx, wy, self.current_color)

    async def place_pixel_at(self, wx: int, wy: int, color: str) -> PlaceOutcome:
        """
        Optimistically mark the cell pending, then ask the server to place it.

        On failure the overlay is removed and the reason reported through
        ``notify``. On success the overlay lasts until the server cooldown
        ends, when the cell's tile is re-fetched to confirm it.
        """
        if not is_valid_coord(wx, self.settings.grid_size) or not is_valid_coord(wy, self.settings.grid_size):
            raise ValueError("Invalid world coords")
        if not is_hex_color(color):
            raise ValueError("Invalid color format")

        cell = pixel_key(wx, wy)
        now = self.clock()
        fill_ms = self.settings.default_cooldown_ms
        self.pending[cell] = PendingFill(color, now + fill_ms, fill_ms)
        self.render()

        try:
            outcome = await self.source.place(wx, wy, color)
        except Exception as e:
            logger.error(f"placePixel error: {str(e)}")
            outcome = PlaceOutcome(False, error=str(e) or "place-failed")

        if not outcome.success:
            self.pending.pop(cell, None)
            self.render()
            if self.notify is not None:
                self.notify(outcome.error or "place-failed")
            return outcome

        if outcome.cooldown_until:
            fill_ms = outcome.cooldown_until - now
        self.pending[cell] = PendingFill(color, now + fill_ms, fill_ms)

        tile_key = tile_key_for(wx, wy, self.settings.tile_size)
        self.scheduler.schedule(
            f"confirm:{tile_key}",
            lambda: self._confirm_tile(tile_key),
            max(self.settings.min_confirm_delay_ms, fill_ms),
        )
        self.render()
        return outcome

    async def _confirm_tile(self, key: str):
        try:
            await self.fetch_tile(key)
        except TileFetchError as e:
            logger.warning(f"Confirming tile {key} failed: {str(e)}")
            self.schedule_retry(key)
            return
        self.render()
