"""
Where the canvas client gets pixels from and sends placements to.

``HttpPixelSource`` talks to the PixelCanvas API with aiohttp: box reads,
authenticated placements and the ``/ws`` event feed.
"""
import logging
from typing import Awaitable, Callable, List, NamedTuple, Optional, Protocol

import aiohttp

from pixelcanvas.grid import MAX_BOX_CELLS, Box

logger = logging.getLogger(__name__)


class PlaceOutcome(NamedTuple):
    success: bool
    cooldown_until: Optional[int] = None
    error: Optional[str] = None
    wait_ms: Optional[int] = None
    status: Optional[int] = None


class PixelSource(Protocol):
    async def fetch_box(self, box: Box, limit: int) -> List[dict]:
        ...

    async def place(self, x: int, y: int, color: str) -> PlaceOutcome:
        ...


def split_box(box: Box, max_cells: int = MAX_BOX_CELLS) -> List[Box]:
    """
    Split an inclusive box into sub-boxes of at most max_cells cells.

    Boxes under the cap come back unchanged. Larger ones are cut into
    full-height vertical strips; a box taller than the cap is additionally
    cut into column segments.
    """
    if box.width <= 0 or box.height <= 0:
        return []
    if box.area <= max_cells:
        return [box]

    strip_w = max(1, min(box.width, max_cells // box.height))
    strip_h = min(box.height, max_cells // strip_w)
    parts = []
    for left in range(box.left, box.right + 1, strip_w):
        right = min(box.right, left + strip_w - 1)
        for top in range(box.top, box.bottom + 1, strip_h):
            parts.append(Box(left, top, right, min(box.bottom, top + strip_h - 1)))
    return parts


class HttpPixelSource:
    """
    aiohttp-backed pixel source.

    ``token_provider`` is an async callable returning the caller's current
    ID token; without one, placements are rejected locally.
    """

    def __init__(self, base_url: str, session: aiohttp.ClientSession,
                 token_provider: Optional[Callable[[], Awaitable[str]]] = None):
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.token_provider = token_provider

    async def fetch_box(self, box: Box, limit: int = MAX_BOX_CELLS) -> List[dict]:
        url = f"{self.base_url}/api/pixels/box"
        params = {
            "left": box.left, "top": box.top,
            "right": box.right, "bottom": box.bottom,
            "limit": limit,
        }
        async with self.session.get(url, params=params) as response:
            response.raise_for_status()
            return await response.json()

    async def place(self, x: int, y: int, color: str) -> PlaceOutcome:
        if self.token_provider is None:
            return PlaceOutcome(False, error="Sign in required to paint")
        try:
            token = await self.token_provider()
        except Exception as e:
            logger.error(f"Failed to get ID token: {str(e)}")
            return PlaceOutcome(False, error="token-failed")

        url = f"{self.base_url}/api/pixels/place"
        headers = {"Authorization": f"Bearer {token}"}
        try:
            async with self.session.post(url, json={"x": x, "y": y, "color": color},
                                         headers=headers) as response:
                data = await response.json(content_type=None)
                status = response.status
        except (aiohttp.ClientError, ValueError) as e:
            logger.warning(f"Placement request failed: {str(e)}")
            return PlaceOutcome(False, error=str(e) or "place-failed")

        data = data if isinstance(data, dict) else {}
        if status == 200 and data.get("success"):
            return PlaceOutcome(True, cooldown_until=data.get("cooldownUntil"), status=status)
        return PlaceOutcome(
            False,
            error=data.get("error") or "place-failed",
            wait_ms=data.get("waitMs"),
            status=status,
        )

    async def listen(self, on_event: Callable[[str, dict], None], path: str = "/ws"):
        """Feed every server event to on_event until the socket closes."""
        url = self.base_url.replace("http", "ws", 1) + path
        async with self.session.ws_connect(url, heartbeat=30) as ws:
            logger.info(f"Subscribed to {url}")
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    if msg.data == "pong":
                        continue
                    try:
                        payload = msg.json()
                    except ValueError:
                        payload = None
                    if not isinstance(payload, dict):
                        logger.warning(f"Ignoring malformed event: {msg.data[:100]}")
                        continue
                    on_event(payload.get("event"), payload.get("data") or {})
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"Event feed error: {ws.exception()}")
                    break
        logger.info("Event feed closed")
