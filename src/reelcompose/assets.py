"""Asset cache that decodes each image once per session.

Photos, ally logos and the footer mark are fetched (http/https URLs via
httpx, anything else read from disk), decoded with Pillow into RGBA, and
memoized by source id. Concurrent requests for the same id share one
in-flight load. A failed load leaves no entry behind, so the next
request retries from scratch. Nothing is evicted implicitly; reset()
clears the cache between independent sessions.

The compositor only reads through get(), so a render never triggers I/O.
"""

import asyncio
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Iterable

import httpx
from PIL import Image, UnidentifiedImageError

from .errors import AssetLoadError

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 30.0

Fetcher = Callable[[str], Awaitable[bytes]]


@dataclass(frozen=True)
class AssetHandle:
    """A decoded image shared read-only by every render."""

    source_id: str
    image: Image.Image

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def aspect(self) -> float:
        return self.image.width / self.image.height


def is_remote(source_id: str) -> bool:
    return source_id.startswith(("http://", "https://"))


def decode_image(data: bytes, source_id: str) -> Image.Image:
    """Decode raw bytes into a fully loaded RGBA image."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return img.convert("RGBA")
    except (UnidentifiedImageError, OSError) as e:
        raise AssetLoadError(source_id, f"undecodable image ({e})") from e


class AssetCache:
    """Memoizing, load-coalescing image cache keyed by source id.

    Args:
        client: Optional httpx.AsyncClient used for remote sources. When
            None a short-lived client is created per fetch.
        fetch: Optional override of the byte fetcher (source_id -> bytes).
    """

    def __init__(self, client: httpx.AsyncClient | None = None,
                 fetch: Fetcher | None = None):
        self._client = client
        self._fetch = fetch or self._fetch_bytes
        self._handles: dict[str, AssetHandle] = {}
        self._pending: dict[str, asyncio.Task] = {}
        # Bumped by reset() so loads started before it never repopulate.
        self._generation = 0

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def get(self, source_id: str) -> AssetHandle | None:
        """Return the handle if already loaded, without triggering I/O."""
        return self._handles.get(source_id)

    async def get_or_load(self, source_id: str) -> AssetHandle:
        """Return the decoded asset, loading it at most once at a time.

        Raises:
            AssetLoadError: Fetch or decode failed. The cache is left
                without an entry for source_id, so a retry is permitted.
        """
        handle = self._handles.get(source_id)
        if handle is not None:
            return handle

        task = self._pending.get(source_id)
        if task is None:
            task = asyncio.ensure_future(self._load(source_id, self._generation))
            self._pending[source_id] = task
        # Shield so one cancelled waiter does not abort the shared load.
        return await asyncio.shield(task)

    async def preload(self, source_ids: Iterable[str]) -> dict[str, AssetLoadError]:
        """Load many assets concurrently, tolerating individual failures.

        Returns:
            Mapping of source id to the error for every source that failed.
        """
        ids = list(dict.fromkeys(s for s in source_ids if s))
        results = await asyncio.gather(
            *(self.get_or_load(s) for s in ids), return_exceptions=True,
        )
        failures = {}
        for source_id, result in zip(ids, results):
            if isinstance(result, AssetLoadError):
                failures[source_id] = result
            elif isinstance(result, BaseException):
                raise result
        if failures:
            logger.warning("Preload: %d of %d assets failed", len(failures), len(ids))
        return failures

    def reset(self) -> None:
        """Drop every cached handle. In-flight loads finish but are discarded."""
        self._generation += 1
        self._handles.clear()
        self._pending.clear()

    async def _load(self, source_id: str, generation: int) -> AssetHandle:
        try:
            data = await self._fetch(source_id)
            image = await asyncio.to_thread(decode_image, data, source_id)
        except (OSError, httpx.HTTPError) as e:
            raise AssetLoadError(source_id, str(e)) from e
        finally:
            if generation == self._generation:
                self._pending.pop(source_id, None)

        handle = AssetHandle(source_id, image)
        if generation == self._generation:
            self._handles[source_id] = handle
        logger.debug("Loaded asset %s (%dx%d)", source_id, handle.width, handle.height)
        return handle

    async def _fetch_bytes(self, source_id: str) -> bytes:
        if is_remote(source_id):
            return await self._fetch_remote(source_id)
        try:
            return await asyncio.to_thread(Path(source_id).read_bytes)
        except OSError as e:
            raise AssetLoadError(source_id, str(e)) from e

    async def _fetch_remote(self, url: str) -> bytes:
        try:
            if self._client is not None:
                response = await self._client.get(url)
            else:
                async with httpx.AsyncClient(
                    timeout=FETCH_TIMEOUT, follow_redirects=True,
                ) as client:
                    response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise AssetLoadError(url, str(e)) from e
        return response.content
