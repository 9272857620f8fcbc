"""Pull-based frame sources for scenes and clips.

Encoders never register draw callbacks. They ask a source for the next
frame until it returns None:

    scheduler = SceneFrameScheduler(scenes, cache, (1080, 1920), fps=24)
    while (frame := scheduler.next_frame()) is not None:
        recorder.write(frame)

SceneFrameScheduler maps frame i to the scene covering i / fps. Scene
boundaries are rounded on the cumulative timeline, so the total frame
count is round(sum(durations) * fps) and never drifts per scene.

ClipFrameSource decodes a video with moviepy on a worker thread,
letterboxes each frame into the target size and blends the clip's
overlay. A PlaybackWatchdog bounds every decode call and aborts the
clip with StallError once playback stops advancing.
"""

import asyncio
import logging
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

import numpy as np
from PIL import Image

from .assets import AssetCache
from .common import letterbox_geometry, load_clip
from .compositor import LOGO_FADE_SECONDS, render
from .errors import StallError
from .models import Clip, SceneDescriptor
from .overlays import apply_overlay_to_frame

logger = logging.getLogger(__name__)


# ── Scene timeline ───────────────────────────────────────────────


@dataclass(frozen=True)
class SceneSpan:
    """Frames [start, start + count) of the timeline belong to one scene."""

    index: int
    scene: SceneDescriptor
    start: int
    count: int

    @property
    def end(self) -> int:
        return self.start + self.count


def frame_plan(scenes: list[SceneDescriptor], fps: int) -> list[SceneSpan]:
    """Split the timeline into per-scene frame spans."""
    spans = []
    elapsed_ms = 0
    start = 0
    for i, scene in enumerate(scenes):
        elapsed_ms += scene.duration_ms
        end = round(elapsed_ms * fps / 1000)
        spans.append(SceneSpan(i, scene, start, max(0, end - start)))
        start = end
    return spans


def has_entrance(scene: SceneDescriptor) -> bool:
    """True if the scene's first frames differ from its settled frame."""
    return (
        scene.logo is not None
        and scene.layers.show_ally_logo
        and scene.logo.animation == "fade-in"
    )


class SceneFrameScheduler:
    """Yields the frames of a scene sequence one at a time.

    Frames after the logo entrance are identical for the rest of a scene,
    so each scene's settled frame is rendered once and reused.
    """

    def __init__(
        self,
        scenes: list[SceneDescriptor],
        cache: AssetCache,
        size: tuple[int, int],
        fps: int,
    ):
        if fps <= 0:
            raise ValueError(f"fps must be > 0, got {fps}")
        self.scenes = list(scenes)
        self.cache = cache
        self.size = size
        self.fps = fps
        self.spans = frame_plan(self.scenes, fps)
        self.total_frames = self.spans[-1].end if self.spans else 0
        self.position = 0
        self._span_index = 0
        self._settled: dict[int, np.ndarray] = {}

    def __iter__(self) -> Iterator[np.ndarray]:
        while (frame := self.next_frame()) is not None:
            yield frame

    @property
    def duration(self) -> float:
        return self.total_frames / self.fps

    def span_at(self, frame_index: int) -> SceneSpan:
        while self.spans[self._span_index].end <= frame_index:
            self._span_index += 1
        return self.spans[self._span_index]

    def render_frame(self, span: SceneSpan, elapsed: float | None) -> np.ndarray:
        """Render a frame of one scene; elapsed None means settled."""
        if elapsed is not None and elapsed >= LOGO_FADE_SECONDS:
            elapsed = None
        if elapsed is None:
            frame = self._settled.get(span.index)
            if frame is None:
                frame = render(span.scene, self.cache, self.size)
                self._settled[span.index] = frame
            return frame
        return render(span.scene, self.cache, self.size, elapsed=elapsed)

    def next_frame(self) -> np.ndarray | None:
        """Next frame of the timeline, or None once every scene is done."""
        if self.position >= self.total_frames:
            return None
        span = self.span_at(self.position)
        elapsed = None
        if has_entrance(span.scene):
            elapsed = (self.position - span.start) / self.fps
        frame = self.render_frame(span, elapsed)
        self.position += 1
        return frame

    def reset(self) -> None:
        self.position = 0
        self._span_index = 0


# ── Stall watchdog ───────────────────────────────────────────────


class PlaybackWatchdog:
    """Detects playback that stops advancing.

    observe() records each playback position. check() raises StallError
    when the position has not moved forward for longer than window
    seconds.

    Args:
        window: Seconds without forward progress before playback counts
            as stalled.
        clip_index: Reported in the StallError.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(self, window: float, clip_index: int | None = None,
                 clock: Callable[[], float] = time.monotonic):
        if window <= 0:
            raise ValueError(f"Stall window must be > 0, got {window}")
        self.window = window
        self.clip_index = clip_index
        self._clock = clock
        self.position: float | None = None
        self._last_progress = clock()

    def observe(self, position: float) -> None:
        if self.position is None or position > self.position:
            self.position = position
            self._last_progress = self._clock()

    def stalled_for(self) -> float:
        return self._clock() - self._last_progress

    def check(self) -> None:
        if self.stalled_for() > self.window:
            raise self.error()

    def error(self) -> StallError:
        return StallError(self.position or 0.0, self.window, self.clip_index)


# ── Clip decoding ────────────────────────────────────────────────

# opener(clip, fps) -> (iterator of (t, frame), close)
FrameOpener = Callable[[Clip, int], tuple[Iterator[tuple[float, np.ndarray]], Callable[[], None]]]


def open_with_moviepy(clip: Clip, fps: int):
    """Decode a clip with moviepy, resampled to fps, without audio."""
    tmp = None
    if isinstance(clip.source, bytes):
        tmp = tempfile.TemporaryDirectory(prefix="reelcompose-clip-")
        path = Path(tmp.name) / "clip.mp4"
        path.write_bytes(clip.source)
    else:
        path = Path(clip.source)
    video = load_clip(path, fps)
    frames = video.iter_frames(fps=fps, with_times=True, dtype="uint8")

    def close():
        video.close()
        if tmp is not None:
            tmp.cleanup()

    return frames, close


def letterbox_frame(frame: np.ndarray, size: tuple[int, int],
                    pad_color: tuple[int, int, int] = (0, 0, 0)) -> np.ndarray:
    """Scale a frame to fit inside size and pad the rest with pad_color."""
    dst_w, dst_h = size
    src_h, src_w = frame.shape[:2]
    if (src_w, src_h) == (dst_w, dst_h):
        return frame
    w, h, x, y = letterbox_geometry(src_w, src_h, dst_w, dst_h)
    scaled = Image.fromarray(frame[:, :, :3]).resize((w, h), Image.Resampling.BILINEAR)
    out = np.empty((dst_h, dst_w, 3), dtype=np.uint8)
    out[:, :] = pad_color
    out[y:y + h, x:x + w] = np.asarray(scaled)
    return out


class ClipFrameSource:
    """Yields letterboxed, overlaid frames of one clip under a watchdog.

    Args:
        clip: The clip to decode.
        size: Target (width, height).
        fps: Canonical frame rate; the clip is resampled to it.
        overlay: RGBA patch from render_clip_overlay, or None.
        watchdog: Bounds each decode call; None disables stall detection.
        pad_color: Letterbox color.
        opener: Decoder factory (defaults to moviepy).
    """

    def __init__(
        self,
        clip: Clip,
        size: tuple[int, int],
        fps: int,
        overlay: np.ndarray | None = None,
        *,
        watchdog: PlaybackWatchdog | None = None,
        pad_color: tuple[int, int, int] = (0, 0, 0),
        opener: FrameOpener = open_with_moviepy,
    ):
        self.clip = clip
        self.size = size
        self.fps = fps
        self.overlay = overlay
        self.watchdog = watchdog
        self.pad_color = pad_color
        self._opener = opener
        self._frames = None
        self._close = None
        self.frames_read = 0

    async def open(self) -> None:
        self._frames, self._close = await asyncio.to_thread(self._opener, self.clip, self.fps)

    def _advance(self):
        return next(self._frames, None)

    async def next_frame(self) -> np.ndarray | None:
        """Decode, letterbox and overlay the next frame; None at the end.

        Raises:
            StallError: The decoder produced nothing within the watchdog
                window, or the playback position stopped advancing.
        """
        if self._frames is None:
            await self.open()
        if self.watchdog is None:
            item = await asyncio.to_thread(self._advance)
        else:
            try:
                item = await asyncio.wait_for(
                    asyncio.to_thread(self._advance), timeout=self.watchdog.window,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Clip %s: decoder stalled for %.1fs",
                    self.watchdog.clip_index, self.watchdog.window,
                )
                raise self.watchdog.error() from None
        if item is None:
            return None
        t, frame = item
        if self.watchdog is not None:
            self.watchdog.observe(float(t))
            self.watchdog.check()
        self.frames_read += 1
        frame = letterbox_frame(frame, self.size, self.pad_color)
        return apply_overlay_to_frame(frame, self.overlay)

    async def close(self) -> None:
        if self._close is None:
            return
        close, self._close = self._close, None
        self._frames = None
        await asyncio.to_thread(close)

    async def __aenter__(self) -> "ClipFrameSource":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
