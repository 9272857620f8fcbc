"""Shared test fixtures for reelcompose tests."""

import asyncio
import subprocess
import threading

import imageio_ffmpeg
import numpy as np
import pytest
from PIL import Image

from reelcompose.assets import AssetCache
from reelcompose.engine import EngineSession, reset_engine_session

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()

SMALL = (108, 192)


@pytest.fixture
def make_video(tmp_path):
    """Factory creating short H.264 test clips with ffmpeg's lavfi source."""
    def _make(name="clip.mp4", size=(160, 90), duration=1.0, fps=10, color="blue"):
        out = tmp_path / name
        subprocess.run(
            [
                _FFMPEG, "-y",
                "-f", "lavfi", "-i", f"color=c={color}:s={size[0]}x{size[1]}:d={duration}:r={fps}",
                "-c:v", "libx264", "-crf", "28", "-pix_fmt", "yuv420p",
                str(out),
            ],
            check=True,
            capture_output=True,
        )
        return out
    return _make


@pytest.fixture
def photo_path(tmp_path):
    """A 200x100 landscape photo: left half red, right half green."""
    img = Image.new("RGB", (200, 100), (200, 30, 30))
    img.paste((30, 200, 30), (100, 0, 200, 100))
    path = tmp_path / "photo.png"
    img.save(path)
    return path


@pytest.fixture
def logo_path(tmp_path):
    img = Image.new("RGBA", (64, 64), (250, 200, 0, 255))
    path = tmp_path / "logo.png"
    img.save(path)
    return path


@pytest.fixture
def mark_path(tmp_path):
    img = Image.new("RGBA", (120, 40), (255, 255, 255, 255))
    path = tmp_path / "mark.png"
    img.save(path)
    return path


@pytest.fixture
def loaded_cache():
    """Factory returning an AssetCache with the given sources preloaded."""
    def _load(*sources):
        cache = AssetCache()
        failures = asyncio.run(cache.preload([str(s) for s in sources]))
        assert not failures
        return cache
    return _load


@pytest.fixture
def engine_session():
    """A session on the bundled imageio-ffmpeg binary, torn down after."""
    session = EngineSession(["bundled"])
    yield session
    session.close()


@pytest.fixture(autouse=True)
def _fresh_engine_singleton():
    yield
    reset_engine_session()


# ── Fakes ─────────────────────────────────────────────────────────


class FakeRecorder:
    """Stands in for SurfaceRecorder; finish() returns payload_size bytes."""

    payload_size = 20_000

    def __init__(self, path, size, fps):
        self.path = path
        self.size = size
        self.fps = fps
        self.frames = []
        self.started = False
        self.finished = False
        self.aborted = False

    def start(self):
        self.started = True

    def write(self, frame):
        self.frames.append(frame)

    def finish(self):
        self.finished = True
        return b"\x1a" * self.payload_size

    def abort(self):
        self.aborted = True


@pytest.fixture
def fake_recorder():
    """FakeRecorder class with a fresh instance list (set payload_size per test)."""
    class Recorder(FakeRecorder):
        payload_size = 20_000
        instances = []

        def __init__(self, path, size, fps):
            super().__init__(path, size, fps)
            Recorder.instances.append(self)

    return Recorder


def fake_resolver(available):
    """Resolver finding only the named locations."""
    def _resolve(location):
        return f"/fake/{location}" if location in available else None
    return _resolve


def fake_verifier(calls=None, delay=0.0):
    async def _verify(executable):
        if calls is not None:
            calls.append(executable)
        if delay:
            await asyncio.sleep(delay)
        return f"ffmpeg version fake ({executable})"
    return _verify


def solid_frames(count, size=(80, 60), fps=10, color=(0, 0, 255)):
    """Opener yielding count solid frames with advancing timestamps."""
    def _open(clip, target_fps):
        frame = np.zeros((size[1], size[0], 3), dtype=np.uint8)
        frame[:, :] = color
        frames = ((i / fps, frame) for i in range(count))
        return frames, lambda: None
    return _open


def stalling_frames(good=2, fps=10):
    """Opener whose decoder hangs after `good` frames until closed."""
    released = threading.Event()

    def _open(clip, target_fps):
        frame = np.zeros((60, 80, 3), dtype=np.uint8)

        def frames():
            for i in range(good):
                yield i / fps, frame
            released.wait(timeout=5)

        return frames(), released.set
    return _open
