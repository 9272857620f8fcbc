"""Codec engine session: lifecycle of the ffmpeg engine.

The engine is an ffmpeg executable located at runtime. Locations are
tried in order: the primary location first, then each mirror. A
location is a path, a program name looked up on PATH, or "bundled"
for the binary shipped with imageio-ffmpeg. A location counts as
loaded once `ffmpeg -version` succeeds.

Commands run against a private staging directory (the session's
virtual filesystem). Files are written into it, referenced by bare
name in engine arguments, read back, and deleted within one job.
The staging namespace is shared process-wide, so jobs must hold
acquire() while they use it; StagingArea deletes whatever a job staged
in a finally block, whatever the command outcome.

State machine:
    unloaded --load()--> loading --ok--> loaded
                           |
                           +--all locations failed--> unloaded (retryable)
    loaded --engine binary vanished during exec--> failed --load()--> loading
"""

import asyncio
import contextlib
import enum
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Awaitable, Callable

import imageio_ffmpeg

from .config import BUNDLED_ENGINE, Settings
from .errors import EngineExecError, EngineIOError, EngineLoadError

logger = logging.getLogger(__name__)

# Keep the tail of stderr in errors, enough for the failing filter line.
STDERR_TAIL_CHARS = 2000

Verifier = Callable[[str], Awaitable[str]]
Resolver = Callable[[str], str | None]
EngineProgress = Callable[[float], None]


class EngineState(enum.Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


# ── Location resolution ──────────────────────────────────────────


def resolve_location(location: str) -> str | None:
    """Turn a configured engine location into an executable path.

    Returns None when the location does not point at anything runnable.
    """
    if location == BUNDLED_ENGINE:
        try:
            return imageio_ffmpeg.get_ffmpeg_exe()
        except RuntimeError:
            return None
    path = Path(location).expanduser()
    if path.is_absolute() or os.sep in location:
        return str(path) if path.is_file() and os.access(path, os.X_OK) else None
    return shutil.which(location)


async def verify_executable(executable: str) -> str:
    """Run `<executable> -version` and return its banner line.

    Raises:
        EngineLoadError: Not runnable or non-zero exit.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            executable, "-hide_banner", "-version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise EngineLoadError(f"Cannot start {executable}: {e}") from e
    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise EngineLoadError(
            f"{executable} -version exited with {proc.returncode}: "
            f"{stderr.decode(errors='replace')[-200:]}"
        )
    banner = stdout.decode(errors="replace").splitlines()
    return banner[0] if banner else executable


# ── Progress parsing ─────────────────────────────────────────────


def parse_progress_line(line: str) -> tuple[str, str] | None:
    """Split one `-progress` output line ('key=value') into its parts."""
    line = line.strip()
    if "=" not in line:
        return None
    key, _, value = line.partition("=")
    return key, value


def progress_seconds(key: str, value: str) -> float | None:
    """Extract the encoded position in seconds from a progress pair.

    ffmpeg reports out_time_ms in microseconds as well (historical quirk).
    """
    if key in ("out_time_us", "out_time_ms"):
        try:
            return max(0.0, int(value) / 1_000_000)
        except ValueError:
            return None
    return None


# ── Session ──────────────────────────────────────────────────────


class StagingArea:
    """Files one job staged in the engine, deleted together on exit.

    Obtained from EngineSession.staging(). Every name passed to write()
    or track() is deleted when the context exits, success or failure.
    """

    def __init__(self, session: "EngineSession"):
        self.session = session
        self.names: list[str] = []

    def track(self, name: str) -> str:
        """Register a file the engine will create (command output)."""
        if name not in self.names:
            self.names.append(name)
        return name

    async def write(self, name: str, data: bytes) -> str:
        self.track(name)
        await self.session.write(name, data)
        return name

    async def read(self, name: str) -> bytes:
        return await self.session.read(name)

    async def cleanup(self) -> None:
        for name in reversed(self.names):
            self.session._discard(name)
        self.names.clear()


class EngineSession:
    """Process-wide ffmpeg engine with coalesced loading and staged files.

    Args:
        locations: Ordered engine locations (primary first, then mirrors).
        load_attempts: Sweeps over the whole location list before giving up.
        retry_delay: Seconds to wait between sweeps.
        load_timeout: Budget for verifying one location (None = no limit).
        resolver: location -> executable path or None.
        verifier: async executable -> banner; raises EngineLoadError.
    """

    def __init__(
        self,
        locations: list[str],
        *,
        load_attempts: int = 1,
        retry_delay: float = 2.0,
        load_timeout: float | None = None,
        resolver: Resolver = resolve_location,
        verifier: Verifier = verify_executable,
    ):
        if not locations:
            raise ValueError("EngineSession needs at least one location")
        self.locations = list(locations)
        self.load_attempts = load_attempts
        self.retry_delay = retry_delay
        self.load_timeout = load_timeout
        self._resolver = resolver
        self._verifier = verifier

        self.state = EngineState.UNLOADED
        self.executable: str | None = None
        self.version: str | None = None
        self.last_error: EngineLoadError | None = None
        self.load_sequences = 0  # completed-or-running mirror sweeps, for diagnostics

        self._load_task: asyncio.Task | None = None
        self._lock = asyncio.Lock()
        self._staging: Path | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineSession":
        return cls(
            settings.engine_locations,
            load_attempts=settings.engine_load_attempts,
            retry_delay=settings.engine_retry_delay,
            load_timeout=settings.engine_load_timeout,
        )

    @property
    def loaded(self) -> bool:
        return self.state is EngineState.LOADED

    # ── Loading ──────────────────────────────────────────────────

    async def load(self, on_progress: EngineProgress | None = None) -> None:
        """Load the engine, sharing any load already in flight.

        Raises:
            EngineLoadError: Every location failed. State returns to
                unloaded so a later call can retry.
        """
        if self.state is EngineState.LOADED:
            return
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load_sequence(on_progress))
        await asyncio.shield(self._load_task)

    async def _load_sequence(self, on_progress: EngineProgress | None) -> None:
        self.state = EngineState.LOADING
        self.load_sequences += 1
        total = len(self.locations) * self.load_attempts
        tried = 0
        errors = []
        try:
            for attempt in range(1, self.load_attempts + 1):
                for location in self.locations:
                    tried += 1
                    logger.info(
                        "Loading engine (attempt %d/%d) from %s",
                        attempt, self.load_attempts, location,
                    )
                    try:
                        await self._load_location(location)
                    except EngineLoadError as e:
                        logger.warning("Engine location %s failed: %s", location, e)
                        errors.append(f"{location}: {e}")
                        if on_progress:
                            on_progress(tried / total)
                        continue
                    if on_progress:
                        on_progress(1.0)
                    logger.info("Engine loaded from %s (%s)", location, self.version)
                    return
                if attempt < self.load_attempts:
                    await asyncio.sleep(self.retry_delay)

            self.state = EngineState.UNLOADED
            self.last_error = EngineLoadError(
                f"Could not load the video engine after {self.load_attempts} "
                f"attempt(s) from {len(self.locations)} location(s): " + "; ".join(errors)
            )
            raise self.last_error
        except BaseException:
            if self.state is EngineState.LOADING:
                self.state = EngineState.UNLOADED
            raise
        finally:
            self._load_task = None

    async def _load_location(self, location: str) -> None:
        executable = self._resolver(location)
        if executable is None:
            raise EngineLoadError("not found")
        try:
            if self.load_timeout is None:
                version = await self._verifier(executable)
            else:
                version = await asyncio.wait_for(self._verifier(executable), self.load_timeout)
        except asyncio.TimeoutError as e:
            raise EngineLoadError(f"timed out after {self.load_timeout:.0f}s") from e

        if self._staging is None or not self._staging.exists():
            self._staging = Path(tempfile.mkdtemp(prefix="reelcompose-engine-"))
        self.executable = executable
        self.version = version
        self.last_error = None
        self.state = EngineState.LOADED

    # ── Mutual exclusion ─────────────────────────────────────────

    @contextlib.asynccontextmanager
    async def acquire(self):
        """Hold the engine exclusively for one job."""
        async with self._lock:
            yield self

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @contextlib.asynccontextmanager
    async def staging(self):
        """Yield a StagingArea whose files are deleted on exit."""
        area = StagingArea(self)
        try:
            yield area
        finally:
            await area.cleanup()

    # ── Virtual filesystem ───────────────────────────────────────

    def _path(self, name: str) -> Path:
        if not name or os.sep in name or "/" in name or name in (".", ".."):
            raise EngineIOError(f"Invalid staged file name: {name!r}")
        return self._staging / name

    def _require_io(self, op: str) -> None:
        if self.state is not EngineState.LOADED:
            raise EngineIOError(f"Cannot {op}: engine is {self.state.value}")

    async def write(self, name: str, data: bytes) -> None:
        self._require_io("write")
        path = self._path(name)
        try:
            await asyncio.to_thread(path.write_bytes, data)
        except OSError as e:
            raise EngineIOError(f"Could not write {name}: {e}") from e

    async def read(self, name: str) -> bytes:
        self._require_io("read")
        path = self._path(name)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise EngineIOError(f"Could not read {name}: {e}") from e

    async def delete(self, name: str) -> None:
        self._require_io("delete")
        path = self._path(name)
        try:
            path.unlink()
        except OSError as e:
            raise EngineIOError(f"Could not delete {name}: {e}") from e

    def exists(self, name: str) -> bool:
        return self._staging is not None and self._path(name).exists()

    def listdir(self) -> list[str]:
        if self._staging is None or not self._staging.exists():
            return []
        return sorted(p.name for p in self._staging.iterdir())

    def _discard(self, name: str) -> None:
        """Best-effort delete used by cleanup; works in any state."""
        if self._staging is None:
            return
        try:
            self._path(name).unlink(missing_ok=True)
        except (OSError, EngineIOError) as e:
            logger.warning("Could not remove staged file %s: %s", name, e)

    # ── Commands ─────────────────────────────────────────────────

    async def exec(
        self,
        args: list[str],
        on_progress: EngineProgress | None = None,
        duration: float | None = None,
    ) -> None:
        """Run one ffmpeg command inside the staging directory.

        Args:
            args: ffmpeg arguments (inputs/outputs by staged name).
            on_progress: Receives 0-1 progress when duration is known.
            duration: Expected output duration, to turn positions into
                fractions.

        Raises:
            EngineExecError: Engine not loaded, or non-zero exit.

        If the awaiting task is cancelled (stage timeout) the ffmpeg
        process is killed before the cancellation propagates.
        """
        if self.state is not EngineState.LOADED:
            raise EngineExecError(f"Cannot exec: engine is {self.state.value}")

        cmd = [
            self.executable, "-hide_banner", "-nostdin", "-y",
            "-progress", "pipe:1", "-nostats", *args,
        ]
        logger.debug("Engine exec: %s", " ".join(cmd))
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(self._staging),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            self.state = EngineState.FAILED
            raise EngineExecError(f"Engine binary disappeared: {e}") from e
        except OSError as e:
            raise EngineExecError(f"Could not start engine: {e}") from e

        stderr_task = asyncio.ensure_future(proc.stderr.read())
        try:
            async for raw in proc.stdout:
                parsed = parse_progress_line(raw.decode(errors="replace"))
                if parsed is None or on_progress is None:
                    continue
                key, value = parsed
                if key == "progress" and value == "end":
                    on_progress(1.0)
                    continue
                seconds = progress_seconds(key, value)
                if seconds is not None and duration:
                    on_progress(min(1.0, seconds / duration))
            returncode = await proc.wait()
            stderr = (await stderr_task).decode(errors="replace")
        except asyncio.CancelledError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            stderr_task.cancel()
            raise

        if returncode != 0:
            raise EngineExecError(
                f"ffmpeg exited with status {returncode}: {stderr[-STDERR_TAIL_CHARS:].strip()}",
                returncode=returncode,
                stderr=stderr,
            )

    # ── Teardown ─────────────────────────────────────────────────

    def close(self) -> None:
        """Remove the staging directory and return to unloaded."""
        if self._staging is not None:
            shutil.rmtree(self._staging, ignore_errors=True)
        self._staging = None
        self.executable = None
        self.state = EngineState.UNLOADED


# ── Process-wide instance ────────────────────────────────────────

_SESSION: EngineSession | None = None


def get_engine_session(settings: Settings | None = None) -> EngineSession:
    """Return the process-wide session, creating it on first use."""
    global _SESSION
    if _SESSION is None:
        _SESSION = EngineSession.from_settings(settings or Settings())
    return _SESSION


def reset_engine_session() -> None:
    """Tear down the process-wide session (tests, settings changes)."""
    global _SESSION
    if _SESSION is not None:
        _SESSION.close()
    _SESSION = None
