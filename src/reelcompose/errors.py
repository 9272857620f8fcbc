"""Error taxonomy for the reel pipeline.

Errors with a documented fallback (live capture failures, transcode
failures, engine load failures when recapture is possible) are handled
inside the pipeline. Only ReelGenerationError and the input errors
(ManifestError, AssetLoadError from the public API) reach callers.
"""


class ReelError(Exception):
    """Base exception for all reelcompose errors."""

    code: str = "REEL_ERROR"
    message: str = "Reel generation failed"
    retryable: bool = False

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        super().__init__(self.message)


class AssetLoadError(ReelError):
    """An image could not be fetched or decoded."""

    code = "ASSET_LOAD_FAILED"
    message = "Could not load image asset"
    retryable = True

    def __init__(self, source_id: str, reason: str | None = None):
        self.source_id = source_id
        detail = f"Could not load asset '{source_id}'"
        if reason:
            detail += f": {reason}"
        super().__init__(detail)


class EngineLoadError(ReelError):
    """Every engine location (primary and mirrors) failed to load."""

    code = "ENGINE_LOAD_FAILED"
    message = "Could not load the video engine"
    retryable = True


class EngineExecError(ReelError):
    """An engine command failed or the engine is not loaded."""

    code = "ENGINE_EXEC_FAILED"
    message = "Video engine command failed"

    def __init__(self, message: str | None = None, *, returncode: int | None = None,
                 stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class EngineIOError(ReelError):
    """A staged file operation failed or the engine is not loaded."""

    code = "ENGINE_IO_FAILED"
    message = "Video engine file operation failed"


class StageTimeoutError(ReelError, TimeoutError):
    """A time-bounded stage exceeded its budget."""

    code = "STAGE_TIMEOUT"
    message = "Stage timed out"
    retryable = True

    def __init__(self, stage: str, seconds: float):
        self.stage = stage
        self.seconds = seconds
        super().__init__(f"Stage '{stage}' exceeded {seconds:.1f}s")


class UnsupportedPlatformError(ReelError):
    """The runtime cannot record a live surface."""

    code = "LIVE_CAPTURE_UNSUPPORTED"
    message = "Live capture is not supported on this platform"


class EmptyOutputError(ReelError):
    """An encoder produced an implausibly small artifact."""

    code = "EMPTY_OUTPUT"
    message = "Generated video is empty"

    def __init__(self, size: int, minimum: int):
        self.size = size
        self.minimum = minimum
        super().__init__(
            f"Generated artifact is {size} bytes (minimum plausible size {minimum})"
        )


class StallError(ReelError):
    """Playback made no forward progress for the watchdog window."""

    code = "PLAYBACK_STALLED"
    message = "Clip playback stalled"
    retryable = True

    def __init__(self, position: float, window: float, clip_index: int | None = None):
        self.position = position
        self.window = window
        self.clip_index = clip_index
        where = f"clip {clip_index}" if clip_index is not None else "playback"
        super().__init__(
            f"{where} stalled at {position:.2f}s for more than {window:.1f}s"
        )


class TranscodeError(ReelError):
    """The live capture artifact could not be transcoded."""

    code = "TRANSCODE_FAILED"
    message = "Could not transcode captured video"


class ManifestError(ReelError, ValueError):
    """A manifest or option set is invalid."""

    code = "INVALID_MANIFEST"
    message = "Invalid manifest"


class ReelGenerationError(ReelError):
    """Every strategy was exhausted. Terminal, surfaced to the caller."""

    code = "REEL_GENERATION_FAILED"
    message = "Could not generate the video"

    def __init__(self, message: str | None = None,
                 failures: list[tuple[str, Exception]] | None = None):
        self.failures = list(failures or [])
        if message is None and self.failures:
            parts = [f"{name}: {err}" for name, err in self.failures]
            message = "All strategies failed (" + "; ".join(parts) + ")"
        super().__init__(message)
