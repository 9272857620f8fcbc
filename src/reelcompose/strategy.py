"""Strategy selection and the fallback coordinator.

plan_strategies() turns platform capability, session history and an
optional forced choice into an ordered list of strategies.
encode_with_fallback() walks that list once: the first strategy to
return an artifact wins, each failure is recorded and the next strategy
is tried, and only an exhausted list reaches the caller as
ReelGenerationError.

Live capture counts as failed when it raises, exceeds its time budget
(the reel's duration times live_capture_factor), produces an artifact
below min_artifact_bytes, or its transcode fails.
"""

import logging

from .capture import FrameSequenceExport, LiveCapture, Platform, TranscodeStage
from .config import Settings
from .errors import ReelError, ReelGenerationError
from .models import Artifact, EncodingJob, Strategy
from .progress import ProgressTracker, with_timeout

logger = logging.getLogger(__name__)

ENCODE_WEIGHT = 95


class StrategyHistory:
    """Live capture failures seen in this session.

    Once live capture has failed, later jobs go straight to
    frame-sequence export.
    """

    def __init__(self):
        self.failures: list[tuple[Strategy, str]] = []

    def record_failure(self, strategy: Strategy, error: Exception) -> None:
        self.failures.append((strategy, f"{type(error).__name__}: {error}"))

    @property
    def live_failed(self) -> bool:
        return any(s is Strategy.LIVE_CAPTURE for s, _ in self.failures)

    def reset(self) -> None:
        self.failures.clear()


def plan_strategies(
    platform: Platform,
    history: StrategyHistory,
    forced: Strategy | None = None,
) -> list[Strategy]:
    """Ordered strategies to attempt for one job.

    Live capture is never planned on a platform without live capture,
    even when forced.
    """
    if forced is Strategy.FRAME_SEQUENCE:
        return [Strategy.FRAME_SEQUENCE]
    if not platform.live_capture:
        if forced is Strategy.LIVE_CAPTURE:
            logger.warning("Live capture requested but unavailable (%s)", platform.reason)
        return [Strategy.FRAME_SEQUENCE]
    if forced is None and history.live_failed:
        return [Strategy.FRAME_SEQUENCE]
    return [Strategy.LIVE_CAPTURE, Strategy.FRAME_SEQUENCE]


def encode_weights(plan: list[Strategy]) -> dict[str, float]:
    """Progress weights: one stage per planned strategy, then finalize.

    A fallback gets its own slice, so its progress shows after the
    failed attempt's peak.
    """
    share = ENCODE_WEIGHT // len(plan)
    weights = {s.value: share for s in plan}
    weights[plan[-1].value] += ENCODE_WEIGHT - share * len(plan)
    weights["finalize"] = 100 - ENCODE_WEIGHT
    return weights


async def encode_with_fallback(
    job: EncodingJob,
    *,
    platform: Platform,
    history: StrategyHistory,
    settings: Settings,
    live: LiveCapture,
    export: FrameSequenceExport,
    transcoder: TranscodeStage,
) -> Artifact:
    """Encode a scene job with the first strategy that succeeds.

    Raises:
        ReelGenerationError: Every planned strategy failed. Carries the
            (strategy, error) pair of each attempt.
    """
    plan = plan_strategies(platform, history, job.strategy)
    logger.info("Encoding plan: %s", " -> ".join(s.value for s in plan))
    job.start()

    tracker = ProgressTracker(job.progress, encode_weights(plan))

    def reporter(strategy: Strategy):
        stage = tracker.stage(strategy.value)

        def report(percent: float, label: str) -> None:
            stage.update(percent / 100, label)

        return report

    failures: list[tuple[str, Exception]] = []
    for strategy in plan:
        report = reporter(strategy)
        try:
            if strategy is Strategy.LIVE_CAPTURE:
                budget = job.total_duration * settings.live_capture_factor
                artifact = await with_timeout(live.encode(job, report), budget, "live capture")
                artifact = await transcoder.run(artifact, job, report)
            else:
                artifact = await with_timeout(export.encode(job, report), job.timeout,
                                              "frame export")
        except Exception as e:
            if isinstance(e, ReelError):
                logger.warning("Strategy %s failed: %s", strategy.value, e)
            else:
                logger.warning("Strategy %s failed unexpectedly", strategy.value, exc_info=True)
            failures.append((strategy.value, e))
            if strategy is Strategy.LIVE_CAPTURE:
                history.record_failure(strategy, e)
            continue

        tracker.finish("Video ready")
        logger.info("Encoded %d bytes with %s", artifact.size, strategy.value)
        return job.succeed(artifact)

    error = ReelGenerationError(failures=failures)
    job.fail(error)
    raise error
