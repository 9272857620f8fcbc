"""CLI for photo reels.

Reads a reel manifest, validates all media paths, builds the scene list
and encodes it with the live capture / frame export fallback chain.

Usage:
    # Render a reel
    reelcompose render --manifest reel.yaml --output reel.mp4

    # Force frame-sequence export, GIF output, custom settings
    reelcompose render --manifest reel.yaml --output reel.gif \
        --strategy frames --format gif --settings reel-settings.yaml

    # Validate only (no rendering)
    reelcompose render --manifest reel.yaml --validate
"""

import argparse
import asyncio
import logging
import sys
import time

from .api import ReelOptions, generate_reel
from .config import VALID_FORMATS, load_settings
from .errors import ReelGenerationError
from .manifest import load_reel_manifest, scenes_from_manifest, validate_paths
from .models import Strategy


class ProgressPrinter:
    """Print '[ 42%] label' lines, skipping repeats."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout
        self._last = None

    def __call__(self, percent: float, label: str) -> None:
        line = f"[{round(percent):3d}%] {label}"
        if line != self._last:
            print(line, file=self.stream, flush=True)
            self._last = line


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )


def settings_for(config: dict, settings_path: str | None, fmt: str | None):
    """Settings file values, overridden by the manifest's video section and --format."""
    settings = load_settings(settings_path)
    video = dict(config["video"])
    if fmt:
        video["format"] = fmt
    return settings.with_overrides(**video) if video else settings


def print_failures(error: ReelGenerationError) -> None:
    print(f"\nFailed: {error}", file=sys.stderr)
    for name, failure in error.failures:
        print(f"  - {name}: {type(failure).__name__}: {failure}", file=sys.stderr)


def render(manifest_path: str, output_path: str, strategy: Strategy | None = None,
           fmt: str | None = None, settings_path: str | None = None) -> str:
    """Render the manifest's reel to output_path. Returns the written path."""
    config = load_reel_manifest(manifest_path)
    validate_paths(config)
    settings = settings_for(config, settings_path, fmt)
    scenes = scenes_from_manifest(config)

    w, h = settings.resolution
    print(f"Rendering {len(scenes)} scenes ({sum(s.duration for s in scenes):.1f}s)")
    print(f"Resolution: {w}x{h}, {settings.fps}fps, {settings.format}")

    label = f"reel -> {output_path}"
    print(f"  START  {label}", flush=True)
    t0 = time.monotonic()
    artifact = asyncio.run(generate_reel(
        scenes, ReelOptions(progress=ProgressPrinter(), strategy=strategy, settings=settings),
    ))
    path = artifact.write(output_path)
    elapsed = time.monotonic() - t0
    print(f"  DONE   {label} ({artifact.strategy}, {artifact.size} bytes, {elapsed:.1f}s wall)",
          flush=True)
    if artifact.extension != settings.format:
        print(f"  Note: produced {artifact.mime_type}, not {settings.format}")
    print(f"\nDone: {path}")
    return str(path)


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Render a photo reel from a YAML manifest.",
    )
    parser.add_argument(
        "--manifest", required=True,
        help="Path to reel YAML manifest",
    )
    parser.add_argument(
        "--output",
        help="Output video path",
    )
    parser.add_argument(
        "--strategy", choices=[s.value for s in Strategy], default=None,
        help="Force a strategy (default: live capture with frame export fallback)",
    )
    parser.add_argument(
        "--format", choices=sorted(VALID_FORMATS), default=None,
        help="Output container (default: from manifest or settings)",
    )
    parser.add_argument(
        "--settings", default=None,
        help="Path to settings YAML (engine locations, timeouts, thresholds)",
    )
    parser.add_argument(
        "--validate", action="store_true",
        help="Validate manifest only, check paths, don't render",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Log pipeline stages and engine commands",
    )
    args = parser.parse_args(args)
    configure_logging(args.verbose)

    if args.validate:
        config = load_reel_manifest(args.manifest)
        validate_paths(config)
        scenes = scenes_from_manifest(config)
        print(f"Manifest valid: {len(scenes)} scenes")
        for i, s in enumerate(scenes):
            source = s.background or "-"
            print(f"  {i}: {s.kind} {s.duration:.1f}s — {source}")
        print("All paths verified.")
        return

    if not args.output:
        parser.error("--output is required (unless using --validate)")

    strategy = Strategy(args.strategy) if args.strategy else None
    try:
        render(args.manifest, args.output, strategy=strategy, fmt=args.format,
               settings_path=args.settings)
    except ReelGenerationError as e:
        print_failures(e)
        sys.exit(1)


if __name__ == "__main__":
    main()
