"""CLI for multi-clip reels.

Reads a clips manifest, builds one overlay per clip and joins the clips
into a single reel (engine normalize + concat, recapture fallback).

Usage:
    reelcompose concat --manifest clips.yaml --output reel.mp4
    reelcompose concat --manifest clips.yaml --validate
"""

import argparse
import asyncio
import sys
import time

from .api import ReelOptions, generate_multi_clip_reel
from .cli import ProgressPrinter, configure_logging, print_failures, settings_for
from .errors import ReelGenerationError
from .manifest import load_clips_manifest, overlays_from_manifest, validate_paths


def concat(manifest_path: str, output_path: str, settings_path: str | None = None,
           with_overlays: bool = True) -> str:
    """Join the manifest's clips into output_path. Returns the written path."""
    config = load_clips_manifest(manifest_path)
    validate_paths(config)
    settings = settings_for(config, settings_path, None)
    clips = config["clips"]
    overlays = overlays_from_manifest(config) if with_overlays else None

    w, h = settings.resolution
    print(f"Joining {len(clips)} clips")
    print(f"Resolution: {w}x{h}, {settings.fps}fps, {settings.format}")

    label = f"concat -> {output_path}"
    print(f"  START  {label}", flush=True)
    t0 = time.monotonic()
    artifact = asyncio.run(generate_multi_clip_reel(
        clips, ReelOptions(progress=ProgressPrinter(), settings=settings, overlays=overlays),
    ))
    path = artifact.write(output_path)
    elapsed = time.monotonic() - t0
    print(f"  DONE   {label} ({artifact.strategy}, {artifact.size} bytes, {elapsed:.1f}s wall)",
          flush=True)
    print(f"\nDone: {path}")
    return str(path)


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Join video clips into one reel with per-clip overlays.",
    )
    parser.add_argument(
        "--manifest", required=True,
        help="Path to clips YAML manifest",
    )
    parser.add_argument(
        "--output",
        help="Output video path",
    )
    parser.add_argument(
        "--settings", default=None,
        help="Path to settings YAML",
    )
    parser.add_argument(
        "--no-overlays", action="store_true",
        help="Join clips without subtitle/footer/logo overlays",
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
        config = load_clips_manifest(args.manifest)
        validate_paths(config)
        print(f"Manifest valid: {len(config['clips'])} clips")
        for i, clip in enumerate(config["clips"]):
            print(f"  {i}: {clip.source} — {clip.subtitle or ''}")
        print("All paths verified.")
        return

    if not args.output:
        parser.error("--output is required (unless using --validate)")

    try:
        concat(args.manifest, args.output, settings_path=args.settings,
               with_overlays=not args.no_overlays)
    except ReelGenerationError as e:
        print_failures(e)
        sys.exit(1)


if __name__ == "__main__":
    main()
