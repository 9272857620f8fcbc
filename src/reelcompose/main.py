"""Subcommand dispatcher for reelcompose.

Usage:
    reelcompose render  --manifest reel.yaml  --output reel.mp4
    reelcompose concat  --manifest clips.yaml --output reel.mp4
"""

import argparse
import sys


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="reelcompose",
        description="Property reel rendering: photo reels and multi-clip reels.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Register subcommands. Each delegates to its own module's main().
    subparsers.add_parser("render", help="Render a photo reel from a YAML manifest")
    subparsers.add_parser("concat", help="Join clips into one reel with overlays")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    if parsed.command == "render":
        from .cli import main as render_main
        render_main(remaining)
    elif parsed.command == "concat":
        from .concat_cli import main as concat_main
        concat_main(remaining)


if __name__ == "__main__":
    main()
