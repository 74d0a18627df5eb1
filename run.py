"""Command-line entry point for the storygen pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from storygen.config import PipelineConfig
from storygen.pipeline import StoryVideoGenerator
from storygen.types import GenerationSettings, IntermediateSnapshot, MediaMode, StoryMode


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(description="Generate a short-form story video from a topic.")
    parser.add_argument("topic", help="Idea the video should be about.")
    parser.add_argument(
        "--duration",
        type=int,
        default=30,
        help="Target duration for the final video (seconds, 10-120).",
    )
    parser.add_argument("--aspect-ratio", default="9:16", help="Output aspect ratio.")
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in StoryMode],
        default=StoryMode.PROBLEM_SOLUTION.value,
        help="Story structure to follow.",
    )
    parser.add_argument(
        "--media",
        choices=[mode.value for mode in MediaMode],
        default=MediaMode.STATIC.value,
        help="Still images with Ken Burns motion, or generated video clips.",
    )
    parser.add_argument("--video-model", default=None, help="Video model used in animated mode.")
    parser.add_argument("--music", default="none", help="Background music style, or 'none'.")
    parser.add_argument("--captions", action="store_true", help="Burn word-synced captions into the video.")
    parser.add_argument(
        "--publish",
        nargs="+",
        metavar="PLATFORM",
        default=[],
        help="Publish the rendered video to these platforms.",
    )
    parser.add_argument("--resume", type=Path, default=None, help="snapshot.json of a failed run to resume.")
    parser.add_argument("--verbose", action="store_true", help="Log stage inputs and outputs.")
    return parser.parse_args(argv)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if not verbose:
        for noisy in ("urllib3", "httpx", "httpcore", "openai"):
            logging.getLogger(noisy).setLevel(logging.WARNING)


def main(argv: list[str] | None = None) -> int:
    """Entry point used by ``python run.py``."""
    args = parse_args(argv or sys.argv[1:])
    configure_logging(args.verbose)

    settings = GenerationSettings(
        duration=args.duration,
        aspect_ratio=args.aspect_ratio,
        story_mode=StoryMode(args.mode),
        media_mode=MediaMode(args.media),
        video_model=args.video_model,
        background_music=args.music,
        text_overlay=args.captions,
        publish=bool(args.publish),
        platforms=list(args.publish),
    )
    snapshot = None
    if args.resume is not None:
        snapshot = IntermediateSnapshot.from_json(args.resume.read_text(encoding="utf-8"))

    config = PipelineConfig.from_env()
    pipeline = StoryVideoGenerator(config)
    result = pipeline.run(
        args.topic,
        settings,
        resume_snapshot=snapshot,
        on_progress=lambda event: print(f"[{event.percent:3d}%] {event.label}"),
    )
    print(result.summary())
    for warning in result.run.warnings:
        print(f"warning: {warning}")
    if not result.success:
        print(f"Resume with: --resume {pipeline.logger.snapshot_path(result.run.run_id)}")
        return 1
    print(f"Final video: {result.final_video_url}")
    print(f"Run logs stored in {pipeline.logger.run_dir(result.run.run_id)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
