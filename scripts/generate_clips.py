#!/usr/bin/env python3
"""
CLI Script: Generate Clips
==========================

Command-line tool for generating one clip set from four frames, optionally
followed by a headless playback simulation.

Usage:
    python scripts/generate_clips.py f0.png f1.png f2.png f3.png
    python scripts/generate_clips.py f0.png f1.png f2.png f3.png --backend kling -d 5
    python scripts/generate_clips.py f0.png f1.png f2.png f3.png --simulate 30
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add the project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loopreel import (
    ClipOrchestrator,
    Config,
    ContinuityScheduler,
    LoopReelError,
    SimulatedBuffer,
    list_backends,
)
from loopreel.playback import simulate


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Generate a looping three-clip set from four frames",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s start.png mid1.png mid2.png end.png
  %(prog)s a.png b.png c.png d.png --backend kling --prompt "slow dolly in"
  %(prog)s a.png b.png c.png d.png --simulate 30 --speed 4
        """,
    )

    parser.add_argument(
        "frames",
        nargs=4,
        metavar="FRAME",
        help="Four frame images (local paths, URLs or data URIs)",
    )

    # Generation settings
    parser.add_argument(
        "--backend",
        choices=list_backends(),
        help="Generation backend (default: generation.backend from config)",
    )
    parser.add_argument(
        "-d", "--duration",
        type=int,
        help="Clip duration in seconds (default: generation.default_duration)",
    )
    parser.add_argument(
        "--prompt",
        help="Motion/style instruction shared by all three clips",
    )

    # Playback simulation
    parser.add_argument(
        "--simulate",
        type=float,
        metavar="SECONDS",
        help="Simulate looping playback of the result for SECONDS",
    )
    parser.add_argument(
        "--speed",
        type=float,
        default=1.0,
        help="Simulation speed multiplier (default: 1.0)",
    )

    # Output
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the clip set as JSON",
    )
    parser.add_argument(
        "--config",
        help="Path to config file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    return parser.parse_args()


async def run_simulation(config: Config, clips, seconds: float, speed: float) -> None:
    """Loop the clip set on two simulated buffers and report every swap."""
    duration = float(config.generation.default_duration)
    buffer_a = SimulatedBuffer("A", clip_duration=duration)
    buffer_b = SimulatedBuffer("B", clip_duration=duration)
    scheduler = ContinuityScheduler(buffer_a, buffer_b, config.playback)

    await scheduler.boot(clips)
    await simulate(scheduler, [buffer_a, buffer_b], seconds=seconds, speed=speed)
    await scheduler.stop()

    print(f"\nSimulated {seconds:.0f}s: {scheduler.swaps_completed} seamless swap(s)")


async def main():
    """Main CLI entry point."""
    args = parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = Config.load(args.config)
    except LoopReelError as e:
        print(f"Error: {e.message}")
        sys.exit(1)

    print("=" * 50)
    print("LoopReel Clip Generator")
    print("=" * 50)
    print(f"\nBackend: {args.backend or config.generation.backend}")
    print(f"Duration: {args.duration or config.generation.default_duration}s")
    if args.prompt:
        print(f"Prompt: {args.prompt}")

    try:
        async with ClipOrchestrator(config=config, backend=args.backend) as orchestrator:
            clips = await orchestrator.generate_clips(
                args.frames,
                duration_seconds=args.duration,
                prompt=args.prompt,
            )
    except LoopReelError as e:
        print("\n" + "-" * 50)
        print(f"Generation failed: {e.message}")
        for failure in e.details.get("failures", []):
            print(f"  - {failure}")
        sys.exit(1)

    print("\n" + "-" * 50)
    if args.json:
        print(json.dumps({"clips": clips.to_list()}, indent=2))
    else:
        print("Clip set:")
        for index, url in enumerate(clips):
            print(f"  {index}: {url}")

    if args.simulate:
        await run_simulation(config, clips, args.simulate, args.speed)


if __name__ == "__main__":
    asyncio.run(main())
