"""
Stage Worker

Runs pipeline stages on a fixed interval, for deployments without an
external scheduler calling the /api/v1/stages endpoints.

Run as a separate process:
    python -m quiz_pipeline.workers.stage_worker

Only some stages, or a single pass:
    python -m quiz_pipeline.workers.stage_worker frames assembly --interval 60
    python -m quiz_pipeline.workers.stage_worker --once

Several workers can run side by side; jobs are claimed atomically.
"""

import argparse
import asyncio
import logging
import time
from typing import Optional

from quiz_pipeline.core.dependencies import get_pipeline
from quiz_pipeline.services.pipeline import Pipeline, STAGES, STAGE_GENERATE

logger = logging.getLogger(__name__)


def seed_due(last_seeded: Optional[float], now: float, interval: float) -> bool:
    """New generation jobs are created at most once per interval"""
    return last_seeded is None or now - last_seeded >= interval


def _run_stage(pipeline: Pipeline, stage: str, seed: bool):
    if stage == STAGE_GENERATE:
        return pipeline.run_generate(seed=seed)
    return pipeline.run(stage)


async def run_once(pipeline: Pipeline, stages: list[str], seed: bool = True) -> int:
    """
    Run each stage once. Returns how many jobs moved forward downstream of
    generation; freshly generated jobs do not count, so seeding never keeps
    the loop busy on its own.
    """
    processed = 0
    for stage in stages:
        try:
            result = await asyncio.to_thread(_run_stage, pipeline, stage, seed)
        except Exception as e:
            print(f"❌ Stage {stage} error: {e}")
            continue
        if stage != STAGE_GENERATE:
            processed += result.processed_count
        if result.claimed_count:
            print(f"✅ {result.message}")
        for job_id, error in result.errors.items():
            print(f"   ⚠️ {job_id}: {error}")
    return processed


async def worker_loop(stages: list[str], interval: float):
    """Main worker loop - run the stages, then sleep unless there was work"""
    print("🚀 Stage worker started")
    print(f"📊 Stages: {', '.join(stages)} every {interval}s")

    pipeline = get_pipeline()
    last_seeded = None
    while True:
        try:
            now = time.monotonic()
            seed = seed_due(last_seeded, now, interval)
            if seed:
                last_seeded = now
            processed = await run_once(pipeline, stages, seed=seed)
            # Keep draining while jobs are moving
            await asyncio.sleep(1 if processed else interval)
        except asyncio.CancelledError:
            print("\n🛑 Worker stopped")
            break


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run quiz pipeline stages in a loop")
    parser.add_argument("stages", nargs="*", help=f"Stages to run (default: {' '.join(STAGES)})")
    parser.add_argument("--interval", type=float, default=300.0, help="Seconds between idle passes")
    parser.add_argument("--once", action="store_true", help="Run each stage once and exit")
    args = parser.parse_args(argv)

    unknown = [stage for stage in args.stages if stage not in STAGES]
    if unknown:
        parser.error(f"unknown stage(s): {', '.join(unknown)}")
    args.stages = args.stages or list(STAGES)
    return args


def run_worker(argv=None):
    """Entry point for the worker"""
    logging.basicConfig(level=logging.INFO)
    args = parse_args(argv)
    try:
        if args.once:
            asyncio.run(run_once(get_pipeline(), args.stages))
        else:
            asyncio.run(worker_loop(args.stages, args.interval))
    except KeyboardInterrupt:
        print("\n🛑 Worker stopped")


if __name__ == "__main__":
    run_worker()
