#!/usr/bin/env python3
"""
Video Jobs - Main Entry Point

Runs the video job API, the recurring schedule worker, and a few operator
commands.

Usage:
    # Start the HTTP + SSE server
    python main.py server

    # Evaluate due schedules forever / once
    python main.py scheduler --interval 60
    python main.py tick

    # Show the model catalog with pricing
    python main.py models

    # Follow a job's progress stream
    python main.py watch <job-id> --user user-1
"""

import argparse
import asyncio
import json
import logging
import signal
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("videojobs")


def start_server(host: str, port: int):
    """Start the FastAPI server."""
    import uvicorn

    logger.info(f"Video job server running at http://{host}:{port}")
    uvicorn.run("services.orchestrator.server:app", host=host, port=port, log_level="info")


async def run_scheduler(interval: float):
    """Evaluate due schedules until SIGINT/SIGTERM."""
    from services.orchestrator import create_context

    context = await create_context()
    scheduler = context.scheduler

    # Handle shutdown signals
    stop_event = asyncio.Event()

    def handle_signal():
        logger.info("Shutdown signal received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal)

    # Start worker in background
    worker_task = asyncio.create_task(scheduler.start(interval=interval))

    # Wait for shutdown
    await stop_event.wait()

    # Cleanup
    await scheduler.stop()
    worker_task.cancel()

    try:
        await worker_task
    except asyncio.CancelledError:
        pass

    await context.close()
    logger.info("Scheduler stopped")


async def run_tick() -> int:
    """Evaluate due schedules once. Returns the number of failed runs."""
    from services.orchestrator import create_context

    context = await create_context()
    try:
        runs = await context.scheduler.tick()
    finally:
        await context.close()

    for run in runs:
        if run.submitted:
            print(f"  {run.schedule_id}: submitted job {run.job_id}")
        elif run.disabled:
            print(f"  {run.schedule_id}: disabled (max runs reached)")
        else:
            print(f"  {run.schedule_id}: failed - {run.error}")
    print(f"Evaluated {len(runs)} due schedules")
    return sum(1 for run in runs if run.error)


def show_models():
    """Print every provider's catalog with pricing."""
    from core.config import get_config
    from services.video_generation import ProviderRegistry, format_cost, lookup_video_model_cost

    registry = ProviderRegistry.from_config(get_config())
    for name, provider in registry.providers.items():
        print(f"\n{name}")
        for model in provider.list_models():
            duration = model.supported_durations[0] if model.supported_durations else None
            resolutions = model.supported_resolutions or [None]
            prices = ", ".join(
                f"{resolution or 'default'}: {format_cost(lookup_video_model_cost(registry, name, model.id, duration, resolution))}"
                for resolution in resolutions
            )
            durations = "/".join(str(d) for d in model.supported_durations) or "-"
            print(f"  {model.id:<40} {model.type.value:<15} durations {durations:<10} {prices}")


async def watch_job(job_id: str, user_id: str, server_url: str) -> bool:
    """Print a job's SSE events. Returns True if the job completed."""
    import httpx

    final_status = None
    async with httpx.AsyncClient(timeout=None) as client:
        try:
            async with client.stream(
                "GET",
                f"{server_url}/api/video/{job_id}/stream",
                headers={"X-User-Id": user_id},
            ) as response:
                if response.status_code != 200:
                    await response.aread()
                    print(f"Server returned {response.status_code}: {response.text}")
                    return False

                async for line in response.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    event = json.loads(line[len("data: "):])
                    final_status = event.get("status")
                    detail = event.get("videoUrl") or event.get("error") or ""
                    print(f"[{final_status:>10}] {event.get('progress', 0):>3}% {detail}")

        except httpx.RequestError as e:
            print(f"Cannot connect to server: {e}")
            return False

    return final_status == "complete"


def main():
    parser = argparse.ArgumentParser(
        description="Video Jobs - AI video generation orchestration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Start the API server
    python main.py server --port 8765

    # Run the schedule worker
    python main.py scheduler --interval 60

    # Follow a job
    python main.py watch 0b6c... --user user-1
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Server command
    server_parser = subparsers.add_parser("server", help="Start the API server")
    server_parser.add_argument("--host", default=None, help="Host to bind")
    server_parser.add_argument("--port", type=int, default=None, help="Port to bind")

    # Scheduler command
    sched_parser = subparsers.add_parser("scheduler", help="Evaluate due schedules continuously")
    sched_parser.add_argument("--interval", type=float, default=None, help="Seconds between ticks")

    # Tick command
    subparsers.add_parser("tick", help="Evaluate due schedules once")

    # Models command
    subparsers.add_parser("models", help="List provider models and pricing")

    # Watch command
    watch_parser = subparsers.add_parser("watch", help="Follow a job's progress stream")
    watch_parser.add_argument("job_id", help="Job ID to watch")
    watch_parser.add_argument("--user", required=True, help="User ID that owns the job")
    watch_parser.add_argument("--server", default="http://localhost:8765", help="Server URL")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Run appropriate command
    if args.command == "server":
        from core.config import get_config

        server_config = get_config().server
        start_server(host=args.host or server_config.host, port=args.port or server_config.port)

    elif args.command == "scheduler":
        from core.config import get_config

        asyncio.run(run_scheduler(args.interval or get_config().scheduler.tick_interval_seconds))

    elif args.command == "tick":
        failures = asyncio.run(run_tick())
        sys.exit(1 if failures else 0)

    elif args.command == "models":
        show_models()

    elif args.command == "watch":
        completed = asyncio.run(watch_job(args.job_id, args.user, args.server))
        sys.exit(0 if completed else 1)


if __name__ == "__main__":
    main()
