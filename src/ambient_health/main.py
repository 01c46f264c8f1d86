"""Application entrypoint — run the engine or print one-off reports."""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from ambient_health.config import Settings, get_settings
from ambient_health.engine import AmbientHealthEngine
from ambient_health.logger import setup_logging
from ambient_health.scheduler.summary import compose_summary
from ambient_health.services.clients import create_stats_provider

logger = structlog.get_logger(__name__)


async def _run(settings: Settings) -> None:
    engine = AmbientHealthEngine(settings)
    await engine.start()
    try:
        await asyncio.Event().wait()
    finally:
        await engine.stop()


async def _summary(settings: Settings) -> str:
    stats = await create_stats_provider(settings).get_daily_stats()
    return compose_summary(stats)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="ambient-health",
        description="Local ambient health telemetry from camera, microphone and keyboard.",
    )
    sub = parser.add_subparsers(dest="command")

    # ── run ───────────────────────────────────────────────────
    run_parser = sub.add_parser("run", help="Start the engine until interrupted.")
    run_parser.add_argument(
        "--backend",
        choices=["device", "null"],
        default=None,
        help="Override AMBIENT_HEALTH_SENSOR_BACKEND.",
    )

    # ── summary ───────────────────────────────────────────────
    sub.add_parser("summary", help="Print today's summary from the stats service.")

    args = parser.parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level)

    if args.command == "run":
        if args.backend:
            settings = settings.model_copy(update={"sensor_backend": args.backend})
        try:
            asyncio.run(_run(settings))
        except KeyboardInterrupt:
            logger.info("main.interrupted")
    elif args.command == "summary":
        print(asyncio.run(_summary(settings)))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
