"""
Standalone entrypoint for running the build scheduler.

The scheduler polls the configured targets on a timer and builds the ones
whose upstream branch moved.

Usage:
    python -m fleet_controller [OPTIONS]
    fleet-controller [OPTIONS]  (after pip install)

Environment Variables:
    See fleet_common.settings; command-line arguments override them.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any

from fleet_common.log import configure_logging
from fleet_common.settings import Settings
from fleet_controller.bootstrap import create_components

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Fleet Controller - rebuild targets when their upstream changes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  FLEET_TARGETS_FILE    Targets configuration file (default: targets.json)
  FLEET_SERVERS_DIR     Directory with one folder per target (default: /ss13_servers)
  FLEET_MAX_JOBS        Maximum concurrent builds (default: 2)
  FLEET_POLL_INTERVAL   Seconds between polling cycles (default: 60.0)
  FLEET_BUILD_COMMAND   Compile command (default: /bin/bash scripts/gate.sh)
  FLEET_BUILD_TIMEOUT   Seconds before a build is cancelled (default: unset)
  FLEET_NOTIFIER_URL    Endpoint receiving build notifications (default: unset)
  FLEET_LOG_FILE        Append-only log file (default: logs/build.log)

Note: Command-line arguments override environment variables.

Examples:
  # Run with default settings
  fleet-controller

  # Poll every 30 seconds with up to 4 parallel builds
  fleet-controller --interval 30 --max-jobs 4

  # Run a single polling cycle and wait for its builds
  fleet-controller --once
        """,
    )

    parser.add_argument(
        "--targets-file",
        type=str,
        default=None,
        help="Targets configuration file (default: FLEET_TARGETS_FILE env or targets.json)",
    )

    parser.add_argument(
        "--servers-dir",
        type=str,
        default=None,
        help="Directory with one folder per target (default: FLEET_SERVERS_DIR env)",
    )

    parser.add_argument(
        "--max-jobs",
        type=int,
        default=None,
        help="Maximum concurrent builds (default: FLEET_MAX_JOBS env or 2)",
    )

    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between polling cycles (default: FLEET_POLL_INTERVAL env or 60)",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single polling cycle, wait for its builds and exit",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def get_settings(args: argparse.Namespace) -> Settings:
    """
    Build settings from the environment, applying command-line overrides.

    Args:
        args: Parsed command-line arguments

    Returns:
        Effective settings
    """
    settings = Settings.from_env()

    if args.targets_file is not None:
        settings.targets_file = args.targets_file
    if args.servers_dir is not None:
        settings.servers_dir = args.servers_dir

    if args.max_jobs is not None:
        if args.max_jobs <= 0:
            logger.warning(
                f"Invalid max jobs={args.max_jobs}, using {settings.max_jobs}"
            )
        else:
            settings.max_jobs = args.max_jobs

    if args.interval is not None:
        if args.interval <= 0:
            logger.warning(
                f"Invalid interval={args.interval}, using {settings.poll_interval}"
            )
        else:
            settings.poll_interval = args.interval

    return settings


async def run_controller(args: argparse.Namespace) -> None:
    """
    Initialize and run the scheduler.

    Args:
        args: Parsed command-line arguments

    Runs until interrupted by SIGINT or SIGTERM, or after a single cycle
    when --once is given.
    """
    settings = get_settings(args)

    logger.info("Starting Fleet Controller")
    logger.info(f"  Targets file: {settings.targets_file}")
    logger.info(f"  Servers dir: {settings.servers_dir}")
    logger.info(f"  Max jobs: {settings.max_jobs}")
    logger.info(f"  Poll interval: {settings.poll_interval}s")
    logger.info(f"  Notifier: {settings.notifier_url or '(log only)'}")

    components = create_components(settings)
    scheduler = components.scheduler

    if args.once:
        submitted = await scheduler.run_cycle()
        logger.info(f"Submitted {len(submitted)} build(s): {submitted}")
        await components.registry.wait_idle()
        return

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler(sig: Any, _frame: Any) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {sig}, initiating graceful shutdown...")
        loop.call_soon_threadsafe(shutdown_event.set)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await scheduler.start()
        logger.info("Scheduler started successfully")
        await shutdown_event.wait()
    except Exception as e:
        logger.error(f"Controller error: {e}", exc_info=True)
        raise
    finally:
        await scheduler.stop()
        if components.registry.active_count:
            logger.info(
                f"Waiting for {components.registry.active_count} running build(s)..."
            )
            await components.registry.wait_idle()
        logger.info("Controller stopped cleanly")


def main() -> int:
    """
    Main entrypoint for the controller.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args()

    settings_log_file = Settings.from_env().log_file
    configure_logging(args.log_level, settings_log_file)

    try:
        asyncio.run(run_controller(args))
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
