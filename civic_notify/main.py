"""Main entry point for the CivicAid notification service."""

import argparse
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

from civic_notify.config.environment import EnvironmentConfig
from civic_notify.config.exceptions import ConfigurationError
from civic_notify.config.loader import load_config
from civic_notify.config.models import AppConfig
from civic_notify.container import ServiceContainer, build_container
from civic_notify.logging import get_logger
from civic_notify.logging.config import configure_logging
from civic_notify.persistence.database import close_database, init_database
from civic_notify.scheduler import SchedulerService

logger = get_logger(__name__, component="cli")

RUN_CHOICES = ("sweep", "survey", "all")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level

    return app_config, env_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="civic-notify",
        description="CivicAid notification service - multi-channel citizen notifications",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml if present, else built-in defaults)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--run",
        choices=RUN_CHOICES,
        default=None,
        help="Run a trigger once and exit (for cron)",
    )
    mode.add_argument(
        "--serve",
        action="store_true",
        help="Serve the HTTP API with the scheduler running in the background",
    )
    parser.add_argument("--host", default="0.0.0.0", help="HTTP bind address (with --serve)")
    parser.add_argument("--port", type=int, default=8000, help="HTTP port (with --serve)")
    return parser


def run_once(container: ServiceContainer, which: str) -> int:
    """
    Run the selected triggers once.

    Returns:
        Exit code: 1 if any dispatch aborted with an error, else 0
    """
    had_errors = False

    if which in ("sweep", "all"):
        sweep = container.pending_sweep.run()
        summary = sweep.batch.summary()
        logger.info(
            f"Pending sweep: {summary['processed']} processed, {summary['sent']} sent, "
            f"{summary['retry']} to retry, {summary['failed']} failed",
            extra={"event": "service.run_once.sweep", **summary},
        )
        had_errors = had_errors or summary["error"] > 0

    if which in ("survey", "all"):
        survey = container.survey_discovery.run()
        logger.info(
            f"Survey discovery: {survey.queued} queued, {survey.already_queued} already queued",
            extra={"event": "service.run_once.survey", **survey.to_dict()},
        )
        had_errors = had_errors or survey.errors > 0

    return 1 if had_errors else 0


def serve(container: ServiceContainer, host: str, port: int) -> int:
    """Serve the HTTP API; the scheduler runs inside the app lifespan."""
    import uvicorn

    from civic_notify.api import create_app

    scheduler = None
    if container.app_config.schedule.enabled:
        scheduler = SchedulerService(container.scheduled_jobs())

    app = create_app(container, scheduler=scheduler)
    uvicorn.run(app, host=host, port=port, log_config=None)
    return 0


def run_daemon(container: ServiceContainer) -> int:
    """Run the scheduler until SIGINT/SIGTERM."""
    if not container.app_config.schedule.enabled:
        logger.error(
            "Scheduling is disabled in configuration; use --run for one-off runs",
            extra={"event": "service.daemon_mode.disabled"},
        )
        return 1

    shutdown_event = threading.Event()
    scheduler_service = SchedulerService(
        container.scheduled_jobs(), shutdown_event=shutdown_event
    )

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        scheduler_service.shutdown(wait=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    scheduler_service.start()
    logger.info(
        "Scheduler started. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started"},
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Keyboard interrupt received, shutting down",
            extra={"event": "service.keyboard_interrupt"},
        )
        scheduler_service.shutdown(wait=False)

    return 0


def main(argv=None) -> int:
    """
    Main entry point for the notification service.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    load_dotenv()
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        # Configuration first, so logging knows its format and level
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
        )

        mode = "run" if args.run else ("serve" if args.serve else "daemon")
        logger.info(
            "CivicAid notification service starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "mode": mode,
            },
        )

        init_database(env_config.database_url)

        container = build_container(app_config, env_config)
        logger.info(
            "Services initialized",
            extra={
                "event": "services.initialized",
                "channels": container.available_channels(),
                "rate_limit_enabled": app_config.rate_limit.enabled,
                "max_attempts": app_config.dispatch.max_attempts,
            },
        )

        try:
            if args.run:
                return run_once(container, args.run)
            if args.serve:
                return serve(container, args.host, args.port)
            return run_daemon(container)
        finally:
            close_database()
            logger.info(
                "CivicAid notification service stopped",
                extra={
                    "event": "service.stopping",
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
