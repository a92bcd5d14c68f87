"""Entry point for running the SituationCord pipeline.

This module provides the command line entry point. It handles:
- Configuration loading
- Logging setup with secret sanitization
- Adapter instantiation
- Worker lifecycle management
- Ignore list maintenance
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

import structlog

from situationcord._version import __version__

if TYPE_CHECKING:
    from situationcord.config.schema import SituationConfig

log = structlog.get_logger()


def setup_logging(debug: bool = False, log_format: str = "console") -> None:
    """Configure structured logging with secret sanitization.

    Args:
        debug: Enable debug logging if True
        log_format: Output format ("json" or "console")
    """
    from situationcord.utils.logging import configure_logging

    configure_logging(level="DEBUG" if debug else "INFO", log_format=log_format)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="situationcord",
        description="SituationCord - AI enrichment of Discord support messages",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config/config.yaml"),
        help="Path to configuration file (default: config/config.yaml)",
    )
    parser.add_argument(
        "-i",
        "--input",
        default="-",
        help="JSON-lines file of webhook payloads, or - for stdin (default: -)",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--format",
        choices=["json", "console"],
        default="console",
        help="Log output format (default: console)",
    )
    parser.add_argument(
        "--metrics-file",
        type=Path,
        help="Write Prometheus text metrics to this file when the worker stops",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse config and validate without processing messages",
    )
    mode.add_argument(
        "--health-check",
        action="store_true",
        help="Run health check and exit",
    )
    mode.add_argument(
        "--ignore-author",
        metavar="AUTHOR_ID",
        help="Add an author to the alert ignore list and exit",
    )
    mode.add_argument(
        "--unignore-author",
        metavar="AUTHOR_ID",
        help="Remove an author from the alert ignore list and exit",
    )

    parser.add_argument(
        "--reason",
        help="Reason recorded with --ignore-author",
    )

    return parser.parse_args(argv)


async def run_health_check(config: "SituationConfig") -> int:
    from situationcord.adapters.store.postgres import PostgresStore
    from situationcord.utils.health import HealthChecker

    store = PostgresStore(config.database)
    try:
        # An unopened store fails its ping, which marks the database unhealthy
        await store.open()
    except Exception as e:
        log.error("database_unavailable", error=str(e))

    try:
        report = await HealthChecker(config, store).run_all_checks()
    finally:
        await store.close()

    if report.healthy:
        log.info("health_check_passed", report=report.to_dict())
        return 0
    log.error("health_check_failed", report=report.to_dict())
    return 1


async def run_ignore_command(config: "SituationConfig", args: argparse.Namespace) -> int:
    from situationcord.adapters.store.postgres import PostgresStore

    store = PostgresStore(config.database)
    await store.open()
    try:
        if args.ignore_author:
            await store.ignore_author(args.ignore_author, reason=args.reason, ignored_by="cli")
            return 0

        removed = await store.unignore_author(args.unignore_author)
        if not removed:
            log.warning("author_not_on_ignore_list", author_id=args.unignore_author)
        return 0
    finally:
        await store.close()


async def run_worker(
    config: "SituationConfig",
    source: TextIO,
    metrics_file: Path | None = None,
) -> int:
    from situationcord.core.worker import create_worker, iter_payloads
    from situationcord.utils.metrics import get_metrics

    log.info("creating_worker")
    worker = await create_worker(config)

    await worker.start()
    try:
        await worker.run(iter_payloads(source))
    finally:
        await worker.stop()
        if metrics_file is not None:
            write_metrics_file(metrics_file)

    log.info("worker_finished", metrics=get_metrics().get_all_metrics(), **worker.stats)
    return 0 if worker.stats["errors_count"] == 0 else 1


def write_metrics_file(path: Path) -> None:
    """Dump the metrics registry for a Prometheus textfile collector."""
    from situationcord.utils.metrics import get_metrics

    try:
        path.write_text(get_metrics().to_prometheus_format() + "\n", encoding="utf-8")
    except OSError as e:
        log.error("metrics_file_write_failed", path=str(path), error=str(e))
        return
    log.info("metrics_file_written", path=str(path))


async def run(args: argparse.Namespace) -> int:
    """Run the selected command.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    log.info("starting_situationcord", version=__version__, config_path=str(args.config))

    try:
        from situationcord.config.loader import load_config, validate_config

        config = load_config(args.config)
        validate_config(config)
        log.info("configuration_loaded", model=config.ai_model)

        # Reconfigure logging from config file settings
        from situationcord.utils.logging import configure_logging

        configure_logging(
            level="DEBUG" if args.debug else config.logging.level,
            log_format=args.format,
            file_path=config.logging.file.path if config.logging.file.enabled else None,
        )

        if args.dry_run:
            log.info("dry_run_mode_config_valid")
            return 0

        if args.health_check:
            return await run_health_check(config)

        if args.ignore_author or args.unignore_author:
            return await run_ignore_command(config, args)

        if args.input == "-":
            return await run_worker(config, sys.stdin, args.metrics_file)

        with Path(args.input).open(encoding="utf-8") as source:
            return await run_worker(config, source, args.metrics_file)

    except FileNotFoundError as e:
        log.error("file_not_found", error=str(e))
        return 1
    except ValueError as e:
        log.error("configuration_invalid", error=str(e))
        return 1
    except Exception as e:
        log.exception("fatal_error", error=str(e))
        return 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(debug=args.debug, log_format=args.format)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        log.info("shutting_down_gracefully")
        return 0


if __name__ == "__main__":
    sys.exit(main())
