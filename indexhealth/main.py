"""
SQL Index Health - Entry Point

Scans one SQL Server database for fragmented, unused, duplicate and
overlapping indexes, and optionally runs the selected maintenance.
"""

import sys
import argparse
import signal
import threading
from typing import Optional, List


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="indexhealth",
        description="Scan SQL Server indexes and plan or run maintenance",
    )
    parser.add_argument("--server", help="Server name (overrides settings)")
    parser.add_argument("--database", help="Database to scan (overrides settings)")
    parser.add_argument("--fix", action="store_true", help="Run the selected operations")
    parser.add_argument("--workers", type=int, help="Concurrent maintenance operations")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--init-config", action="store_true", help="Write a default settings file and exit")
    return parser


def print_report(result) -> None:
    header = f"{'Object':<60} {'Frag %':>7} {'Pages':>10} {'Warning':<10} Operation"
    print(header)
    print("-" * len(header))
    for ix in result.indexes:
        fragmentation = "" if ix.fragmentation is None else f"{ix.fragmentation:.1f}"
        warning = ix.warning.value if ix.warning else ""
        operation = ix.operation.value if ix.operation else ""
        print(f"{ix.display_name[:60]:<60} {fragmentation:>7} {ix.pages_count:>10} {warning:<10} {operation}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point"""
    args = build_parser().parse_args(argv)

    from indexhealth.core.config import get_settings, reset_settings, ensure_app_dirs
    from indexhealth.core.exceptions import IndexHealthError
    from indexhealth.core.logger import setup_logging, get_logger, log_exception
    from indexhealth.database.connection import DatabaseConnection
    from indexhealth.services import CatalogService, IndexHealthService, MaintenanceService, SqlServerExecutor
    from indexhealth import __version__, __app_name__

    app_dir = ensure_app_dirs()

    try:
        settings = reset_settings() if args.init_config else get_settings()
    except IndexHealthError as e:
        print(f"Settings error: {e}", file=sys.stderr)
        return 2

    if args.init_config:
        print(f"Default settings written to {settings.settings_file}")
        return 0

    setup_logging(
        level="DEBUG" if args.debug else settings.logging.level,
        log_dir=settings.logs_dir,
        file_enabled=settings.logging.file_enabled,
        retention_days=settings.logging.retention_days,
    )

    logger = get_logger('main')
    logger.info(f"Starting {__app_name__} v{__version__}")
    logger.info(f"App directory: {app_dir}")

    profile = settings.connection
    overrides = {k: v for k, v in (("server", args.server), ("database", args.database)) if v}
    if overrides:
        profile = profile.model_copy(update=overrides)

    cancel_event = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: cancel_event.set())

    try:
        with DatabaseConnection(profile, settings.database) as connection:
            catalog = CatalogService(connection, timeout=settings.database.command_timeout)
            service = IndexHealthService(catalog)
            policy = settings.maintenance_policy()

            result = service.scan(settings.filter_criteria(), policy)
            print_report(result)

            if not args.fix:
                return 0

            executor = SqlServerExecutor(connection, policy, service.capabilities.major_version)
            workers = args.workers or settings.maintenance.max_workers
            summary = MaintenanceService(executor, policy, max_workers=workers).run(
                result.indexes,
                cancel_event=cancel_event,
                timeout=settings.database.command_timeout,
            )
            print(
                f"\n{summary.succeeded} succeeded, {summary.failed} failed, "
                f"{summary.cancelled} cancelled, {summary.pages_saved} pages saved"
            )
            return 1 if summary.failed else 0

    except IndexHealthError as e:
        log_exception(logger, e, "Index health run failed")
        print(f"Error: {e.message}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
