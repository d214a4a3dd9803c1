import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from .config import load_settings
from .core import build_orchestrator
from .exceptions import ConfigError, PhotoArchiverError
from .ledger import LedgerRepository, RemoteLookupLedger, SqliteLedger
from .remote.client import FulcrumClient
from .reporting import ReportGenerator


def setup_logging(log_file: Optional[Path], verbose: bool):
    """Sets up logging to the console and, optionally, a log file."""
    log_level = logging.DEBUG if verbose else logging.INFO

    handlers: list = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.insert(0, logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
    )

    # Silence chatty libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)

def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Photo Archiver: sync completed Fulcrum records into the project archive")

    p.add_argument("--ledger", choices=["remote", "sqlite"], default="remote",
                   help="Where processed photos are recorded (default: remote lookup form)")
    p.add_argument("--db", type=Path, default=Path("photo_ledger.db"), help="SQLite ledger path (with --ledger sqlite)")
    p.add_argument("--since-hours", type=float, default=None, help="Only consider records updated within this many hours")
    p.add_argument("--no-duplicates", action="store_true", help="Never write numbered duplicates of existing photos")
    p.add_argument("--report-csv", type=Path, default=None, help="Write a per-record CSV report of the pass")
    p.add_argument("--env-file", type=Path, default=None, help="Load settings from this .env file")
    p.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file")
    p.add_argument("--no-progress", action="store_true", help="Disable the progress bar")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    return p.parse_args(argv)

def build_ledger(kind: str, settings, client: FulcrumClient, db_path: Path) -> LedgerRepository:
    if kind == "sqlite":
        return SqliteLedger(db_path)
    if not settings.lookup_form_id:
        raise ConfigError("Missing required environment variable: FULCRUM_FORM_LOOK_UP")
    return RemoteLookupLedger(
        client, settings.lookup_form_id,
        latitude=settings.lookup_latitude, longitude=settings.lookup_longitude,
    )

def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_file, args.verbose)

    logging.info("=== Photo Archiver Started ===")

    # 1. Config
    try:
        settings = load_settings(dotenv_path=args.env_file)
        if args.since_hours is not None:
            settings = replace(settings, lookback_hours=args.since_hours)
        if args.no_duplicates:
            settings = replace(settings, allow_duplicates=False)

        client = FulcrumClient(settings.token, base_url=settings.base_url, report_url=settings.report_url)
        ledger = build_ledger(args.ledger, settings, client, args.db)
    except ConfigError as e:
        logging.error(f"Configuration error: {e}")
        return 2

    logging.info(f"Archive: {settings.archive_root}")
    logging.info(f"Staging: {settings.staging_dir}")

    # 2. Execution
    orchestrator = build_orchestrator(settings, ledger, client=client, progress=not args.no_progress)
    try:
        summary = orchestrator.run_pass()
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        return 1
    except PhotoArchiverError as e:
        logging.error(f"Pass aborted: {e}")
        return 1
    finally:
        if isinstance(ledger, SqliteLedger):
            ledger.close()

    if args.report_csv:
        ReportGenerator().write_pass_report(summary, args.report_csv)

    return 0

if __name__ == "__main__":
    sys.exit(main())
