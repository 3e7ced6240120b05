#!/usr/bin/env python3
"""
AuditLiner - audit log to SQLite importer
Main application entry point.
"""

import argparse
import json
import signal
import sys
from datetime import datetime
from typing import Any, Dict, Optional
import logging

from . import __version__
from .config.loader import create_sample_config, default_config, load_config, setup_logging
from .connectors.sqlite import SQLiteConnector
from .errors import AuditLinerError, StoreConnectionError
from .importer import BatchWriter
from .inputs.file_input import FileInput
from .parsers.audit_parser import AuditLineParser

DEFAULT_DATABASE_STEM = 'audit'


def _signal_handler(signum, frame):
    """Turn SIGTERM into KeyboardInterrupt so the import rolls back."""
    raise KeyboardInterrupt(f"signal {signum}")


def default_database_path(log_path: Optional[str], now: Optional[datetime] = None) -> str:
    """
    Generate a database path for a log file.

    Args:
        log_path: Path to the log file, None or '-' for standard input
        now: Timestamp to embed, defaults to the current time

    Returns:
        '<log file stem>-<YYYYmmdd-HHMMSS>.db' in the current directory
    """
    stem = FileInput(log_path).stem if log_path else None
    now = now or datetime.now()
    return f"{stem or DEFAULT_DATABASE_STEM}-{now.strftime('%Y%m%d-%H%M%S')}.db"


class AuditLinerApp:
    """Main AuditLiner application."""

    def __init__(self, config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None):
        """
        Initialize AuditLiner with configuration.

        Args:
            config_path: Optional INI or YAML configuration file
            overrides: Section values taken from the command line, applied over the file
        """
        self.config_path = config_path
        self.config = load_config(config_path) if config_path else default_config()

        for section, values in (overrides or {}).items():
            self.config.setdefault(section, {}).update(
                {key: value for key, value in values.items() if value is not None}
            )

        setup_logging(self.config)
        self.logger = logging.getLogger(__name__)
        if config_path:
            self.logger.info(f"Loaded configuration from {config_path}")

        self.parser = AuditLineParser()
        self.connector = None
        self.writer = None

    def _setup_connector(self, log_path: Optional[str]):
        """Open the database and make sure the audit table exists."""
        sqlite_config = self.config['sqlite']
        if not sqlite_config.get('database'):
            sqlite_config['database'] = default_database_path(log_path)
            self.logger.info(f"No database given, writing to {sqlite_config['database']}")

        self.connector = SQLiteConnector(sqlite_config)
        try:
            self.connector.create_table()
        except StoreConnectionError:
            self.connector.close()
            raise

    def run(self, log_path: Optional[str] = None) -> int:
        """
        Import one log file into the configured database.

        Args:
            log_path: Log file, defaults to the configured input path

        Returns:
            Number of records imported
        """
        log_path = log_path or self.config['input'].get('path')
        if not log_path:
            raise AuditLinerError("No log file given")

        lines = FileInput(log_path, encoding=self.config['input']['encoding'])
        lines.check_exists()

        self._setup_connector(log_path)
        sqlite_config = self.config['sqlite']

        try:
            self.writer = BatchWriter(
                self.connector,
                parser=self.parser,
                commit_interval=sqlite_config['commit_interval'],
                progress_interval=sqlite_config['progress_interval'],
            )
            return self.writer.import_lines(lines)
        finally:
            self.connector.close()

    def parse_single_log(self, log_line: str) -> Dict[str, str]:
        """Parse a single log line (for CLI mode)."""
        return self.parser.parse(log_line)


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog='auditliner',
        description="AuditLiner - import key=value audit logs into SQLite",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Import into an auto-named database in the current directory
  auditliner hdfs-audit.log

  # Import into a given database, committing every 100000 records
  auditliner -d audit.db --commit-interval 100000 hdfs-audit.log.gz

  # Parse a single log line
  auditliner --parse "2024-01-01 10:00:00,123 allowed=true ugi=alice cmd=open src=/a"
        """
    )

    parser.add_argument(
        "logfile",
        nargs="?",
        help="Audit log file to import ('-' reads standard input)"
    )

    parser.add_argument(
        "-d", "--database",
        help="SQLite database to create or append to (default: <logfile>-<timestamp>.db)"
    )

    parser.add_argument(
        "--config",
        help="Path to an INI or YAML configuration file"
    )

    parser.add_argument(
        "--table",
        help="Table name (default: audit)"
    )

    parser.add_argument(
        "--commit-interval",
        type=int,
        metavar="N",
        help="Commit every N records (default: once at the end)"
    )

    parser.add_argument(
        "--progress-interval",
        type=int,
        metavar="N",
        help="Report progress every N records (default: 1000000)"
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--parse",
        metavar="LINE",
        help="Parse a single log line, print it as JSON and exit"
    )

    parser.add_argument(
        "--create-sample-config",
        metavar="PATH",
        help="Create sample INI configuration file at specified path"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"AuditLiner {__version__}"
    )

    args = parser.parse_args(argv)

    for option in ('commit_interval', 'progress_interval'):
        value = getattr(args, option)
        if value is not None and value < 0:
            parser.error(f"--{option.replace('_', '-')} must not be negative")

    # Handle special commands
    if args.create_sample_config:
        create_sample_config(args.create_sample_config)
        return 0

    if args.parse is None and not args.logfile and not args.config:
        parser.error("a log file is required unless using --config, --parse or --create-sample-config")

    overrides = {
        'sqlite': {
            'database': args.database,
            'table': args.table,
            'commit_interval': args.commit_interval,
            'progress_interval': args.progress_interval,
        },
        'logging': {
            'level': args.log_level,
        },
    }

    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        app = AuditLinerApp(args.config, overrides)

        if args.parse is not None:
            # CLI mode - parse single log
            print(json.dumps(app.parse_single_log(args.parse), indent=2))
            return 0

        count = app.run(args.logfile)
        print(f"[INFO] Imported {count} records into {app.config['sqlite']['database']}")
        return 0

    except KeyboardInterrupt:
        print("[ERROR] Import interrupted", file=sys.stderr)
        return 130
    except (AuditLinerError, OSError) as e:
        logging.getLogger(__name__).error(f"Import failed: {e}")
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
