"""
Batch writer for AuditLiner.
Drives the line parser over an input and writes every record through the connector.
"""

import sqlite3
from enum import Enum
from typing import Callable, Iterable, Optional
import logging

from .connectors.sqlite import SQLiteConnector
from .errors import ExecuteError, WriterStateError
from .parsers.audit_parser import AuditLineParser

DEFAULT_PROGRESS_INTERVAL = 1000000


class WriterState(Enum):
    """Lifecycle of a BatchWriter."""

    IDLE = 'idle'
    IMPORTING = 'importing'
    COMMITTED = 'committed'
    ABORTED = 'aborted'


class BatchWriter:
    """Imports audit lines into SQLite in a single pass."""

    def __init__(
        self,
        connector: SQLiteConnector,
        parser: Optional[AuditLineParser] = None,
        commit_interval: int = 0,
        progress_interval: int = DEFAULT_PROGRESS_INTERVAL,
        progress_callback: Optional[Callable[[int], None]] = None,
    ):
        """
        Initialize batch writer.

        Args:
            connector: Open SQLite connector with its table created
            parser: Line parser, a default AuditLineParser if omitted
            commit_interval: Commit every N records, 0 commits once at the end
            progress_interval: Report progress every N records, 0 disables
            progress_callback: Called with the record count at each milestone
        """
        if commit_interval < 0:
            raise ValueError("commit_interval must not be negative")
        if progress_interval < 0:
            raise ValueError("progress_interval must not be negative")

        self.connector = connector
        self.parser = parser or AuditLineParser()
        self.commit_interval = commit_interval
        self.progress_interval = progress_interval
        self.progress_callback = progress_callback

        self.state = WriterState.IDLE
        self.records = 0
        self.committed_records = 0
        self.commits = 0

        # Setup logging
        self.logger = logging.getLogger(__name__)

    def import_lines(self, lines: Iterable[str]) -> int:
        """
        Parse and insert every line, then commit.

        Any insert or commit failure rolls back the open transaction and
        is re-raised; there is no skip-and-continue. Records committed at
        an earlier commit_interval boundary stay in the database. The
        final commit is skipped when the last boundary already covered
        every record.

        Args:
            lines: Raw log lines in file order

        Returns:
            Number of records inserted
        """
        if self.state is not WriterState.IDLE:
            raise WriterStateError(f"Cannot start an import in state '{self.state.value}'")

        self.state = WriterState.IMPORTING
        line_number = 0

        try:
            for line_number, line in enumerate(lines, start=1):
                record = self.parser.parse(line)
                try:
                    self.connector.insert(record)
                except ExecuteError as e:
                    e.line_number = line_number
                    raise

                self.records += 1

                if self.commit_interval and self.records % self.commit_interval == 0:
                    self._commit()

                if self.progress_interval and self.records % self.progress_interval == 0:
                    self._report_progress()

            if self.records != self.committed_records:
                self._commit()

        except (Exception, KeyboardInterrupt):
            self._abort(line_number)
            raise

        self.state = WriterState.COMMITTED
        self.logger.info(f"Import complete: {self.records} records, "
                         f"{self.connector.statement_count} column combinations, {self.commits} commits")

        return self.records

    def _commit(self):
        """Commit records written since the last commit."""
        self.connector.commit()
        self.commits += 1
        self.committed_records = self.records
        self.logger.debug(f"Committed at {self.records} records")

    def _report_progress(self):
        """Emit a progress milestone."""
        self.logger.info(f"Imported {self.records} records")
        if self.progress_callback:
            self.progress_callback(self.records)

    def _abort(self, line_number: int):
        """Roll back the open transaction and mark the import as aborted."""
        self.state = WriterState.ABORTED
        self.logger.error(f"Import aborted at line {line_number} after {self.records} records")
        try:
            self.connector.rollback()
        except sqlite3.Error as e:
            # The original failure is what gets re-raised
            self.logger.error(f"Rollback failed: {e}")
