"""
SQLite connector for AuditLiner.
Owns the database connection and the per-connection statement caches.
"""

import os
import sqlite3
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from ..errors import ExecuteError, StatementPrepareError, StoreConnectionError
from ..schemas.catalog import (
    DEFAULT_TABLE,
    column_key,
    create_table_sql,
    is_known_column,
    quote_identifier,
    sorted_columns,
)


class PreparedStatement:
    """A compiled INSERT for one column combination."""

    def __init__(self, sql: str, columns: Tuple[str, ...], cursor: sqlite3.Cursor):
        self.sql = sql
        self.columns = columns
        self.cursor = cursor

    def bind(self, record: Dict[str, str]) -> Tuple[str, ...]:
        """Order a record's values to match this statement's placeholders."""
        return tuple(record[column] for column in self.columns)

    def __repr__(self):
        return f"PreparedStatement({column_key(self.columns)!r})"


class SQLiteConnector:
    """Connector writing audit records into a SQLite table."""

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize SQLite connector and open the database.

        Args:
            config: SQLite configuration (database, table, timeout,
                journal_mode, synchronous)
        """
        self.config = config
        self.database = config.get('database') or ':memory:'
        self.table = config.get('table') or DEFAULT_TABLE
        self.timeout = config.get('timeout', 30)
        self.journal_mode = config.get('journal_mode')
        self.synchronous = config.get('synchronous')

        self.connection: Optional[sqlite3.Connection] = None

        # Both caches are only valid for self.connection
        self.statements: Dict[str, PreparedStatement] = {}
        self.placeholders: Dict[int, str] = {}

        # Setup logging
        self.logger = logging.getLogger(__name__)

        self._connect()

    def _connect(self):
        """Open the database, creating its file and parent directory if needed."""
        try:
            if self.database != ':memory:':
                parent = os.path.dirname(os.path.abspath(self.database))
                os.makedirs(parent, exist_ok=True)

            self.connection = sqlite3.connect(self.database, timeout=self.timeout)

            if self.journal_mode:
                self.connection.execute(f"PRAGMA journal_mode={self.journal_mode}")
            if self.synchronous:
                self.connection.execute(f"PRAGMA synchronous={self.synchronous}")

        except (sqlite3.Error, OSError) as e:
            self.connection = None
            raise StoreConnectionError(f"Failed to open database {self.database}: {e}") from e

        self.logger.info(f"Opened SQLite database: {self.database}")

    def create_table(self):
        """Create the audit table if the database does not have it yet."""
        try:
            self.connection.execute(create_table_sql(self.table))
            self.connection.commit()
        except sqlite3.Error as e:
            raise StoreConnectionError(f"Failed to create table {self.table}: {e}") from e

        self.logger.info(f"Table ready: {self.table}")

    def placeholders_for(self, count: int) -> str:
        """
        Get the positional placeholder list for a parameter count.

        Args:
            count: Number of parameters

        Returns:
            String like '?, ?, ?'
        """
        placeholders = self.placeholders.get(count)
        if placeholders is None:
            placeholders = ', '.join(['?'] * count)
            self.placeholders[count] = placeholders
        return placeholders

    def build_insert_sql(self, columns: Sequence[str]) -> str:
        """Build the INSERT statement for an already sorted column combination."""
        column_list = ', '.join(quote_identifier(column) for column in columns)
        return (
            f"INSERT INTO {quote_identifier(self.table)} ({column_list}) "
            f"VALUES ({self.placeholders_for(len(columns))})"
        )

    def prepare(self, sql: str, columns: Tuple[str, ...]) -> PreparedStatement:
        """
        Compile an INSERT statement against the open connection.

        The SQL is compiled once through EXPLAIN so that a malformed
        statement fails here rather than on the first row.

        Args:
            sql: INSERT statement with one placeholder per column
            columns: Columns in placeholder order

        Returns:
            Prepared statement bound to its own cursor
        """
        if not sqlite3.complete_statement(sql + ';'):
            raise StatementPrepareError(f"Incomplete SQL statement: {sql}")

        try:
            self.connection.execute(f"EXPLAIN {sql}", [None] * len(columns)).fetchall()
            cursor = self.connection.cursor()
        except sqlite3.Error as e:
            raise StatementPrepareError(f"Failed to prepare '{sql}': {e}") from e

        return PreparedStatement(sql, columns, cursor)

    def get_statement(self, columns: Iterable[str]) -> PreparedStatement:
        """
        Get the cached INSERT statement for a column combination.

        The columns are sorted before lookup, so any ordering of the same
        set returns the same statement object for the life of the
        connection. A new combination is compiled once and cached.

        Args:
            columns: Column names present in a record

        Returns:
            Prepared statement for the sorted combination
        """
        columns = sorted_columns(columns)
        key = column_key(columns)

        statement = self.statements.get(key)
        if statement is not None:
            return statement

        unknown = [column for column in columns if not is_known_column(column)]
        if unknown:
            raise StatementPrepareError(f"Unknown columns: {', '.join(unknown)}")

        statement = self.prepare(self.build_insert_sql(columns), columns)
        self.statements[key] = statement
        self.logger.debug(f"Compiled statement #{len(self.statements)} for columns: {key}")

        return statement

    @property
    def statement_count(self) -> int:
        """Number of distinct column combinations compiled so far."""
        return len(self.statements)

    def cached_combinations(self) -> List[str]:
        """Get the cache keys of all compiled statements."""
        return sorted(self.statements)

    def execute(self, statement: PreparedStatement, values: Sequence[str]):
        """
        Bind values to a prepared statement and execute it.

        Args:
            statement: Statement from get_statement
            values: Values in the statement's column order
        """
        try:
            statement.cursor.execute(statement.sql, values)
        except sqlite3.Error as e:
            raise ExecuteError(f"Insert failed: {e}") from e

    def insert(self, record: Dict[str, str]) -> PreparedStatement:
        """
        Insert one parsed record.

        Args:
            record: Mapping of column name to value

        Returns:
            Statement used for the insert
        """
        statement = self.get_statement(record)
        self.execute(statement, statement.bind(record))
        return statement

    def commit(self):
        """Commit the open transaction."""
        try:
            self.connection.commit()
        except sqlite3.Error as e:
            raise ExecuteError(f"Commit failed: {e}") from e

    def rollback(self):
        """Roll back everything since the last commit."""
        if self.connection is not None:
            self.connection.rollback()

    def count_rows(self) -> int:
        """Count rows currently visible in the audit table."""
        cursor = self.connection.execute(f"SELECT COUNT(*) FROM {quote_identifier(self.table)}")
        return cursor.fetchone()[0]

    def close(self):
        """Close the connection, discarding uncommitted rows and the caches."""
        if self.connection is None:
            return

        for statement in self.statements.values():
            statement.cursor.close()
        self.statements.clear()
        self.placeholders.clear()

        if self.connection.in_transaction:
            self.logger.warning("Closing database with an open transaction, rolling back")
            self.connection.rollback()

        self.connection.close()
        self.connection = None
        self.logger.info("SQLite connector closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
