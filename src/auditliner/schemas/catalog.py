"""
Column catalog for audit log tables.
Defines the fixed set of recognised columns and the table DDL built from it.
"""

from typing import FrozenSet, Iterable, Tuple

# Synthetic column filled from the leading timestamp of each line
TIME_COLUMN = 'time'

# Recognised columns, in table order
COLUMNS: Tuple[str, ...] = (
    TIME_COLUMN,
    'allowed',
    'ugi',
    'ip',
    'cmd',
    'options',
    'src',
    'dst',
    'perm',
    'proto',
)

KNOWN_COLUMNS: FrozenSet[str] = frozenset(COLUMNS)

DEFAULT_TABLE = 'audit'

COLUMN_TYPE = 'TEXT'


def is_known_column(name: str) -> bool:
    """Case-sensitive membership test against the catalog."""
    return name in KNOWN_COLUMNS


def sorted_columns(columns: Iterable[str]) -> Tuple[str, ...]:
    """
    Normalize a column collection into its column combination.

    Args:
        columns: Column names in any order, possibly repeated

    Returns:
        Sorted tuple of distinct column names
    """
    return tuple(sorted(set(columns)))


def column_key(columns: Iterable[str]) -> str:
    """
    Build the statement cache key for a set of columns.

    The columns are sorted before joining so that two records with the
    same keys in a different token order share one key.
    """
    return ','.join(sorted_columns(columns))


def quote_identifier(name: str) -> str:
    """Quote an SQL identifier for SQLite."""
    return '"' + name.replace('"', '""') + '"'


def create_table_sql(table: str = DEFAULT_TABLE) -> str:
    """
    Get the CREATE TABLE statement for the audit table.

    Args:
        table: Table name

    Returns:
        DDL creating the table with one TEXT column per catalog entry
    """
    column_defs = ', '.join(f"{quote_identifier(column)} {COLUMN_TYPE}" for column in COLUMNS)
    return f"CREATE TABLE IF NOT EXISTS {quote_identifier(table)} ({column_defs})"
