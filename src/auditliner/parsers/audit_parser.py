"""
Audit log line parser for AuditLiner.
Splits a line into its timestamp and the key=value tokens of known columns.
"""

import re
from typing import Dict, FrozenSet, Optional

from ..schemas.catalog import KNOWN_COLUMNS, TIME_COLUMN


class AuditLineParser:
    """Parser for whitespace-delimited key=value audit lines."""

    # Non-greedy key: values may themselves contain '='
    TOKEN_PATTERN = re.compile(r'^(.+?)=(.*)$')

    def __init__(self, known_columns: Optional[FrozenSet[str]] = None):
        """
        Initialize audit line parser.

        Args:
            known_columns: Columns to keep, defaults to the full catalog
        """
        self.known_columns = frozenset(known_columns) if known_columns is not None else KNOWN_COLUMNS

    def parse(self, log_line: str) -> Dict[str, str]:
        """
        Parse one audit line into a record.

        The first two tokens form the timestamp, cut at the first comma
        (dropping the milliseconds). Every other token of the form
        key=value is kept when key is a known column. Unknown keys and
        free text are dropped. A repeated key keeps its last value.

        Args:
            log_line: Raw log line

        Returns:
            Record mapping column name to raw string value, always with 'time'
        """
        tokens = log_line.split()

        timestamp = ' '.join(tokens[:2]).split(',', 1)[0]
        record = {TIME_COLUMN: timestamp}

        for token in tokens[2:]:
            match = self.TOKEN_PATTERN.match(token)
            if not match:
                continue

            key, value = match.groups()
            if key == TIME_COLUMN or key not in self.known_columns:
                continue

            record[key] = value

        return record
