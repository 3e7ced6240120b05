"""
File input handler for reading audit logs.
Supports plain and gzip-compressed files as well as standard input.
"""

import gzip
import io
import os
import sys
from typing import IO, Iterator, Optional
import logging

STDIN_PATH = '-'


class FileInput:
    """Line source over a single log file."""

    def __init__(self, file_path: str, encoding: str = 'utf-8'):
        """
        Initialize file input.

        Args:
            file_path: Path to the log file, '-' for standard input
            encoding: Text encoding, undecodable bytes are replaced
        """
        self.file_path = file_path
        self.encoding = encoding
        self.line_number = 0

        # Setup logging
        self.logger = logging.getLogger(__name__)

    def _open(self) -> IO[str]:
        """Open the file in text mode, decompressing .gz files."""
        if self.file_path.endswith('.gz'):
            return gzip.open(self.file_path, 'rt', encoding=self.encoding, errors='replace')
        return open(self.file_path, 'r', encoding=self.encoding, errors='replace')

    def __iter__(self) -> Iterator[str]:
        """
        Yield every line of the file without its line terminator.

        Empty lines are yielded as well; the parser turns them into
        time-only records like any other line.
        """
        if self.file_path == STDIN_PATH:
            self.logger.info("Reading audit log from standard input")
            stream = io.TextIOWrapper(sys.stdin.buffer, encoding=self.encoding, errors='replace')
            try:
                yield from self._read(stream)
            finally:
                # Leave sys.stdin's buffer open
                stream.detach()
            return

        self.check_exists()

        self.logger.info(f"Reading audit log from {self.file_path}")
        with self._open() as file_handle:
            yield from self._read(file_handle)

        self.logger.info(f"Finished reading {self.line_number} lines from {self.file_path}")

    def check_exists(self):
        """Raise FileNotFoundError unless the log file exists; standard input always does."""
        if self.file_path != STDIN_PATH and not os.path.exists(self.file_path):
            raise FileNotFoundError(f"Log file not found: {self.file_path}")

    def _read(self, file_handle: IO[str]) -> Iterator[str]:
        for line in file_handle:
            self.line_number += 1
            yield line.rstrip('\r\n')

    @property
    def stem(self) -> Optional[str]:
        """File name without directory and extensions, None for standard input."""
        if self.file_path == STDIN_PATH:
            return None
        name = os.path.basename(self.file_path)
        if name.endswith('.gz'):
            name = name[:-3]
        return os.path.splitext(name)[0] or name
