import sqlite3
import unittest
from unittest import mock

from auditliner.connectors.sqlite import SQLiteConnector
from auditliner.errors import ExecuteError, WriterStateError
from auditliner.importer import BatchWriter, WriterState

SAMPLE_LINES = [
    "2024-01-01 10:00:00,123 allowed=true ugi=alice ip=10.0.0.1 cmd=open src=/a",
    "2024-01-01 10:00:01,456 allowed=false ugi=bob cmd=open dst=/b unknown=zzz",
]

CHECKED_TABLE = (
    "CREATE TABLE audit (time TEXT, allowed TEXT, ugi TEXT, ip TEXT, cmd TEXT CHECK (cmd != 'boom'), "
    "options TEXT, src TEXT, dst TEXT, perm TEXT, proto TEXT)"
)


def numbered_lines(count, failing=None):
    """Build audit lines, with cmd=boom on the failing line number."""
    lines = []
    for number in range(1, count + 1):
        cmd = "boom" if number == failing else "open"
        lines.append(f"2024-01-01 10:00:{number:02d},000 ugi=u{number} cmd={cmd}")
    return lines


class TestBatchWriter(unittest.TestCase):
    def setUp(self):
        self.connector = SQLiteConnector({"database": ":memory:"})

    def tearDown(self):
        self.connector.close()

    def rows(self):
        cursor = self.connector.connection.execute(
            "SELECT time, allowed, ugi, ip, cmd, options, src, dst, perm, proto FROM audit ORDER BY rowid"
        )
        return cursor.fetchall()

    def test_end_to_end(self):
        self.connector.create_table()
        writer = BatchWriter(self.connector)

        count = writer.import_lines(SAMPLE_LINES)

        self.assertEqual(count, 2)
        self.assertEqual(writer.state, WriterState.COMMITTED)
        self.assertEqual(self.rows(), [
            ("2024-01-01 10:00:00", "true", "alice", "10.0.0.1", "open", None, "/a", None, None, None),
            ("2024-01-01 10:00:01", "false", "bob", None, "open", None, None, "/b", None, None),
        ])
        self.assertEqual(self.connector.statement_count, 2)
        self.assertEqual(self.connector.cached_combinations(), [
            "allowed,cmd,dst,time,ugi",
            "allowed,cmd,ip,src,time,ugi",
        ])

    def test_token_order_shares_statement(self):
        self.connector.create_table()
        writer = BatchWriter(self.connector)

        writer.import_lines([
            "2024-01-01 10:00:00,000 ugi=u1 ip=1.2.3.4",
            "2024-01-01 10:00:01,000 ip=5.6.7.8 ugi=u2",
        ])

        self.assertEqual(self.connector.statement_count, 1)
        self.assertEqual([(row[2], row[3]) for row in self.rows()], [("u1", "1.2.3.4"), ("u2", "5.6.7.8")])

    def test_unknown_keys_do_not_change_statement(self):
        self.connector.create_table()
        writer = BatchWriter(self.connector)

        writer.import_lines([
            "2024-01-01 10:00:00,000 cmd=open",
            "2024-01-01 10:00:01,000 cmd=open foo=bar",
        ])

        self.assertEqual(self.connector.cached_combinations(), ["cmd,time"])

    def test_empty_lines_are_inserted(self):
        self.connector.create_table()
        writer = BatchWriter(self.connector)

        self.assertEqual(writer.import_lines(["", "2024-01-01 10:00:00,000"]), 2)
        self.assertEqual([row[0] for row in self.rows()], ["", "2024-01-01 10:00:00"])

    def test_single_commit_by_default(self):
        self.connector.create_table()
        writer = BatchWriter(self.connector)

        writer.import_lines(numbered_lines(5))

        self.assertEqual(writer.commits, 1)
        self.assertEqual(self.connector.count_rows(), 5)

    def test_commit_interval(self):
        self.connector.create_table()
        writer = BatchWriter(self.connector, commit_interval=2)

        writer.import_lines(numbered_lines(5))

        # at 2, at 4 and the final commit
        self.assertEqual(writer.commits, 3)
        self.assertEqual(self.connector.count_rows(), 5)

    def test_no_empty_final_commit(self):
        self.connector.create_table()
        writer = BatchWriter(self.connector, commit_interval=2)

        writer.import_lines(numbered_lines(4))

        self.assertEqual(writer.commits, 2)
        self.assertEqual(self.connector.count_rows(), 4)

    def test_empty_input_commits_nothing(self):
        self.connector.create_table()
        writer = BatchWriter(self.connector)

        self.assertEqual(writer.import_lines([]), 0)
        self.assertEqual(writer.commits, 0)
        self.assertEqual(writer.state, WriterState.COMMITTED)

    def test_rollback_failure_keeps_original_error(self):
        self.connector.connection.execute(CHECKED_TABLE)
        writer = BatchWriter(self.connector)

        with mock.patch.object(self.connector, "rollback", side_effect=sqlite3.OperationalError("disk I/O error")):
            with self.assertLogs("auditliner.importer", level="ERROR") as logs:
                with self.assertRaises(ExecuteError) as ctx:
                    writer.import_lines(numbered_lines(2, failing=2))

        self.assertEqual(ctx.exception.line_number, 2)
        self.assertEqual(writer.state, WriterState.ABORTED)
        self.assertTrue(any("Rollback failed: disk I/O error" in message for message in logs.output))

    def test_failure_rolls_back_everything_without_interval(self):
        self.connector.connection.execute(CHECKED_TABLE)
        writer = BatchWriter(self.connector)

        with self.assertRaises(ExecuteError) as ctx:
            writer.import_lines(numbered_lines(5, failing=3))

        self.assertEqual(ctx.exception.line_number, 3)
        self.assertIn("line 3", str(ctx.exception))
        self.assertEqual(writer.state, WriterState.ABORTED)
        self.assertEqual(self.connector.count_rows(), 0)

    def test_failure_keeps_committed_batches(self):
        self.connector.connection.execute(CHECKED_TABLE)
        writer = BatchWriter(self.connector, commit_interval=2)

        with self.assertRaises(ExecuteError) as ctx:
            writer.import_lines(numbered_lines(5, failing=4))

        self.assertEqual(ctx.exception.line_number, 4)
        self.assertEqual(writer.state, WriterState.ABORTED)
        self.assertEqual(self.connector.count_rows(), 2)

    def test_interrupt_aborts(self):
        self.connector.create_table()
        writer = BatchWriter(self.connector)

        def lines():
            yield from numbered_lines(2)
            raise KeyboardInterrupt

        with self.assertRaises(KeyboardInterrupt):
            writer.import_lines(lines())

        self.assertEqual(writer.state, WriterState.ABORTED)
        self.assertEqual(self.connector.count_rows(), 0)

    def test_writer_cannot_be_reused(self):
        self.connector.create_table()
        writer = BatchWriter(self.connector)
        writer.import_lines(numbered_lines(1))

        with self.assertRaises(WriterStateError):
            writer.import_lines(numbered_lines(1))
        self.assertEqual(writer.state, WriterState.COMMITTED)

    def test_aborted_writer_cannot_be_reused(self):
        self.connector.connection.execute(CHECKED_TABLE)
        writer = BatchWriter(self.connector)
        with self.assertRaises(ExecuteError):
            writer.import_lines(numbered_lines(1, failing=1))

        with self.assertRaises(WriterStateError):
            writer.import_lines(numbered_lines(1))

    def test_progress_reporting(self):
        self.connector.create_table()
        milestones = []
        writer = BatchWriter(self.connector, progress_interval=2, progress_callback=milestones.append)

        with self.assertLogs("auditliner.importer", level="INFO") as logs:
            writer.import_lines(numbered_lines(5))

        self.assertEqual(milestones, [2, 4])
        self.assertTrue(any("Imported 4 records" in message for message in logs.output))
        self.assertTrue(any("Import complete: 5 records" in message for message in logs.output))

    def test_negative_intervals_rejected(self):
        with self.assertRaises(ValueError):
            BatchWriter(self.connector, commit_interval=-1)
        with self.assertRaises(ValueError):
            BatchWriter(self.connector, progress_interval=-1)


if __name__ == "__main__":
    unittest.main()
