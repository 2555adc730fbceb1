"""
Tests unitarios para el destino local
=====================================

Escritura del archivo, marca de éxito y política de retención.
"""

import logging
import os
import shutil
import tempfile
import time
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from actual_backup.errors import ConfigError
from actual_backup.exporters.local import (
    SUCCESS_MARKER_NAME,
    LocalDestination,
    prune_local_backups,
    read_success_marker,
    write_success_marker,
)

LOGGER = logging.getLogger("test.local_exporter")


class TestLocalExporter(unittest.TestCase):
    """Tests para LocalDestination y la retención."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp(prefix="actual_local_test_")
        self.output_dir = os.path.join(self.temp_dir, "backups")
        os.makedirs(self.output_dir)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _create_backup(self, name, moment):
        path = os.path.join(self.output_dir, name)
        with open(path, "wb") as f:
            f.write(b"zip")
        timestamp = moment.timestamp()
        os.utime(path, (timestamp, timestamp))
        return path

    def test_store_writes_file_and_marker(self):
        destination = LocalDestination(
            {"enabled": True, "output_dir": self.output_dir, "retention_count": 0}
        )

        before = int(time.time())
        location = destination.store(b"archive", "budget-ts.zip", LOGGER)

        self.assertEqual(location, os.path.join(self.output_dir, "budget-ts.zip"))
        with open(location, "rb") as f:
            self.assertEqual(f.read(), b"archive")

        marker = os.path.join(self.temp_dir, SUCCESS_MARKER_NAME)
        self.assertTrue(os.path.isfile(marker))
        self.assertGreaterEqual(read_success_marker(self.output_dir), before)

    def test_store_overwrites_same_name(self):
        destination = LocalDestination({"enabled": True, "output_dir": self.output_dir})

        destination.store(b"first", "same.zip", LOGGER)
        destination.store(b"second", "same.zip", LOGGER)

        with open(os.path.join(self.output_dir, "same.zip"), "rb") as f:
            self.assertEqual(f.read(), b"second")

    def test_store_creates_missing_output_dir(self):
        output_dir = os.path.join(self.temp_dir, "nested", "out")
        destination = LocalDestination({"enabled": True, "output_dir": output_dir})

        destination.store(b"zip", "a.zip", LOGGER)

        self.assertTrue(os.path.isfile(os.path.join(output_dir, "a.zip")))

    def test_validate_requires_output_dir(self):
        with self.assertRaises(ConfigError):
            LocalDestination({"enabled": True, "output_dir": ""}).validate(LOGGER)

    def test_marker_absent_reads_zero(self):
        self.assertEqual(read_success_marker(self.output_dir), 0)

    @patch("actual_backup.exporters.local.current_epoch_seconds", return_value=1700000000)
    def test_marker_contains_epoch_seconds(self, _mock_now):
        marker_path = write_success_marker(self.output_dir)

        with open(marker_path) as f:
            self.assertEqual(f.read(), "1700000000")

    def test_prune_keeps_newest_by_count(self):
        now = datetime.now(timezone.utc)
        for index in range(5):
            self._create_backup(f"b{index}.zip", now - timedelta(minutes=10 * (5 - index)))

        removed = prune_local_backups(self.output_dir, 2, 0, LOGGER)

        self.assertEqual(sorted(removed), ["b0.zip", "b1.zip", "b2.zip"])
        self.assertEqual(sorted(os.listdir(self.output_dir)), ["b3.zip", "b4.zip"])

    def test_prune_keeps_newest_of_each_week(self):
        base = datetime(2024, 3, 20, 12, tzinfo=timezone.utc)
        self._create_backup("w0-new.zip", base)
        self._create_backup("w0-old.zip", base - timedelta(hours=1))
        self._create_backup("w1-new.zip", base - timedelta(days=7))
        self._create_backup("w1-old.zip", base - timedelta(days=7, hours=1))
        self._create_backup("w2-new.zip", base - timedelta(days=14))

        prune_local_backups(self.output_dir, 1, 2, LOGGER)

        self.assertEqual(
            sorted(os.listdir(self.output_dir)), ["w0-new.zip", "w1-new.zip"]
        )

    def test_prune_without_policy_keeps_everything(self):
        now = datetime.now(timezone.utc)
        for index in range(3):
            self._create_backup(f"b{index}.zip", now - timedelta(minutes=index))

        self.assertEqual(prune_local_backups(self.output_dir, 0, 0, LOGGER), [])
        self.assertEqual(len(os.listdir(self.output_dir)), 3)

    def test_prune_ignores_non_zip_files(self):
        now = datetime.now(timezone.utc)
        self._create_backup("old.zip", now - timedelta(hours=2))
        self._create_backup("new.zip", now)
        with open(os.path.join(self.output_dir, "notes.txt"), "w") as f:
            f.write("keep me")

        prune_local_backups(self.output_dir, 1, 0, LOGGER)

        self.assertEqual(sorted(os.listdir(self.output_dir)), ["new.zip", "notes.txt"])

    def test_prune_deletion_failure_is_a_warning(self):
        now = datetime.now(timezone.utc)
        self._create_backup("old.zip", now - timedelta(hours=2))
        self._create_backup("new.zip", now)

        with patch("actual_backup.exporters.local.os.remove", side_effect=OSError("busy")):
            with self.assertLogs(LOGGER, level="WARNING"):
                removed = prune_local_backups(self.output_dir, 1, 0, LOGGER)

        self.assertEqual(removed, [])


if __name__ == "__main__":
    unittest.main()
