"""
Tests unitarios para BackupOrchestrator
=======================================

Cubre la asignación de etiquetas, el ciclo de vida de la sesión remota,
el orden de los objetivos y la marca de éxito sin destino local.
"""

import os
import unittest
from unittest.mock import patch

import pytest

from actual_backup.classes.backup_orchestrator import BackupOrchestrator, LabelAllocator
from actual_backup.classes.config_manager import ConfigManager
from actual_backup.classes.models import SyncTarget
from actual_backup.errors import ConfigError, SyncError
from test.utils.budget_helper import FakeBudgetService, build_config_data, write_config


class TestLabelAllocator(unittest.TestCase):
    """Tests para LabelAllocator."""

    def setUp(self):
        self.labels = LabelAllocator()

    def test_first_label_is_sanitized_display_name(self):
        label = self.labels.allocate("Main Budget", SyncTarget("sync-a"))

        self.assertEqual(label, "Main-Budget")
        self.assertIn("Main-Budget", self.labels)

    def test_collision_appends_distinguishing_id(self):
        self.labels.allocate("Main Budget", SyncTarget("sync-a"))

        label = self.labels.allocate("Main Budget", SyncTarget("sync-b"))

        self.assertEqual(label, "Main-Budget-sync-b")

    def test_collision_prefers_budget_id(self):
        self.labels.allocate("Main Budget", SyncTarget("sync-a"))

        label = self.labels.allocate("Main Budget", SyncTarget("sync-b", "family"))

        self.assertEqual(label, "Main-Budget-family")

    def test_repeated_collision_appends_counter(self):
        target = SyncTarget("sync-b")
        self.labels.allocate("Main", SyncTarget("sync-a"))
        self.labels.allocate("Main", target)

        self.assertEqual(self.labels.allocate("Main", target), "Main-sync-b-2")
        self.assertEqual(self.labels.allocate("Main", target), "Main-sync-b-3")
        self.assertEqual(len(self.labels), 4)

    def test_missing_display_name_uses_fallback(self):
        self.assertEqual(self.labels.allocate(None, SyncTarget("sync-a")), "budget")


class TestBackupOrchestrator(unittest.TestCase):
    """Tests para BackupOrchestrator."""

    @pytest.fixture(autouse=True)
    def _use_workspace(self, workspace):
        self.workspace = workspace

    def setUp(self):
        self.service = FakeBudgetService(
            {
                "sync-a": {"local_id": "local-a", "name": "Main Budget"},
                "sync-b": {"local_id": "local-b", "name": "Main Budget"},
                "sync-c": {"local_id": "local-c", "name": "Side"},
            }
        )

    def _orchestrator(self, **sections):
        data = build_config_data(self.workspace, **sections)
        config = ConfigManager(write_config(self.workspace["root"], data))
        return BackupOrchestrator(config, session_factory=lambda: self.service)

    def _output_files(self):
        return sorted(os.listdir(self.workspace["output_dir"]))

    def test_run_all_processes_targets_in_order(self):
        orchestrator = self._orchestrator(
            actual={"sync_targets": ["sync-a", "sync-c"]}
        )

        stats = orchestrator.run_all()

        self.assertEqual(stats["targets_total"], 2)
        self.assertEqual(stats["targets_processed"], 2)
        self.assertEqual([a["sync_id"] for a in stats["archives"]], ["sync-a", "sync-c"])
        self.assertEqual([a["local_id"] for a in stats["archives"]], ["local-a", "local-c"])
        self.assertEqual(self.service.loaded, ["local-a", "local-c"])
        self.assertEqual(self.service.shutdown_calls, 2)
        self.assertIn("local", stats["archives"][0]["destinations"])

    def test_same_display_name_gets_distinct_labels(self):
        orchestrator = self._orchestrator(
            actual={"sync_targets": ["sync-a", "sync-b"]}
        )

        stats = orchestrator.run_all()

        labels = [a["label"] for a in stats["archives"]]
        self.assertEqual(labels, ["Main-Budget", "Main-Budget-sync-b"])
        files = self._output_files()
        self.assertEqual(len(files), 2)
        self.assertTrue(files[0].startswith("Main-Budget-"))

    def test_invalid_destination_aborts_before_download(self):
        orchestrator = self._orchestrator(
            actual={"sync_targets": ["sync-a", "sync-c"]}, s3={"enabled": True}
        )

        with self.assertRaises(ConfigError):
            orchestrator.run_all()

        self.assertEqual(self.service.calls, [])
        self.assertEqual(self.service.loaded, [])
        self.assertEqual(self.service.shutdown_calls, 0)

    def test_first_failure_stops_remaining_targets(self):
        orchestrator = self._orchestrator(
            actual={"sync_targets": ["sync-a", "missing", "sync-c"]}
        )

        with self.assertRaises(SyncError):
            orchestrator.run_all()

        self.assertEqual(self.service.loaded, ["local-a"])
        self.assertEqual(len(self._output_files()), 1)
        # La sesión del objetivo fallido también se cierra
        self.assertEqual(self.service.shutdown_calls, 2)

    def test_shutdown_error_is_swallowed(self):
        orchestrator = self._orchestrator(actual={"sync_id": "sync-a"})

        with patch.object(self.service, "shutdown", side_effect=RuntimeError("boom")):
            with self.assertLogs(
                "actual_backup.classes.backup_orchestrator.main", level="WARNING"
            ) as logs:
                stats = orchestrator.run_all()

        self.assertEqual(stats["targets_processed"], 1)
        self.assertIn("Failed to shutdown remote session cleanly", "\n".join(logs.output))

    def test_marker_written_without_local_destination(self):
        orchestrator = self._orchestrator(
            actual={"sync_id": "sync-a"},
            local={"enabled": False},
        )

        stats = orchestrator.run_all()

        self.assertEqual(stats["archives"][0]["destinations"], {})
        marker = os.path.join(os.path.dirname(self.workspace["output_dir"]), ".last-success")
        self.assertTrue(os.path.isfile(marker))
        self.assertFalse(os.path.isdir(self.workspace["output_dir"]))

    def test_no_marker_when_target_fails(self):
        orchestrator = self._orchestrator(
            actual={"sync_id": "missing"},
            local={"enabled": False},
        )

        with self.assertRaises(SyncError):
            orchestrator.run_all()

        marker = os.path.join(os.path.dirname(self.workspace["output_dir"]), ".last-success")
        self.assertFalse(os.path.exists(marker))

    def test_explicit_targets_override_config(self):
        orchestrator = self._orchestrator()

        stats = orchestrator.run_all([SyncTarget("sync-c")])

        self.assertEqual([a["label"] for a in stats["archives"]], ["Side"])


if __name__ == "__main__":
    unittest.main()
