"""
Tests unitarios para el gestor de configuración
===============================================

Carga y validación del YAML, valores por defecto y parseo de objetivos.
"""

import os
import shutil
import tempfile
import unittest

from actual_backup.classes.config_manager import ConfigManager
from actual_backup.classes.models import SyncTarget
from actual_backup.errors import ConfigError
from test.utils.budget_helper import write_config


class TestConfigManager(unittest.TestCase):
    """Tests para ConfigManager."""

    def setUp(self):
        """Configuración inicial para cada test."""
        self.temp_dir = tempfile.mkdtemp(prefix="actual_config_test_")
        self.base = {
            "actual": {
                "server_url": "http://localhost:5006",
                "password": "secret",
                "sync_id": "sync-main",
            }
        }

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _load(self, data, name="backup"):
        return ConfigManager(write_config(self.temp_dir, data, name))

    def test_minimal_config_fills_defaults(self):
        """Una configuración mínima recibe todos los valores por defecto."""
        config = self._load(self.base, name="home")

        self.assertEqual(config.get_config_name(), "home")
        self.assertEqual(config.get_schedule(), "0 0 * * 1")
        self.assertEqual(config.get_budget_dir(), "/app/data/budget")
        self.assertEqual(config.get_token_store_path(), "/app/data/tokens")

        local = config.get_local_config()
        self.assertTrue(local["enabled"])
        self.assertEqual(local["output_dir"], "/app/data/backups")
        self.assertEqual(local["retention_count"], 4)
        self.assertEqual(local["retention_weeks"], 0)

        self.assertFalse(config.get_google_drive_config()["enabled"])
        self.assertEqual(config.get_google_drive_config()["mode"], "service-account")
        self.assertEqual(config.get_s3_config()["prefix"], "")
        self.assertEqual(config.get_dropbox_config()["base_path"], "/Actual-Backups")
        self.assertEqual(config.get_webdav_config()["base_path"], "/actual-backups")
        self.assertEqual(config.get_log_level(), "INFO")

    def test_destinations_config_in_dispatch_order(self):
        config = self._load(self.base)

        self.assertEqual(
            list(config.get_destinations_config()),
            ["local", "google_drive", "s3", "dropbox", "webdav"],
        )

    def test_primary_sync_id_becomes_single_target(self):
        config = self._load(self.base)

        self.assertEqual(config.get_sync_targets(), [SyncTarget("sync-main")])

    def test_sync_targets_accept_all_entry_forms(self):
        """Acepta 'syncId', 'budgetId:syncId' y diccionarios."""
        self.base["actual"]["sync_targets"] = [
            "sync-a",
            "Budget-B:sync-b",
            {"sync_id": "sync-c", "budget_id": "Budget-C"},
            {"sync_id": "sync-d"},
        ]
        config = self._load(self.base)

        self.assertEqual(
            config.get_sync_targets(),
            [
                SyncTarget("sync-a"),
                SyncTarget("sync-b", "Budget-B"),
                SyncTarget("sync-c", "Budget-C"),
                SyncTarget("sync-d"),
            ],
        )

    def test_sync_targets_are_deduplicated(self):
        self.base["actual"]["sync_targets"] = [
            "sync-a",
            " sync-a ",
            "Budget-B:sync-a",
            {"sync_id": "sync-a", "budget_id": "Budget-B"},
        ]
        config = self._load(self.base)

        self.assertEqual(
            config.get_sync_targets(),
            [SyncTarget("sync-a"), SyncTarget("sync-a", "Budget-B")],
        )

    def test_incomplete_budget_sync_pair_is_rejected(self):
        self.base["actual"]["sync_targets"] = ["Budget-B:"]

        with self.assertRaises(ConfigError):
            self._load(self.base)

    def test_missing_sync_id_and_targets_is_rejected(self):
        del self.base["actual"]["sync_id"]

        with self.assertRaises(ConfigError) as ctx:
            self._load(self.base)
        self.assertIn("sync_id", str(ctx.exception))

    def test_invalid_server_url_is_rejected(self):
        self.base["actual"]["server_url"] = "not-a-url"

        with self.assertRaises(ConfigError):
            self._load(self.base)

    def test_invalid_cron_is_rejected(self):
        self.base["schedule"] = {"cron": "every monday"}

        with self.assertRaises(ConfigError) as ctx:
            self._load(self.base)
        self.assertIn("cron", str(ctx.exception))

    def test_invalid_google_drive_mode_is_rejected(self):
        self.base["google_drive"] = {"enabled": True, "mode": "magic"}

        with self.assertRaises(ConfigError):
            self._load(self.base)

    def test_negative_retention_is_rejected(self):
        self.base["local"] = {"retention_count": -1}

        with self.assertRaises(ConfigError):
            self._load(self.base)

    def test_partial_section_keeps_other_defaults(self):
        self.base["s3"] = {"enabled": True, "bucket": "backups", "prefix": "actual/"}
        config = self._load(self.base)

        s3 = config.get_s3_config()
        self.assertTrue(s3["enabled"])
        self.assertEqual(s3["bucket"], "backups")
        self.assertEqual(s3["prefix"], "actual/")
        self.assertFalse(s3["force_path_style"])

    def test_relative_paths_resolved_against_cwd(self):
        self.base["local"] = {"output_dir": "data/backups"}
        config = self._load(self.base)

        self.assertEqual(
            config.get_local_config()["output_dir"],
            os.path.join(os.getcwd(), "data/backups"),
        )

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            ConfigManager(os.path.join(self.temp_dir, "missing.yaml"))

    def test_empty_file(self):
        path = os.path.join(self.temp_dir, "empty.yaml")
        open(path, "w").close()

        with self.assertRaises(ConfigError):
            ConfigManager(path)

    def test_invalid_yaml(self):
        path = os.path.join(self.temp_dir, "broken.yaml")
        with open(path, "w") as f:
            f.write("actual: [unclosed\n")

        with self.assertRaises(ConfigError):
            ConfigManager(path)


if __name__ == "__main__":
    unittest.main()
