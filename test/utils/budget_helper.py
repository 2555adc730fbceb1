"""
Utilidades de testing para presupuestos locales
===============================================

Crea cachés de presupuestos en disco, archivos de configuración y un
servicio remoto simulado con el mismo contrato que ActualServerClient.
"""

import copy
import json
import os
import sqlite3
from typing import Any, Dict, List, Optional

import yaml

from actual_backup.classes.actual_client import RemoteBudgetService
from actual_backup.classes.budget_files import (
    DB_FILE_NAME,
    METADATA_FILE_NAME,
    db_file_path,
    read_metadata,
)
from actual_backup.errors import SyncError


def create_budget_db(path: str, with_cache_tables: bool = True) -> str:
    """
    Crea una base de datos SQLite con datos de presupuesto y tablas de caché.

    Args:
        path: Ruta del archivo a crear
        with_cache_tables: Crear también kvcache y kvcache_key con filas

    Returns:
        str: Ruta creada
    """
    os.makedirs(os.path.dirname(path), exist_ok=True)

    connection = sqlite3.connect(path)
    try:
        connection.execute(
            "CREATE TABLE transactions (id TEXT PRIMARY KEY, amount INTEGER)"
        )
        connection.executemany(
            "INSERT INTO transactions VALUES (?, ?)",
            [("t1", -1250), ("t2", 300000), ("t3", -4599)],
        )
        if with_cache_tables:
            connection.execute("CREATE TABLE kvcache (key TEXT PRIMARY KEY, value TEXT)")
            connection.execute("CREATE TABLE kvcache_key (id INTEGER PRIMARY KEY, key REAL)")
            connection.executemany(
                "INSERT INTO kvcache VALUES (?, ?)",
                [("sheet-1", "cached"), ("sheet-2", "stale")],
            )
            connection.execute("INSERT INTO kvcache_key VALUES (1, 0.5)")
        connection.commit()
    finally:
        connection.close()

    return path


def create_local_budget(
    budget_dir: str,
    local_id: str,
    name: Optional[str] = None,
    budget_id: Optional[str] = None,
    cloud_file_id: Optional[str] = None,
    with_metadata: bool = True,
    with_db: bool = True,
) -> str:
    """
    Crea el directorio de un presupuesto en la caché local.

    Returns:
        str: Ruta de la base de datos
    """
    path = db_file_path(budget_dir, local_id)
    os.makedirs(os.path.dirname(path), exist_ok=True)

    if with_db:
        create_budget_db(path)

    if with_metadata:
        metadata = {"id": local_id, "resetClock": False}
        if name:
            metadata["budgetName"] = name
        if budget_id:
            metadata["budgetId"] = budget_id
        if cloud_file_id:
            metadata["cloudFileId"] = cloud_file_id
        with open(
            os.path.join(os.path.dirname(path), METADATA_FILE_NAME),
            "w",
            encoding="utf-8",
        ) as f:
            json.dump(metadata, f)

    return path


def write_config(directory: str, data: Dict[str, Any], name: str = "backup") -> str:
    """Escribe un archivo YAML de configuración y retorna su ruta."""
    path = os.path.join(directory, f"{name}.yaml")
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f)
    return path


def build_config_data(workspace: Dict[str, str], **sections) -> Dict[str, Any]:
    """
    Construye una configuración completa apuntando al workspace de test.

    Las secciones pasadas por nombre reemplazan o amplían las de base.
    """
    data = {
        "actual": {
            "server_url": "http://localhost:5006",
            "password": "secret",
            "sync_id": "sync-main",
            "budget_dir": workspace["budget_dir"],
        },
        "tokens": {"path": workspace["tokens"]},
        "local": {
            "enabled": True,
            "output_dir": workspace["output_dir"],
            "retention_count": 4,
            "retention_weeks": 0,
        },
        "logging": {
            "log_directory": workspace["logs"],
            "log_level": "DEBUG",
            "log_rotation": {
                "enabled": False,
                "when": "D",
                "interval": 1,
                "backup_count": 1,
            },
        },
    }

    for key, value in sections.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            merged = copy.deepcopy(data[key])
            merged.update(value)
            data[key] = merged
        else:
            data[key] = value

    return data


class FakeBudgetService(RemoteBudgetService):
    """
    Servicio remoto simulado.

    remote_budgets asocia cada sync id con la identidad local que produce
    la descarga, su nombre y su budget_id declarado.
    """

    def __init__(
        self,
        remote_budgets: Dict[str, Dict[str, Any]],
        download_response: Optional[Dict[str, Any]] = None,
    ):
        self.remote_budgets = remote_budgets
        self.download_response = download_response
        self.data_dir = None
        self.calls: List[tuple] = []
        self.loaded: List[str] = []
        self.shutdown_calls = 0

    def init_session(self, data_dir: str, server_url: str, password: str) -> None:
        self.calls.append(("init_session", data_dir, server_url))
        self.data_dir = data_dir

    def close_session(self) -> None:
        self.calls.append(("close_session",))

    def download_budget(self, sync_id: str, password: Optional[str] = None) -> Dict[str, Any]:
        self.calls.append(("download_budget", sync_id))

        remote = self.remote_budgets.get(sync_id)
        if remote is None:
            return {"error": {"reason": "not-found"}}

        if not os.path.isfile(db_file_path(self.data_dir, remote["local_id"])):
            create_local_budget(
                self.data_dir,
                remote["local_id"],
                name=remote.get("name"),
                budget_id=remote.get("budget_id"),
                cloud_file_id=sync_id,
            )

        if self.download_response is not None:
            return self.download_response
        return {"id": remote["local_id"]}

    def list_local_budgets(self) -> List[Dict[str, Any]]:
        budgets = []
        for entry in sorted(os.listdir(self.data_dir)):
            metadata_path = os.path.join(self.data_dir, entry, METADATA_FILE_NAME)
            if not os.path.isfile(metadata_path):
                continue
            metadata = read_metadata(metadata_path)
            budgets.append(
                {
                    "id": entry,
                    "cloudFileId": metadata.get("cloudFileId"),
                    "budgetId": metadata.get("budgetId"),
                    "name": metadata.get("budgetName"),
                }
            )
        return budgets

    def load_budget(self, local_id: str) -> None:
        if not os.path.isfile(os.path.join(self.data_dir, local_id, DB_FILE_NAME)):
            raise SyncError(f"Budget {local_id} not found")
        self.loaded.append(local_id)

    def shutdown(self) -> None:
        self.shutdown_calls += 1
