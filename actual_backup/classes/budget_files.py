"""
Estructura en disco de la caché local de presupuestos
=====================================================

Cada identidad local es un subdirectorio con la base de datos relacional
y, opcionalmente, un registro de metadatos JSON.
"""

import json
import os
from typing import Any, Dict, Optional

DB_FILE_NAME = "db.sqlite"
METADATA_FILE_NAME = "metadata.json"

# Campos de nombre visible, en orden de prioridad
NAME_FIELDS = ("budgetName", "name", "budget_name", "displayName", "title")


def budget_path(budget_dir: str, local_id: str) -> str:
    return os.path.join(budget_dir, local_id)


def db_file_path(budget_dir: str, local_id: str) -> str:
    """Ruta de la base de datos para una identidad local."""
    return os.path.join(budget_dir, local_id, DB_FILE_NAME)


def metadata_file_path(budget_dir: str, local_id: str) -> str:
    """Ruta del registro de metadatos para una identidad local."""
    return os.path.join(budget_dir, local_id, METADATA_FILE_NAME)


def read_metadata(path: str) -> Dict[str, Any]:
    """
    Lee un registro de metadatos.

    Args:
        path: Ruta del archivo metadata.json

    Returns:
        Dict: Metadatos parseados

    Raises:
        OSError: Si el archivo no se puede leer
        ValueError: Si el contenido no es un objeto JSON
    """
    with open(path, "r", encoding="utf-8") as f:
        metadata = json.load(f)

    if not isinstance(metadata, dict):
        raise ValueError(f"Metadata in {path} is not a JSON object")

    return metadata


def extract_display_name(metadata: Dict[str, Any]) -> Optional[str]:
    """Retorna el primer campo de nombre no vacío de los metadatos."""
    for field in NAME_FIELDS:
        value = metadata.get(field)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None
