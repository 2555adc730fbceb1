"""
Configuración global para pytest
================================

Fixtures y configuraciones globales para todos los tests.
"""

import os
import sys
from pathlib import Path

import pytest

# Agregar el directorio raíz del proyecto al path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Configurar variables de entorno para testing
os.environ["TESTING"] = "true"


@pytest.fixture
def workspace(tmp_path):
    """Estructura de directorios de un despliegue (presupuestos, backups, tokens)."""
    dirs = {
        "root": str(tmp_path),
        "budget_dir": str(tmp_path / "budget"),
        "output_dir": str(tmp_path / "backups" / "out"),
        "tokens": str(tmp_path / "tokens"),
        "logs": str(tmp_path / "logs"),
    }
    os.makedirs(dirs["budget_dir"])
    return dirs


def pytest_configure(config):
    """Configuración inicial de pytest."""
    config.addinivalue_line(
        "markers", "slow: marca los tests que tardan más tiempo"
    )
    config.addinivalue_line(
        "markers", "integration: marca los tests de integración"
    )


def pytest_collection_modifyitems(config, items):
    """Agrega marcadores automáticamente según el nombre del archivo."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
