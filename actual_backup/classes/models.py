"""
Modelos de datos del pipeline de backup
=======================================

Estructuras inmutables que fluyen entre las etapas del pipeline:
objetivo configurado -> presupuesto resuelto -> archivo empaquetado.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SyncTarget:
    """Un trabajo de backup configurado."""

    sync_id: str
    budget_id: Optional[str] = None

    @property
    def distinguishing_id(self) -> str:
        """Identificador usado para desambiguar etiquetas repetidas."""
        return self.budget_id or self.sync_id

    def __str__(self) -> str:
        if self.budget_id:
            return f"{self.budget_id}:{self.sync_id}"
        return self.sync_id


@dataclass(frozen=True)
class LocalBudget:
    """Presupuesto conocido en el almacenamiento local."""

    id: str
    cloud_file_id: Optional[str] = None
    budget_id: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "LocalBudget":
        """Crea un LocalBudget desde la respuesta del servicio remoto."""
        return cls(
            id=data.get("id"),
            cloud_file_id=data.get("cloudFileId"),
            budget_id=data.get("budgetId"),
            name=data.get("name"),
        )


@dataclass(frozen=True)
class ResolvedBudget:
    """Identidad local resuelta en una ejecución."""

    local_id: str
    db_file_path: str
    db_exists: bool
    display_name: str


@dataclass(frozen=True)
class Archive:
    """Archivo zip en memoria listo para despachar."""

    data: bytes
    local_id: str
    sync_id: str
    has_metadata: bool = False

    @property
    def size(self) -> int:
        return len(self.data)
