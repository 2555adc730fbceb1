"""
Resolución de identidad de presupuestos
=======================================

Determina la identidad local definitiva de un presupuesto remoto tras
descargarlo y localiza su base de datos en disco.

El servicio remoto puede reportar la identidad con formas distintas y la
caché local puede usar un id interno diferente del sync id, por lo que se
construye una lista ordenada de candidatos y se prueba cada uno hasta
encontrar un archivo existente.
"""

import logging
import os
from typing import Any, Callable, Dict, List, Optional

from ..errors import SyncError
from ..utils import unique_in_order
from .actual_client import RemoteBudgetService
from .budget_files import (
    DB_FILE_NAME,
    db_file_path,
    extract_display_name,
    metadata_file_path,
    read_metadata,
)
from .models import LocalBudget, ResolvedBudget, SyncTarget


def identity_from_download(result: Optional[Dict[str, Any]]) -> Optional[str]:
    """
    Extrae la identidad de la respuesta de descarga.

    Comprueba, en orden: 'id' como cadena, 'id.id' en un objeto anidado y
    'budgetId'.

    Args:
        result: Respuesta de download_budget

    Returns:
        str: Identidad reportada o None
    """
    if not result:
        return None

    raw_id = result.get("id")
    if isinstance(raw_id, str) and raw_id.strip():
        return raw_id.strip()

    if isinstance(raw_id, dict):
        nested = raw_id.get("id")
        if isinstance(nested, str) and nested.strip():
            return nested.strip()

    budget_id = result.get("budgetId")
    if isinstance(budget_id, str) and budget_id.strip():
        return budget_id.strip()

    return None


class IdentityResolver:
    """
    Resuelve la identidad local de cada objetivo de sincronización.

    Usa una sesión remota ya creada; la apertura y el cierre de la sesión
    son responsabilidad del llamador.
    """

    def __init__(
        self,
        budget_dir: str,
        server_url: str,
        server_password: str,
        encryption_password: Optional[str] = None,
        logger: logging.Logger = None,
    ):
        """
        Inicializa el resolvedor.

        Args:
            budget_dir: Directorio raíz de la caché local de presupuestos
            server_url: URL del servidor de sincronización
            server_password: Contraseña del servidor
            encryption_password: Contraseña de descifrado (opcional)
            logger: Logger para mensajes
        """
        self.budget_dir = budget_dir
        self.server_url = server_url
        self.server_password = server_password
        self.encryption_password = encryption_password
        self.logger = logger or logging.getLogger(__name__)

    def resolve(
        self, session: RemoteBudgetService, target: SyncTarget
    ) -> ResolvedBudget:
        """
        Descarga el presupuesto del objetivo y resuelve su identidad local.

        Args:
            session: Sesión del servicio remoto
            target: Objetivo de sincronización

        Returns:
            ResolvedBudget: Identidad, ruta de la base de datos y nombre

        Raises:
            SyncError: Si la descarga o la carga fallan
        """
        os.makedirs(self.budget_dir, exist_ok=True)

        # Resetear cualquier estado previo (puede no existir todavía)
        try:
            session.close_session()
        except Exception as e:
            self.logger.debug(
                f"close_session before init failed (expected if unused): {e}"
            )

        session.init_session(
            self.budget_dir, self.server_url, self.server_password
        )

        download_result = self._download(session, target)
        known_budgets = self._list_known_budgets(session)

        candidates = self.build_candidates(target, download_result, known_budgets)
        self.logger.debug(f"Identity candidates for {target}: {candidates}")

        local_id, db_path, db_exists = self.locate_database(candidates, target)

        if db_exists:
            self.logger.info(
                f"Resolved budget {target} to local id {local_id}"
            )
        else:
            self.logger.warning(
                f"No database file found for {target} "
                f"(candidates: {', '.join(candidates)}); trying {local_id} anyway"
            )

        try:
            session.load_budget(local_id)
        except SyncError:
            raise
        except Exception as e:
            raise SyncError(f"loadBudget failed for {local_id}: {e}") from e

        return ResolvedBudget(
            local_id=local_id,
            db_file_path=db_path,
            db_exists=db_exists,
            display_name=self.read_display_name(local_id),
        )

    def _download(
        self, session: RemoteBudgetService, target: SyncTarget
    ) -> Dict[str, Any]:
        options = {}
        if self.encryption_password:
            options["password"] = self.encryption_password

        try:
            result = session.download_budget(target.sync_id, **options)
        except SyncError:
            raise
        except Exception as e:
            raise SyncError(
                f"downloadBudget failed for {target.sync_id}: {e}"
            ) from e

        if result and result.get("error"):
            raise SyncError(
                f"downloadBudget failed for {target.sync_id}: {result['error']}"
            )

        self.logger.info(f"downloadBudget result for {target}: {result}")
        return result or {}

    def _list_known_budgets(
        self, session: RemoteBudgetService
    ) -> List[LocalBudget]:
        try:
            entries = session.list_local_budgets() or []
            return [
                LocalBudget.from_dict(entry) for entry in entries if entry.get("id")
            ]
        except Exception as e:
            self.logger.warning(f"Failed to list local budgets: {e}")
            return []

    def build_candidates(
        self,
        target: SyncTarget,
        download_result: Optional[Dict[str, Any]],
        known_budgets: List[LocalBudget],
    ) -> List[str]:
        """
        Construye la lista ordenada y sin duplicados de identidades candidatas.

        Orden de prioridad:
        1. Identidad de la respuesta de descarga
        2. Presupuestos cuyo budget_id coincide con el del objetivo
        3. Presupuestos cuyo id o budget_id coincide con el sync id
        4. El resto de presupuestos conocidos, en orden
        5. El propio sync id

        Las coincidencias de budget_id se promueven además al frente de la
        lista, la última coincidencia primero.

        Args:
            target: Objetivo de sincronización
            download_result: Respuesta de la descarga
            known_budgets: Presupuestos conocidos localmente

        Returns:
            List[str]: Candidatos en orden de prueba
        """
        strategies: List[Callable[[], List[str]]] = [
            lambda: [identity_from_download(download_result)],
            lambda: self._budget_id_matches(target, known_budgets),
            lambda: [
                budget.id
                for budget in known_budgets
                if target.sync_id in (budget.id, budget.budget_id)
            ],
            lambda: [budget.id for budget in known_budgets],
            lambda: [target.sync_id],
        ]

        candidates = []
        for strategy in strategies:
            candidates.extend(strategy())
        candidates = unique_in_order(candidates)

        for promoted in reversed(self._budget_id_matches(target, known_budgets)):
            candidates.remove(promoted)
            candidates.insert(0, promoted)

        return candidates

    def _budget_id_matches(
        self, target: SyncTarget, known_budgets: List[LocalBudget]
    ) -> List[str]:
        """
        Retorna los presupuestos cuyo budget_id coincide con el del objetivo,
        la última coincidencia listada primero.
        """
        if not target.budget_id:
            return []

        matches = []
        for budget in known_budgets:
            if budget.budget_id == target.budget_id:
                matches.insert(0, budget.id)

        return unique_in_order(matches)

    def locate_database(
        self, candidates: List[str], target: SyncTarget
    ) -> tuple:
        """
        Busca el archivo de base de datos de la primera identidad válida.

        Si ningún candidato tiene archivo se recorren directamente las
        entradas del directorio de presupuestos.

        Args:
            candidates: Identidades candidatas en orden
            target: Objetivo de sincronización

        Returns:
            tuple: (local_id, ruta de la base de datos, existe)
        """
        for candidate in candidates:
            path = db_file_path(self.budget_dir, candidate)
            if os.path.isfile(path):
                return candidate, path, True

        scanned = self._scan_budget_dir()
        if scanned:
            self.logger.info(
                f"No candidate matched for {target}; using scanned budget {scanned}"
            )
            return scanned, db_file_path(self.budget_dir, scanned), True

        fallback = candidates[0] if candidates else target.sync_id
        return fallback, db_file_path(self.budget_dir, fallback), False

    def _scan_budget_dir(self) -> Optional[str]:
        if not os.path.isdir(self.budget_dir):
            return None

        for entry in sorted(os.listdir(self.budget_dir)):
            if os.path.isfile(os.path.join(self.budget_dir, entry, DB_FILE_NAME)):
                return entry

        return None

    def read_display_name(self, local_id: str) -> str:
        """
        Lee el nombre visible desde los metadatos, con la identidad local
        como alternativa.
        """
        try:
            metadata = read_metadata(metadata_file_path(self.budget_dir, local_id))
        except (OSError, ValueError) as e:
            self.logger.debug(f"No readable metadata for {local_id}: {e}")
            return local_id

        return extract_display_name(metadata) or local_id
