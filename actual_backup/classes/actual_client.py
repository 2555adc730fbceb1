"""
Cliente para el servidor de sincronización de Actual Budget
===========================================================

Define el contrato del servicio remoto de presupuestos y una
implementación sobre HTTP que:
- Inicia sesión con la contraseña del servidor
- Descarga el archivo de un presupuesto y lo extrae en la caché local
- Lista los presupuestos conocidos localmente
- Marca un presupuesto como activo
"""

import io
import json
import logging
import os
import zipfile
from typing import Any, Dict, List, Optional

import requests

from ..errors import SyncError
from ..utils import retry_with_backoff, sanitize_label
from .budget_files import (
    DB_FILE_NAME,
    METADATA_FILE_NAME,
    budget_path,
    db_file_path,
    read_metadata,
)


class RemoteBudgetService:
    """
    Contrato del servicio remoto de presupuestos.

    La sesión es un estado mutable compartido: sólo puede haber una activa
    a la vez y debe cerrarse con shutdown() al terminar cada objetivo.
    """

    def init_session(
        self, data_dir: str, server_url: str, password: str
    ) -> None:
        raise NotImplementedError

    def close_session(self) -> None:
        raise NotImplementedError

    def download_budget(
        self, sync_id: str, password: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Descarga un presupuesto remoto a la caché local.

        Returns:
            Dict: {'id': ...} o {'error': ...}
        """
        raise NotImplementedError

    def list_local_budgets(self) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def load_budget(self, local_id: str) -> None:
        raise NotImplementedError

    def shutdown(self) -> None:
        raise NotImplementedError


class ActualServerClient(RemoteBudgetService):
    """
    Cliente HTTP para un servidor de sincronización de Actual.

    El cifrado extremo a extremo no está soportado: los archivos cifrados
    se reportan como error de descarga.

    Solo se descarga el último archivo completo subido al servidor. Los
    mensajes de sincronización registrados después no se aplican, así que
    el backup puede ir por detrás del estado actual del servidor.
    """

    def __init__(
        self,
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        logger: logging.Logger = None,
    ):
        """
        Inicializa el cliente.

        Args:
            timeout: Timeout de cada petición HTTP
            max_retries: Reintentos máximos ante errores de red
            retry_delay: Delay inicial entre reintentos
            logger: Logger para mensajes
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.logger = logger or logging.getLogger(__name__)

        self.session = requests.Session()
        self.server_url = None
        self.data_dir = None
        self.token = None
        self.active_budget = None

    def _url(self, path: str) -> str:
        return f"{self.server_url}{path}"

    def _headers(self, file_id: str = None) -> Dict[str, str]:
        headers = {"X-ACTUAL-TOKEN": self.token}
        if file_id:
            headers["X-ACTUAL-FILE-ID"] = file_id
        return headers

    def _require_session(self) -> None:
        if not self.token:
            raise SyncError("Remote session is not initialized")

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        """
        Ejecuta una petición HTTP con reintentos ante errores de red.

        Raises:
            SyncError: Si la petición falla tras todos los reintentos
        """

        @retry_with_backoff(
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            logger=self.logger,
            exceptions=(requests.exceptions.ConnectionError,
                        requests.exceptions.Timeout),
        )
        def send() -> requests.Response:
            return self.session.request(
                method, self._url(path), timeout=self.timeout, **kwargs
            )

        try:
            return send()
        except requests.exceptions.RequestException as e:
            raise SyncError(f"Connection to {self.server_url} failed: {e}") from e

    def _json(self, response: requests.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError as e:
            raise SyncError(
                f"Invalid JSON response from {response.url}: {e}"
            ) from e

    def init_session(
        self, data_dir: str, server_url: str, password: str
    ) -> None:
        """
        Inicia sesión contra el servidor de sincronización.

        Args:
            data_dir: Directorio local de caché de presupuestos
            server_url: URL del servidor
            password: Contraseña del servidor

        Raises:
            SyncError: Si el servidor rechaza el login
        """
        self.server_url = server_url.rstrip("/")
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)

        response = self._request(
            "POST",
            "/account/login",
            json={"loginMethod": "password", "password": password},
        )
        result = self._json(response)

        token = (result.get("data") or {}).get("token")
        if response.status_code != 200 or not token:
            reason = result.get("reason") or result.get("status") or response.status_code
            raise SyncError(f"Login to {self.server_url} failed: {reason}")

        self.token = token
        self.logger.debug(f"Logged in to {self.server_url}")

    def close_session(self) -> None:
        """Descarta el presupuesto activo y el token de la sesión."""
        self.active_budget = None
        self.token = None

    def _list_user_files(self) -> List[Dict[str, Any]]:
        response = self._request(
            "GET", "/sync/list-user-files", headers=self._headers()
        )
        result = self._json(response)

        if response.status_code != 200 or result.get("status") != "ok":
            raise SyncError(
                f"list-user-files failed: {result.get('reason', response.status_code)}"
            )

        return result.get("data") or []

    def _find_remote_file(
        self, files: List[Dict[str, Any]], sync_id: str
    ) -> Optional[Dict[str, Any]]:
        for remote_file in files:
            if remote_file.get("deleted"):
                continue
            if sync_id in (remote_file.get("groupId"), remote_file.get("fileId")):
                return remote_file
        return None

    def _local_id_for(self, remote_file: Dict[str, Any], metadata: Dict) -> str:
        """
        Determina la identidad local para un archivo remoto.

        Reutiliza el directorio existente ligado al mismo archivo remoto; si
        no existe, usa el id de los metadatos o uno derivado del nombre.
        """
        file_id = remote_file.get("fileId")

        for budget in self.list_local_budgets():
            if file_id and budget.get("cloudFileId") == file_id:
                return budget["id"]

        # El id viene del zip remoto: nunca debe salir de la caché local
        local_id = sanitize_label(metadata.get("id"), "")
        if local_id:
            return local_id

        name = remote_file.get("name") or metadata.get("budgetName")
        return f"{sanitize_label(name, 'My-Finances')}-{(file_id or '')[:7]}".rstrip("-")

    def download_budget(
        self, sync_id: str, password: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Descarga el archivo remoto con groupId (o fileId) igual a sync_id y
        lo extrae en <data_dir>/<identidad local>/.

        Args:
            sync_id: Identificador de sincronización
            password: Contraseña de cifrado (opcional)

        Returns:
            Dict: {'id': identidad local} o {'error': {...}}
        """
        self._require_session()

        remote_file = self._find_remote_file(self._list_user_files(), sync_id)
        if remote_file is None:
            return {"error": {"reason": "not-found", "syncId": sync_id}}

        if remote_file.get("encryptKeyId"):
            reason = "decrypt-failure" if password else "file-key-mismatch"
            return {
                "error": {
                    "reason": reason,
                    "meta": "Encrypted budgets are not supported by this client",
                }
            }

        response = self._request(
            "GET",
            "/sync/download-user-file",
            headers=self._headers(remote_file["fileId"]),
        )
        if response.status_code != 200:
            return {
                "error": {
                    "reason": "download-failure",
                    "status": response.status_code,
                }
            }

        try:
            with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
                db_bytes = archive.read(DB_FILE_NAME)
                metadata = json.loads(archive.read(METADATA_FILE_NAME))
        except (zipfile.BadZipFile, KeyError, ValueError) as e:
            return {"error": {"reason": "invalid-zip-file", "meta": str(e)}}

        local_id = self._local_id_for(remote_file, metadata)
        target_dir = budget_path(self.data_dir, local_id)
        os.makedirs(target_dir, exist_ok=True)

        metadata.update(
            {
                "id": local_id,
                "cloudFileId": remote_file.get("fileId"),
                "groupId": remote_file.get("groupId"),
            }
        )
        if remote_file.get("name") and not metadata.get("budgetName"):
            metadata["budgetName"] = remote_file["name"]

        with open(os.path.join(target_dir, DB_FILE_NAME), "wb") as f:
            f.write(db_bytes)
        with open(
            os.path.join(target_dir, METADATA_FILE_NAME), "w", encoding="utf-8"
        ) as f:
            json.dump(metadata, f, indent=2)

        self.logger.info(
            f"Downloaded budget {sync_id} into {target_dir} ({len(db_bytes)} bytes)"
        )
        return {"id": local_id}

    def list_local_budgets(self) -> List[Dict[str, Any]]:
        """
        Lista los presupuestos presentes en la caché local.

        Returns:
            List[Dict]: Entradas {id, cloudFileId, budgetId, name}
        """
        if not self.data_dir or not os.path.isdir(self.data_dir):
            return []

        budgets = []
        for entry in sorted(os.listdir(self.data_dir)):
            metadata_path = os.path.join(self.data_dir, entry, METADATA_FILE_NAME)
            if not os.path.isfile(metadata_path):
                continue

            try:
                metadata = read_metadata(metadata_path)
            except (OSError, ValueError) as e:
                self.logger.debug(f"Ignoring unreadable metadata {metadata_path}: {e}")
                continue

            budgets.append(
                {
                    "id": entry,
                    "cloudFileId": metadata.get("cloudFileId"),
                    "budgetId": metadata.get("budgetId") or metadata.get("groupId"),
                    "name": metadata.get("budgetName"),
                }
            )

        return budgets

    def load_budget(self, local_id: str) -> None:
        """
        Marca un presupuesto local como activo.

        Raises:
            SyncError: Si la base de datos local no existe
        """
        path = db_file_path(self.data_dir, local_id)
        if not os.path.isfile(path):
            raise SyncError(f"Budget {local_id} not found in {self.data_dir}")

        self.active_budget = local_id
        self.logger.debug(f"Loaded budget {local_id}")

    def shutdown(self) -> None:
        """Cierra la sesión HTTP."""
        self.close_session()
        self.session.close()

    def __repr__(self) -> str:
        return f"ActualServerClient(server_url='{self.server_url}')"
