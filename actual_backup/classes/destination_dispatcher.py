"""
Despacho de archivos a los destinos
===================================

Entrega un archivo de backup a todos los destinos habilitados en paralelo.
El fallo de un destino no impide que los demás terminen; el primer error
se relanza cuando todos han finalizado.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, Tuple

from ..errors import BackupError, UploadError
from ..exporters import DESTINATION_CLASSES, TOKEN_PROVIDERS, Destination
from ..utils import build_backup_filename
from .logger_manager import LoggerManager
from .models import Archive
from .token_store import TokenStore


class DestinationDispatcher:
    """
    Despachador de archivos hacia los destinos configurados.

    La validación de configuración ocurre antes del despacho y aborta la
    ejecución completa; los fallos de subida se aíslan por destino.
    """

    def __init__(
        self,
        destinations_config: Dict[str, Dict],
        token_store: Optional[TokenStore] = None,
        destination_classes=DESTINATION_CLASSES,
        logger: logging.Logger = None,
    ):
        """
        Inicializa el despachador.

        Args:
            destinations_config: Configuración por nombre de destino
            token_store: Almacén de tokens para destinos OAuth
            destination_classes: Clases de destino en orden de despacho
            logger: Logger para mensajes
        """
        self.destinations_config = destinations_config
        self.token_store = token_store
        self.logger = logger or logging.getLogger(__name__)

        self.destinations: List[Destination] = [
            self._create_destination(destination_class)
            for destination_class in destination_classes
        ]

    def _create_destination(self, destination_class) -> Destination:
        config = self.destinations_config.get(destination_class.name) or {}

        token_access = None
        provider = TOKEN_PROVIDERS.get(destination_class.name)
        if provider and self.token_store is not None:
            token_access = self.token_store.access(provider)

        return destination_class(config, token_access)

    def enabled_destinations(self) -> List[Destination]:
        """Retorna los destinos habilitados en orden de despacho."""
        return [d for d in self.destinations if d.enabled]

    def validate(self) -> List[Destination]:
        """
        Valida la configuración de todos los destinos habilitados.

        Returns:
            List[Destination]: Destinos habilitados

        Raises:
            ConfigError: Si falta un ajuste obligatorio
        """
        enabled = self.enabled_destinations()
        for destination in enabled:
            destination.validate(self.logger)
        return enabled

    def dispatch(self, archive: Archive, label: str, timestamp: str) -> Dict[str, str]:
        """
        Entrega el archivo a todos los destinos habilitados.

        Args:
            archive: Archivo a entregar
            label: Etiqueta única del archivo en esta ejecución
            timestamp: Marca de tiempo del nombre de archivo

        Returns:
            Dict: Ubicación final por destino

        Raises:
            ConfigError: Si la configuración de un destino es inválida
            BackupError: El primer error de destino, tras terminar todos
        """
        # Validación previa, fuera del aislamiento de fallos
        enabled = self.validate()

        if not enabled:
            self.logger.warning("No destinations enabled; skipping")
            return {}

        filename = build_backup_filename(label, timestamp)
        self.logger.info(
            f"Dispatching {filename} ({archive.size} bytes) to "
            f"{', '.join(d.name for d in enabled)}"
        )

        results: Dict[str, str] = {}
        failures: Dict[str, BackupError] = {}

        with ThreadPoolExecutor(
            max_workers=len(enabled), thread_name_prefix="dispatch"
        ) as executor:
            future_to_destination = {
                executor.submit(
                    self._store_isolated, destination, archive, filename
                ): destination
                for destination in enabled
            }

            for future in as_completed(future_to_destination):
                destination = future_to_destination[future]
                location, error = future.result()
                if error is None:
                    results[destination.name] = location
                else:
                    failures[destination.name] = error

        if failures:
            # Relanzar el primer fallo en orden de despacho
            first = next(d.name for d in enabled if d.name in failures)
            self.logger.error(
                f"{len(failures)}/{len(enabled)} destinations failed for {filename}: "
                f"{', '.join(failures)}"
            )
            raise failures[first]

        return results

    def _store_isolated(
        self, destination: Destination, archive: Archive, filename: str
    ) -> Tuple[Optional[str], Optional[BackupError]]:
        """
        Ejecuta la subida de un destino capturando su error.

        Returns:
            tuple: (ubicación, None) si tuvo éxito o (None, error)
        """
        start = time.time()
        try:
            location = destination.store(archive.data, filename, self.logger)
        except BackupError as e:
            error = e
        except Exception as e:
            error = UploadError(destination.label, f"upload failed: {e}")
            error.__cause__ = e
        else:
            self.logger.debug(
                f"{destination.name} completed in {time.time() - start:.2f}s"
            )
            return location, None

        LoggerManager.log_error_with_context(
            self.logger,
            error,
            {
                "destination": destination.name,
                "filename": filename,
                "local_id": archive.local_id,
                "sync_id": archive.sync_id,
            },
        )
        return None, error
