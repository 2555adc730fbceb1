"""
Orquestador de backups multi-objetivo
=====================================

Recorre los objetivos de sincronización configurados en orden y, para
cada uno, resuelve su identidad local, construye el archivo y lo entrega a
los destinos habilitados.

La sesión remota es única, así que los objetivos se procesan de uno en
uno. El primer objetivo que falla detiene la ejecución.
"""

import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Set

from ..exporters import DESTINATION_CLASSES, write_success_marker
from ..utils import format_backup_timestamp, sanitize_label
from .actual_client import ActualServerClient, RemoteBudgetService
from .archive_builder import ArchiveBuilder
from .config_manager import ConfigManager
from .destination_dispatcher import DestinationDispatcher
from .identity_resolver import IdentityResolver
from .logger_manager import LoggerManager
from .models import SyncTarget
from .token_store import TokenStore


class LabelAllocator:
    """
    Conjunto de etiquetas de archivo ya usadas en una ejecución.

    Una etiqueta reservada nunca se libera dentro de la misma ejecución.
    """

    def __init__(self):
        self._used: Set[str] = set()

    def allocate(self, display_name: Optional[str], target: SyncTarget) -> str:
        """
        Reserva una etiqueta única para el archivo de un objetivo.

        Si la etiqueta base ya está usada se añade el identificador
        distintivo del objetivo y, si sigue colisionando, un contador.

        Args:
            display_name: Nombre visible o identidad local del presupuesto
            target: Objetivo de sincronización

        Returns:
            str: Etiqueta reservada
        """
        base = sanitize_label(display_name)
        label = base

        if label in self._used:
            label = f"{base}-{sanitize_label(target.distinguishing_id)}"

        candidate = label
        counter = 2
        while candidate in self._used:
            candidate = f"{label}-{counter}"
            counter += 1

        self._used.add(candidate)
        return candidate

    def __contains__(self, label: str) -> bool:
        return label in self._used

    def __len__(self) -> int:
        return len(self._used)


class BackupOrchestrator:
    """
    Ejecuta el pipeline completo de backup sobre todos los objetivos.
    """

    def __init__(
        self,
        config: ConfigManager,
        token_store: Optional[TokenStore] = None,
        session_factory: Optional[Callable[[], RemoteBudgetService]] = None,
        destination_classes=DESTINATION_CLASSES,
        logger_manager: Optional[LoggerManager] = None,
    ):
        """
        Inicializa el orquestador.

        Args:
            config: Configuración cargada
            token_store: Almacén de tokens para destinos OAuth
            session_factory: Crea una sesión remota nueva por objetivo
            destination_classes: Clases de destino en orden de despacho
            logger_manager: Gestor de logging (opcional)
        """
        self.config = config
        self.token_store = token_store
        self.destination_classes = destination_classes
        self.logger_manager = logger_manager

        self.logger = self._get_logger("main")
        self.session_factory = session_factory or self._default_session_factory

        self.resolver = IdentityResolver(
            budget_dir=config.get_budget_dir(),
            server_url=config.get_server_url(),
            server_password=config.get_server_password(),
            encryption_password=config.get_encryption_password(),
            logger=self._get_logger("resolver"),
        )
        self.builder = ArchiveBuilder(logger=self._get_logger("archive"))

    def _get_logger(self, name: str) -> logging.Logger:
        if self.logger_manager:
            return self.logger_manager.get_logger(name)
        return logging.getLogger(f"{__name__}.{name}")

    def _default_session_factory(self) -> RemoteBudgetService:
        return ActualServerClient(logger=self._get_logger("actual"))

    def create_dispatcher(self) -> DestinationDispatcher:
        """Crea el despachador con la configuración actual de destinos."""
        return DestinationDispatcher(
            self.config.get_destinations_config(),
            token_store=self.token_store,
            destination_classes=self.destination_classes,
            logger=self._get_logger("dispatcher"),
        )

    @contextmanager
    def remote_session(self) -> Iterator[RemoteBudgetService]:
        """
        Abre una sesión remota y la cierra siempre al salir.

        Los errores al cerrar se registran y nunca se propagan.
        """
        session = self.session_factory()
        try:
            yield session
        finally:
            try:
                session.shutdown()
            except Exception as e:
                self.logger.warning(f"Failed to shutdown remote session cleanly: {e}")

    def run_all(self, targets: Optional[List[SyncTarget]] = None) -> Dict[str, Any]:
        """
        Ejecuta el backup de todos los objetivos en orden.

        Args:
            targets: Objetivos a procesar (por defecto los configurados)

        Returns:
            Dict: Estadísticas de la ejecución

        Raises:
            BackupError: El error del primer objetivo que falla
        """
        if targets is None:
            targets = self.config.get_sync_targets()

        labels = LabelAllocator()
        dispatcher = self.create_dispatcher()
        # Destinos mal configurados abortan antes de tocar el servidor
        dispatcher.validate()

        stats: Dict[str, Any] = {"targets_total": len(targets), "archives": []}

        for index, target in enumerate(targets, start=1):
            self.logger.info(f"Processing target {index}/{len(targets)}: {target}")
            start = time.time()

            try:
                result = self.run_target(target, labels, dispatcher)
            except Exception as e:
                LoggerManager.log_error_with_context(
                    self.logger,
                    e,
                    {
                        "sync_id": target.sync_id,
                        "budget_id": target.budget_id,
                        "target": f"{index}/{len(targets)}",
                    },
                )
                raise

            result["duration_seconds"] = round(time.time() - start, 3)
            stats["archives"].append(result)

        stats["targets_processed"] = len(stats["archives"])
        return stats

    def run_target(
        self,
        target: SyncTarget,
        labels: LabelAllocator,
        dispatcher: DestinationDispatcher,
    ) -> Dict[str, Any]:
        """
        Ejecuta el pipeline de un objetivo: resolución, archivo y despacho.

        Args:
            target: Objetivo de sincronización
            labels: Etiquetas ya usadas en esta ejecución
            dispatcher: Despachador de destinos

        Returns:
            Dict: Resumen del objetivo procesado
        """
        with self.remote_session() as session:
            resolved = self.resolver.resolve(session, target)

            label = labels.allocate(resolved.display_name or resolved.local_id, target)
            self.logger.info(f"Archive label for {target}: {label}")

            archive = self.builder.build(
                resolved.db_file_path, resolved.local_id, target.sync_id
            )

            timestamp = format_backup_timestamp()
            locations = dispatcher.dispatch(archive, label, timestamp)

        self._mark_success_without_local()

        return {
            "sync_id": target.sync_id,
            "budget_id": target.budget_id,
            "local_id": resolved.local_id,
            "label": label,
            "timestamp": timestamp,
            "size_bytes": archive.size,
            "destinations": locations,
        }

    def _mark_success_without_local(self) -> None:
        """
        Escribe la marca de éxito cuando el destino local está deshabilitado.

        El destino local escribe su propia marca; aquí un fallo solo se
        registra.
        """
        local = self.config.get_local_config()
        if local.get("enabled"):
            return

        output_dir = local.get("output_dir") or self.config.get_budget_dir()
        try:
            marker_path = write_success_marker(output_dir)
        except OSError as e:
            self.logger.warning(f"Failed to write success marker: {e}")
            return

        self.logger.debug(f"Success marker written: {marker_path}")


def run_all(
    config: ConfigManager, token_store: Optional[TokenStore] = None, **kwargs
) -> Dict[str, Any]:
    """Atajo para ejecutar todos los objetivos con un orquestador nuevo."""
    return BackupOrchestrator(config, token_store, **kwargs).run_all()
