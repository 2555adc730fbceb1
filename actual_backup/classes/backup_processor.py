"""
Procesador principal de backup
==============================

Conecta la configuración, el logging, el almacén de tokens y el
orquestador. Ejecuta un backup único o se queda esperando los disparos
del scheduler cron.
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..exporters import TOKEN_PROVIDERS, read_success_marker
from .apscheduler_backup import APBackupScheduler
from .backup_orchestrator import BackupOrchestrator
from .config_manager import ConfigManager
from .logger_manager import LoggerManager
from .token_store import TokenStore


class BackupProcessor:
    """
    Procesador de backup para un archivo de configuración.

    Coordina los componentes del sistema y traduce los errores del
    pipeline en un resultado {success, error, stats}.
    """

    def __init__(self, config_path: str, log_level: Optional[str] = None):
        """
        Inicializa el procesador de backup.

        Args:
            config_path: Ruta al archivo de configuración
            log_level: Nivel de log que sustituye al configurado (opcional)
        """
        self.config_path = config_path

        # Cargar configuración
        self.config = ConfigManager(config_path)

        # Configurar logging
        log_config = self.config.get_logging_config()
        if log_level:
            log_config["log_level"] = log_level
        self.logger_manager = LoggerManager(self.config.get_config_name(), log_config)
        self.logger = self.logger_manager.get_main_logger()

        self.token_store = TokenStore(
            self.config.get_token_store_path(),
            logger=self.logger_manager.get_logger("tokens"),
        )

        self.orchestrator = BackupOrchestrator(
            self.config,
            self.token_store,
            logger_manager=self.logger_manager,
        )

        # Scheduler para el modo programado
        self.scheduler = None

    def run_backup(self) -> Dict[str, Any]:
        """
        Ejecuta un backup completo de todos los objetivos.

        Returns:
            Dict: Resultado del backup
        """
        start_time = datetime.now()
        stats: Dict[str, Any] = {"start_time": start_time}

        dispatcher = self.orchestrator.create_dispatcher()
        self.logger_manager.log_backup_start(
            self.logger,
            self.config.get_sync_targets(),
            [d.name for d in dispatcher.enabled_destinations()],
            start_time,
        )

        started = time.time()
        try:
            stats.update(self.orchestrator.run_all())
        except Exception as e:
            stats["end_time"] = datetime.now()
            stats["duration_seconds"] = round(time.time() - started, 3)
            self.logger.error(f"Backup failed: {e}")
            self.logger_manager.log_backup_end(
                self.logger, False, stats, stats["end_time"]
            )
            return {"success": False, "error": str(e), "stats": stats}

        stats["end_time"] = datetime.now()
        stats["duration_seconds"] = round(time.time() - started, 3)
        self.logger_manager.log_backup_end(self.logger, True, stats, stats["end_time"])

        return {"success": True, "stats": stats}

    def run_scheduled_backup(self) -> None:
        """Programa el backup con APScheduler y bloquea hasta la parada."""
        schedule = self.config.get_schedule()

        self.scheduler = APBackupScheduler(
            self.config.get_config_name(),
            self.logger_manager.get_scheduler_logger(),
        )

        try:
            self.scheduler.schedule_backup(schedule, self.run_backup)
            self.logger.info(f"Next backup at: {self.scheduler.get_next_run_time()}")
            self.scheduler.start()
        except KeyboardInterrupt:
            self.logger.info("Received interrupt signal, stopping scheduler...")
            self.scheduler.stop()
            raise

    def run(self, once: bool = False) -> Optional[Dict[str, Any]]:
        """
        Ejecuta el backup una vez o en modo programado.

        Args:
            once: Ejecutar un único backup y terminar

        Returns:
            Dict: Resultado del backup en modo único, None en modo programado
        """
        if once:
            return self.run_backup()

        self.run_scheduled_backup()
        return None

    def get_status(self) -> Dict[str, Any]:
        """
        Retorna el estado de los destinos y del último backup.

        Returns:
            Dict: Estado habilitado/enlazado por destino y última ejecución
        """
        dispatcher = self.orchestrator.create_dispatcher()

        destinations = {}
        for destination in dispatcher.destinations:
            entry = {"enabled": destination.enabled}
            provider = TOKEN_PROVIDERS.get(destination.name)
            if provider:
                entry["requires_token"] = destination.requires_token
                entry["linked"] = (
                    not destination.requires_token or self.token_store.has(provider)
                )
            destinations[destination.name] = entry

        local = self.config.get_local_config()
        last_success = read_success_marker(
            local.get("output_dir") or self.config.get_budget_dir()
        )

        return {
            "config_name": self.config.get_config_name(),
            "targets": [str(t) for t in self.config.get_sync_targets()],
            "schedule": self.config.get_schedule(),
            "destinations": destinations,
            "last_success": (
                datetime.fromtimestamp(last_success, tz=timezone.utc).isoformat()
                if last_success
                else None
            ),
        }

    def cleanup(self) -> None:
        """Limpia recursos."""
        if self.scheduler:
            self.scheduler.stop()

        if self.logger_manager:
            self.logger_manager.cleanup()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.cleanup()

    def __repr__(self) -> str:
        return (
            f"BackupProcessor(config='{self.config.get_config_name()}', "
            f"targets={len(self.config.get_sync_targets())})"
        )
