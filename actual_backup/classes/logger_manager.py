"""
Gestor de logging para el sistema de backup de Actual Budget
============================================================

Maneja la configuración de logging con rotación de archivos,
integración con Loki y registro de errores con contexto.
"""

import logging
import logging.handlers
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import logging_loki

from ..utils import get_process_id


class LoggerManager:
    """
    Gestor de logging para el sistema de backup.

    Configura loggers con rotación, formateo y envío a Loki.
    """

    def __init__(self, config_name: str, log_config: Dict[str, Any]):
        """
        Inicializa el gestor de logging.

        Args:
            config_name: Nombre de la configuración
            log_config: Configuración de logging
        """
        self.config_name = config_name
        self.log_config = log_config
        self.process_id = get_process_id()

        # Configurar logging
        self._setup_logging()

    @property
    def root_logger_name(self) -> str:
        return f"backup.{self.config_name}"

    def _setup_logging(self) -> None:
        """Configura el sistema de logging."""
        logger = logging.getLogger(self.root_logger_name)

        # Limpiar handlers existentes
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

        # Configurar nivel de log
        log_level = getattr(logging, self.log_config["log_level"].upper())
        logger.setLevel(log_level)

        formatter = self._create_formatter()

        # Configurar file handler con rotación
        rotation_config = self.log_config["log_rotation"]
        if rotation_config["enabled"]:
            log_dir = os.path.join(
                self.log_config["log_directory"], self.config_name
            )
            try:
                os.makedirs(log_dir, exist_ok=True)
                logger.addHandler(
                    self._create_file_handler(log_dir, formatter)
                )
            except OSError as e:
                logger.warning(f"Failed to setup file logging in {log_dir}: {e}")

        # Configurar console handler
        logger.addHandler(self._create_console_handler(formatter))

        # Configurar Loki handler si está habilitado
        if self.log_config["loki"]["enabled"]:
            try:
                logger.addHandler(self._create_loki_handler())
            except Exception as e:
                logger.warning(f"Failed to setup Loki handler: {e}")

        # Evitar propagación al logger raíz
        logger.propagate = False

    def _create_formatter(self) -> logging.Formatter:
        """
        Crea el formateador de logs.

        Returns:
            logging.Formatter: Formateador configurado
        """
        format_string = (
            "%(asctime)s - %(name)s - PID:%(process)d - "
            "%(levelname)s - %(message)s"
        )

        return logging.Formatter(fmt=format_string, datefmt="%Y-%m-%d %H:%M:%S")

    def _create_file_handler(
        self, log_dir: str, formatter: logging.Formatter
    ) -> logging.handlers.TimedRotatingFileHandler:
        """
        Crea el handler de archivos con rotación.

        Args:
            log_dir: Directorio de logs
            formatter: Formateador de logs

        Returns:
            TimedRotatingFileHandler: Handler configurado
        """
        log_file = os.path.join(log_dir, f"{self.config_name}.log")

        rotation_config = self.log_config["log_rotation"]

        handler = logging.handlers.TimedRotatingFileHandler(
            filename=log_file,
            when=rotation_config["when"],
            interval=rotation_config["interval"],
            backupCount=rotation_config["backup_count"],
            encoding="utf-8",
        )

        handler.setFormatter(formatter)
        return handler

    def _create_console_handler(
        self, formatter: logging.Formatter
    ) -> logging.StreamHandler:
        """
        Crea el handler de consola.

        Args:
            formatter: Formateador de logs

        Returns:
            StreamHandler: Handler configurado
        """
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        return handler

    def _create_loki_handler(self) -> logging.Handler:
        """
        Crea el handler de Loki.

        Returns:
            Handler: Handler de Loki
        """
        loki_config = self.log_config["loki"]

        # Preparar tags base
        tags = {
            "config_name": self.config_name,
            "process_id": str(self.process_id),
            "backup_system": "actual-budget",
        }

        # Agregar tags personalizados
        if loki_config.get("tags"):
            tags.update(loki_config["tags"])

        return logging_loki.LokiHandler(
            url=f"http://{loki_config['url']}:{loki_config['port']}/loki/api/v1/push",
            tags=tags,
            version="1",
        )

    def get_logger(self, name: str = None) -> logging.Logger:
        """
        Obtiene un logger configurado.

        Args:
            name: Nombre del logger (opcional)

        Returns:
            logging.Logger: Logger configurado
        """
        if name:
            return logging.getLogger(f"{self.root_logger_name}.{name}")

        return logging.getLogger(self.root_logger_name)

    def get_main_logger(self) -> logging.Logger:
        """Obtiene el logger principal del backup."""
        return self.get_logger("main")

    def get_scheduler_logger(self) -> logging.Logger:
        """Obtiene el logger para el scheduler."""
        return self.get_logger("scheduler")

    def log_backup_start(
        self,
        logger: logging.Logger,
        targets: List[Any],
        destinations: List[str],
        start_time: datetime = None,
    ) -> None:
        """
        Registra el inicio de un backup.

        Args:
            logger: Logger a usar
            targets: Objetivos de sincronización
            destinations: Destinos habilitados
            start_time: Tiempo de inicio (opcional)
        """
        if start_time is None:
            start_time = datetime.now()

        logger.info("=== BACKUP STARTED ===")
        logger.info(f"Config: {self.config_name}")
        logger.info(f"Targets: {', '.join(str(t) for t in targets)}")
        logger.info(f"Destinations: {', '.join(destinations) or 'none'}")
        logger.info(f"Start time: {start_time}")
        logger.info(f"Process ID: {self.process_id}")

    def log_backup_end(
        self,
        logger: logging.Logger,
        success: bool,
        stats: Dict[str, Any],
        end_time: datetime = None,
    ) -> None:
        """
        Registra el fin de un backup.

        Args:
            logger: Logger a usar
            success: Si el backup fue exitoso
            stats: Estadísticas del backup
            end_time: Tiempo de fin (opcional)
        """
        if end_time is None:
            end_time = datetime.now()

        status = "SUCCESS" if success else "FAILED"

        logger.info(f"=== BACKUP {status} ===")
        logger.info(f"End time: {end_time}")

        if stats:
            logger.info("Backup statistics:")
            for key, value in stats.items():
                logger.info(f"  {key}: {value}")

    @staticmethod
    def log_error_with_context(
        logger: logging.Logger, error: Exception, context: Dict[str, Any]
    ) -> None:
        """
        Registra un error con contexto adicional.

        Args:
            logger: Logger a usar
            error: Excepción ocurrida
            context: Contexto adicional (objetivo, destino, ...)
        """
        logger.error(f"Error: {error}")
        logger.error(f"Error type: {type(error).__name__}")

        if context:
            logger.error("Context:")
            for key, value in context.items():
                logger.error(f"  {key}: {value}")

    def cleanup(self) -> None:
        """Limpia los recursos del logger."""
        logger = logging.getLogger(self.root_logger_name)

        # Cerrar y remover handlers
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
