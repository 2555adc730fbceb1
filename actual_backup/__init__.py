"""
Sistema de backup de Actual Budget
==================================

Módulos principales del sistema de backup organizados en:
- classes/: Clases del pipeline (resolución, archivo, despacho, scheduler)
- exporters/: Destinos de almacenamiento
- errors: Jerarquía de excepciones
- utils: Funciones utilitarias
"""

from . import utils
from .classes import *
from .errors import (
    AuthError,
    BackupError,
    BackupIOError,
    ConfigError,
    SyncError,
    UploadError,
)

__all__ = [
    # Core classes (importadas desde classes/)
    "BackupOrchestrator",
    "BackupProcessor",
    "ConfigManager",
    "LoggerManager",
    "APBackupScheduler",
    "IdentityResolver",
    "ArchiveBuilder",
    "DestinationDispatcher",
    "TokenStore",
    "run_all",
    # Exceptions
    "BackupError",
    "ConfigError",
    "SyncError",
    "AuthError",
    "BackupIOError",
    "UploadError",
    "APSchedulerError",
    # Utils module
    "utils",
]

__version__ = "1.0.0"
