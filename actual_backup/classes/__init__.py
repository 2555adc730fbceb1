"""
Clases del sistema de backup de Actual Budget
=============================================

Todas las clases principales del sistema organizadas por responsabilidad.
"""

from .actual_client import ActualServerClient, RemoteBudgetService
from .apscheduler_backup import APBackupScheduler, APSchedulerError
from .archive_builder import ArchiveBuilder
from .backup_orchestrator import BackupOrchestrator, LabelAllocator, run_all
from .backup_processor import BackupProcessor
from .config_manager import ConfigManager
from .destination_dispatcher import DestinationDispatcher
from .identity_resolver import IdentityResolver
from .logger_manager import LoggerManager
from .models import Archive, LocalBudget, ResolvedBudget, SyncTarget
from .token_store import TokenAccess, TokenStore

__all__ = [
    # Core classes
    "BackupOrchestrator",
    "BackupProcessor",
    "ConfigManager",
    "LoggerManager",
    "APBackupScheduler",
    "IdentityResolver",
    "ArchiveBuilder",
    "DestinationDispatcher",
    "LabelAllocator",
    "ActualServerClient",
    "RemoteBudgetService",
    "TokenStore",
    "TokenAccess",
    "run_all",
    # Models
    "SyncTarget",
    "LocalBudget",
    "ResolvedBudget",
    "Archive",
    # Exceptions
    "APSchedulerError",
]

__version__ = "1.0.0"
