"""
Scheduler de backups con APScheduler
====================================

Ejecuta el backup completo según una expresión cron:
- Un único worker, por lo que nunca hay dos backups a la vez
- Las ejecuciones atrasadas se combinan en una sola
- Un fallo se registra y el scheduler espera al siguiente disparo
"""

import logging
import signal
from datetime import datetime
from typing import Callable

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
)
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from ..errors import ConfigError


class APSchedulerError(ConfigError):
    """Expresión cron inválida o job inexistente."""

    pass


def build_cron_trigger(cron_expr: str) -> CronTrigger:
    """
    Construye un trigger a partir de una expresión crontab de 5 campos.

    Raises:
        APSchedulerError: Si la expresión no es válida
    """
    try:
        return CronTrigger.from_crontab(cron_expr, timezone="UTC")
    except ValueError as e:
        raise APSchedulerError(f"Invalid cron expression '{cron_expr}': {e}") from e


class APBackupScheduler:
    """
    Scheduler de backups basado en APScheduler.

    El job de backup se ejecuta en un pool de un solo hilo con
    max_instances=1, así que un disparo que llega mientras otro backup
    sigue en curso se descarta.
    """

    def __init__(
        self,
        config_name: str,
        logger: logging.Logger,
        install_signal_handlers: bool = True,
    ):
        """
        Inicializa el scheduler.

        Args:
            config_name: Nombre de la configuración
            logger: Logger para mensajes
            install_signal_handlers: Registrar SIGINT/SIGTERM para parar
        """
        self.config_name = config_name
        self.logger = logger

        jobstores = {"default": MemoryJobStore()}

        executors = {"default": ThreadPoolExecutor(max_workers=1)}

        job_defaults = {
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 300,
        }

        self.scheduler = BlockingScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults,
            timezone="UTC",
        )

        self._setup_listeners()

        if install_signal_handlers:
            self._setup_signal_handlers()

        self.is_running = False
        self.current_job_id = None

    def _setup_listeners(self) -> None:
        """Configura listeners para eventos del scheduler."""

        def job_listener(event):
            if event.exception:
                self.logger.error(f"Job {event.job_id} failed: {event.exception}")
            else:
                self.logger.info(f"Job {event.job_id} completed")

        def job_missed_listener(event):
            self.logger.warning(f"Job {event.job_id} missed its scheduled time")

        self.scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
        self.scheduler.add_listener(job_missed_listener, EVENT_JOB_MISSED)

    def _setup_signal_handlers(self) -> None:
        """Configura los manejadores de señales."""

        def signal_handler(signum, frame):
            self.logger.info(f"Received signal {signum}, stopping scheduler...")
            self.stop()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def schedule_backup(
        self, cron_expr: str, backup_function: Callable, *args, **kwargs
    ) -> None:
        """
        Programa el backup con una expresión cron.

        Args:
            cron_expr: Expresión cron (UTC)
            backup_function: Función de backup a ejecutar
            *args: Argumentos para la función
            **kwargs: Argumentos nombrados para la función

        Raises:
            APSchedulerError: Si la expresión cron no es válida
        """
        trigger = build_cron_trigger(cron_expr)

        def backup_job():
            start_time = datetime.now()
            self.logger.info("=== SCHEDULED BACKUP STARTED ===")
            self.logger.info(f"Config: {self.config_name}")

            try:
                result = backup_function(*args, **kwargs)
            except Exception as e:
                self.logger.error("=== SCHEDULED BACKUP FAILED ===")
                self.logger.error(f"Duration: {datetime.now() - start_time}")
                self.logger.exception(f"Error: {e}")
                raise

            duration = datetime.now() - start_time
            if isinstance(result, dict) and not result.get("success", True):
                self.logger.warning(
                    f"=== SCHEDULED BACKUP FAILED === ({result.get('error')})"
                )
            else:
                self.logger.info("=== SCHEDULED BACKUP COMPLETED ===")
            self.logger.info(f"Duration: {duration}")

            return result

        self.current_job_id = f"backup_{self.config_name}"
        self.scheduler.add_job(
            backup_job,
            trigger=trigger,
            id=self.current_job_id,
            name=f"Backup job for {self.config_name}",
            replace_existing=True,
        )

        self.logger.info(f"Backup scheduled with cron: {cron_expr} (UTC)")

    def get_next_run_time(self):
        """Retorna la próxima ejecución programada o None."""
        if not self.current_job_id:
            return None

        job = self.scheduler.get_job(self.current_job_id)
        return getattr(job, "next_run_time", None)

    def start(self) -> None:
        """Inicia el scheduler y bloquea hasta que se detenga."""
        if self.is_running:
            self.logger.warning("Scheduler is already running")
            return

        if not self.current_job_id:
            raise APSchedulerError("No job currently scheduled")

        self.logger.info(f"Scheduler loop started for config: {self.config_name}")
        self.is_running = True

        try:
            self.scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            self.logger.info("Scheduler interrupted")
            self.stop()
        except Exception as e:
            self.logger.error(f"Failed to start scheduler: {e}")
            self.is_running = False
            raise

    def stop(self) -> None:
        """Detiene el scheduler esperando al backup en curso."""
        if not self.is_running:
            return

        self.logger.info("Stopping scheduler...")

        try:
            self.scheduler.shutdown(wait=True)
        except Exception as e:
            self.logger.error(f"Error stopping scheduler: {e}")

        self.is_running = False
        self.logger.info("Scheduler stopped")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.stop()

    def __repr__(self) -> str:
        return (
            f"APBackupScheduler(config='{self.config_name}', "
            f"running={self.is_running})"
        )
