"""
Excepciones del sistema de backup de Actual Budget
==================================================

Jerarquía común de errores para todas las etapas del pipeline:
resolución, empaquetado, despacho y configuración.
"""


class BackupError(Exception):
    """Excepción base para errores del sistema de backup"""

    pass


class ConfigError(BackupError):
    """Falta un ajuste obligatorio o la configuración no es válida"""

    pass


class SyncError(BackupError):
    """Fallo al descargar o cargar un presupuesto remoto"""

    pass


class AuthError(BackupError):
    """Credencial enlazada ausente o inválida para un destino OAuth"""

    pass


class BackupIOError(BackupError):
    """Fallo de acceso a archivos locales al sanitizar o empaquetar"""

    pass


class UploadError(BackupError):
    """Fallo de transporte al entregar el archivo a un destino"""

    def __init__(self, destination: str, message: str):
        super().__init__(f"{destination}: {message}")
        self.destination = destination
