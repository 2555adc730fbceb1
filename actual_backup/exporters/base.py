"""
Contrato común de los destinos de backup
========================================

Cada destino valida su configuración antes del despacho y expone una
operación store(datos, nombre, logger) que lanza una excepción si falla.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from ..classes.token_store import TokenAccess


class Destination:
    """
    Destino de almacenamiento para los archivos de backup.

    Las subclases definen name/label e implementan validate() y store().
    """

    name = "destination"
    label = "Destination"

    def __init__(
        self,
        config: Dict[str, Any],
        token_access: Optional["TokenAccess"] = None,
    ):
        """
        Inicializa el destino.

        Args:
            config: Sección de configuración del destino
            token_access: Capacidad de tokens para destinos OAuth
        """
        self.config = config
        self.token_access = token_access

    @property
    def enabled(self) -> bool:
        return bool(self.config.get("enabled"))

    @property
    def requires_token(self) -> bool:
        """True si el destino necesita un token enlazado del almacén."""
        return False

    def validate(self, logger: logging.Logger) -> None:
        """
        Comprueba la configuración obligatoria.

        Raises:
            ConfigError: Si falta un ajuste obligatorio
        """
        raise NotImplementedError

    def store(self, data: bytes, filename: str, logger: logging.Logger) -> str:
        """
        Entrega el archivo al destino, reemplazando un objeto homónimo.

        Args:
            data: Contenido del zip
            filename: Nombre '<label>-<timestamp>.zip'
            logger: Logger para mensajes

        Returns:
            str: Ubicación final del archivo en el destino
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(enabled={self.enabled})"
