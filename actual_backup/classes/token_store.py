"""
Almacén de tokens OAuth
=======================

Guarda un documento JSON por proveedor en un directorio local. Las
credenciales se crean al enlazar un proveedor y se refrescan en el sitio
cuando están cerca de expirar.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

from ..errors import AuthError

PROVIDER_LABELS = {
    "google": "Google Drive",
    "dropbox": "Dropbox",
}


class TokenStore:
    """Almacén de tokens basado en archivos, un JSON por proveedor."""

    def __init__(self, base_dir: str, logger: logging.Logger = None):
        self.base_dir = base_dir
        self.logger = logger or logging.getLogger(__name__)

    def init(self) -> None:
        """Crea el directorio del almacén si no existe."""
        os.makedirs(self.base_dir, exist_ok=True)

    def file_path(self, provider: str) -> str:
        return os.path.join(self.base_dir, f"{provider}.json")

    def get(self, provider: str) -> Optional[Dict[str, Any]]:
        """
        Lee el token de un proveedor.

        Args:
            provider: Nombre del proveedor ('google', 'dropbox')

        Returns:
            Dict: Token almacenado o None si no está enlazado
        """
        try:
            with open(self.file_path(provider), "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None

    def set(self, provider: str, data: Dict[str, Any]) -> None:
        """Guarda (o reemplaza) el token de un proveedor."""
        self.init()
        with open(self.file_path(provider), "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
        self.logger.debug(f"Stored tokens for provider {provider}")

    def clear(self, provider: str) -> None:
        """Elimina el token de un proveedor (desenlazar)."""
        try:
            os.remove(self.file_path(provider))
        except FileNotFoundError:
            pass

    def has(self, provider: str) -> bool:
        return self.get(provider) is not None

    def access(self, provider: str) -> "TokenAccess":
        """Crea la capacidad de lectura/refresco para un proveedor."""
        return TokenAccess(self, provider)

    def __repr__(self) -> str:
        return f"TokenStore(base_dir='{self.base_dir}')"


class TokenAccess:
    """
    Capacidad que reciben los destinos OAuth.

    Desacopla la persistencia del almacén de la lógica de subida: el destino
    sólo puede leer su propio token y notificar un token refrescado.
    """

    def __init__(self, store: TokenStore, provider: str):
        self.store = store
        self.provider = provider

    @property
    def provider_label(self) -> str:
        return PROVIDER_LABELS.get(self.provider, self.provider)

    def read(self) -> Dict[str, Any]:
        """
        Retorna el token actual del proveedor.

        Raises:
            AuthError: Si el proveedor no está enlazado
        """
        tokens = self.store.get(self.provider)
        if not tokens:
            raise AuthError(
                f"{self.provider_label} is not linked. "
                "Visit the web UI to connect."
            )
        return tokens

    def on_refresh(self, tokens: Dict[str, Any]) -> None:
        """Persiste un token refrescado (el último en escribir gana)."""
        self.store.set(self.provider, tokens)
