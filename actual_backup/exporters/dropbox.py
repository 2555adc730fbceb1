"""
Destino Dropbox
===============

Sube los backups a Dropbox con un token estático o con tokens OAuth
enlazados, que se refrescan cuando están a punto de expirar.
"""

import json
import logging
import time
from typing import Any, Dict

import requests

from ..errors import AuthError, ConfigError
from ..utils import parse_token_expiry
from .base import Destination

TOKEN_URL = "https://api.dropboxapi.com/oauth2/token"
UPLOAD_URL = "https://content.dropboxapi.com/2/files/upload"

# Margen antes de la expiración para refrescar el token (segundos)
REFRESH_MARGIN_SECONDS = 60


class DropboxDestination(Destination):
    """Sube backups a una ruta de Dropbox."""

    name = "dropbox"
    label = "Dropbox"

    def __init__(self, config, token_access=None, timeout: int = 300):
        super().__init__(config, token_access)
        self.timeout = timeout

    @property
    def requires_token(self) -> bool:
        return not self.config.get("access_token")

    def validate(self, logger: logging.Logger) -> None:
        if self.config.get("access_token"):
            return

        if not self.config.get("app_key") or not self.config.get("app_secret"):
            raise ConfigError(
                "Dropbox OAuth requires dropbox.app_key and dropbox.app_secret"
            )
        if self.token_access is None:
            raise ConfigError("Token store not available for Dropbox OAuth")

    def _refresh_tokens(self, tokens: Dict[str, Any]) -> Dict[str, Any]:
        """
        Obtiene un nuevo access token usando el refresh token.

        Raises:
            AuthError: Si no hay refresh token o Dropbox lo rechaza
        """
        if not tokens.get("refresh_token"):
            raise AuthError("Dropbox token expired and no refresh token is stored")

        response = requests.post(
            TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": tokens["refresh_token"],
                "client_id": self.config["app_key"],
                "client_secret": self.config["app_secret"],
            },
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise AuthError(
                f"Dropbox token refresh failed with status "
                f"{response.status_code}: {response.text}"
            )

        result = response.json()
        return {
            "access_token": result["access_token"],
            "refresh_token": result.get("refresh_token") or tokens["refresh_token"],
            "expires_at": int(time.time() * 1000) + int(result.get("expires_in", 14400)) * 1000,
        }

    def _access_token(self, logger: logging.Logger) -> str:
        if self.config.get("access_token"):
            return self.config["access_token"]

        tokens = self.token_access.read()

        expires_at = parse_token_expiry(tokens.get("expires_at"))
        if expires_at and time.time() >= expires_at.timestamp() - REFRESH_MARGIN_SECONDS:
            tokens = self._refresh_tokens(tokens)
            self.token_access.on_refresh(tokens)
            logger.info("Refreshed Dropbox access token")

        if not tokens.get("access_token"):
            raise AuthError("Dropbox token record has no access token")

        return tokens["access_token"]

    def store(self, data: bytes, filename: str, logger: logging.Logger) -> str:
        path = f"{self.config.get('base_path', '/Actual-Backups').rstrip('/')}/{filename}"

        response = requests.post(
            UPLOAD_URL,
            headers={
                "Authorization": f"Bearer {self._access_token(logger)}",
                "Content-Type": "application/octet-stream",
                "Dropbox-API-Arg": json.dumps(
                    {
                        "path": path,
                        "mode": "overwrite",
                        "autorename": False,
                        "mute": True,
                    }
                ),
            },
            data=data,
            timeout=self.timeout,
        )
        response.raise_for_status()

        logger.info(f"Uploaded backup to Dropbox: {path}")
        return path
