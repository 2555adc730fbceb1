"""
Destino WebDAV
==============

Sube los backups a un servidor WebDAV (Nextcloud, ownCloud, ...).
"""

import logging
from typing import Optional, Tuple

import requests

from ..errors import ConfigError
from .base import Destination


class WebDAVDestination(Destination):
    """Sube backups a una colección WebDAV."""

    name = "webdav"
    label = "WebDAV"

    def __init__(self, config, token_access=None, timeout: int = 300):
        super().__init__(config, token_access)
        self.timeout = timeout

    def validate(self, logger: logging.Logger) -> None:
        if not self.config.get("url"):
            raise ConfigError("webdav.enabled=true but webdav.url is not set")

    def _auth(self) -> Optional[Tuple[str, str]]:
        if self.config.get("username"):
            return (self.config["username"], self.config.get("password") or "")
        return None

    def _ensure_collection(self, session: requests.Session, url: str) -> None:
        """Crea la colección base si no existe (405 = ya existe)."""
        response = session.request("MKCOL", url, timeout=self.timeout)
        if response.status_code not in (201, 405):
            response.raise_for_status()

    def store(self, data: bytes, filename: str, logger: logging.Logger) -> str:
        base_path = (self.config.get("base_path") or "").rstrip("/")
        collection_url = f"{self.config['url'].rstrip('/')}{base_path}"
        target_url = f"{collection_url}/{filename}"

        with requests.Session() as session:
            session.auth = self._auth()
            if base_path:
                self._ensure_collection(session, collection_url)

            response = session.put(
                target_url,
                data=data,
                headers={"Content-Type": "application/zip", "Overwrite": "T"},
                timeout=self.timeout,
            )
            response.raise_for_status()

        logger.info(f"Uploaded backup to WebDAV: {base_path}/{filename}")
        return target_url
