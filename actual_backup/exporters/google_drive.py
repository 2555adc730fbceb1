"""
Destino Google Drive
====================

Sube los backups a Google Drive usando una cuenta de servicio o tokens
OAuth enlazados desde la interfaz web.
"""

import io
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.http import MediaIoBaseUpload

from ..errors import AuthError, ConfigError
from ..utils import parse_token_expiry
from .base import Destination

SCOPES = ["https://www.googleapis.com/auth/drive.file"]

TOKEN_URI = "https://oauth2.googleapis.com/token"

DEFAULT_FOLDER_NAME = "Actual Budget Backups"

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

# Margen antes de la expiración para refrescar el token
REFRESH_MARGIN = timedelta(seconds=60)


def _escape_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveDestination(Destination):
    """Sube backups a una carpeta de Google Drive."""

    name = "google_drive"
    label = "Google Drive"

    @property
    def mode(self) -> str:
        return self.config.get("mode") or "service-account"

    @property
    def requires_token(self) -> bool:
        return self.mode == "oauth"

    def validate(self, logger: logging.Logger) -> None:
        if self.mode == "service-account":
            credentials_path = self.config.get("credentials_path")
            if not credentials_path or not os.path.isfile(credentials_path):
                raise ConfigError(
                    "google_drive.enabled=true but "
                    "google_drive.credentials_path is missing or unreadable"
                )
            if not self.config.get("folder_id"):
                logger.warning(
                    f"google_drive.folder_id not set; using /{DEFAULT_FOLDER_NAME} root"
                )
            return

        oauth = self.config.get("oauth") or {}
        if not oauth.get("client_id") or not oauth.get("client_secret"):
            raise ConfigError(
                "google_drive.mode=oauth requires google_drive.oauth.client_id "
                "and google_drive.oauth.client_secret"
            )
        if self.token_access is None:
            raise ConfigError("Token store not available for Google Drive OAuth")

    def _service_account_credentials(self):
        return service_account.Credentials.from_service_account_file(
            self.config["credentials_path"], scopes=SCOPES
        )

    def _oauth_credentials(self, logger: logging.Logger) -> Credentials:
        """
        Construye credenciales OAuth desde el almacén y las refresca si
        están a punto de expirar.

        Raises:
            AuthError: Si el proveedor no está enlazado o el refresco falla
        """
        tokens = self.token_access.read()
        oauth = self.config["oauth"]

        expiry = parse_token_expiry(tokens.get("expiry_date") or tokens.get("expires_at"))
        credentials = Credentials(
            token=tokens.get("access_token"),
            refresh_token=tokens.get("refresh_token"),
            token_uri=TOKEN_URI,
            client_id=oauth["client_id"],
            client_secret=oauth["client_secret"],
            scopes=SCOPES,
            # google-auth compara expiry como datetime UTC sin zona
            expiry=expiry.replace(tzinfo=None) if expiry else None,
        )

        if expiry and datetime.now(timezone.utc) >= expiry - REFRESH_MARGIN:
            if not credentials.refresh_token:
                raise AuthError("Google Drive token expired and no refresh token is stored")
            try:
                credentials.refresh(Request())
            except RefreshError as e:
                raise AuthError(f"Google Drive token refresh failed: {e}") from e
            self.token_access.on_refresh(self._serialize_tokens(credentials, tokens))
            logger.info("Refreshed Google Drive access token")

        return credentials

    @staticmethod
    def _serialize_tokens(credentials: Credentials, previous: Dict[str, Any]) -> Dict[str, Any]:
        updated = dict(previous)
        updated["access_token"] = credentials.token
        updated["refresh_token"] = credentials.refresh_token or previous.get("refresh_token")
        if credentials.expiry:
            expiry = credentials.expiry.replace(tzinfo=timezone.utc)
            updated["expiry_date"] = int(expiry.timestamp() * 1000)
        return updated

    def _get_service(self, logger: logging.Logger):
        if self.mode == "oauth":
            credentials = self._oauth_credentials(logger)
        else:
            credentials = self._service_account_credentials()
        return build("drive", "v3", credentials=credentials, cache_discovery=False)

    def _ensure_folder(self, service) -> str:
        """Retorna la carpeta configurada o busca/crea la carpeta por defecto."""
        folder_id = self.config.get("folder_id")
        if folder_id:
            return folder_id

        query = " and ".join(
            [
                f"mimeType = '{FOLDER_MIME_TYPE}'",
                "trashed = false",
                f"name = '{_escape_query_value(DEFAULT_FOLDER_NAME)}'",
            ]
        )
        response = service.files().list(
            q=query, spaces="drive", fields="files(id, name)"
        ).execute()

        existing = response.get("files", [])
        if existing:
            return existing[0]["id"]

        created = service.files().create(
            body={"name": DEFAULT_FOLDER_NAME, "mimeType": FOLDER_MIME_TYPE},
            fields="id",
        ).execute()
        return created["id"]

    def store(self, data: bytes, filename: str, logger: logging.Logger) -> str:
        service = self._get_service(logger)
        folder_id = self._ensure_folder(service)

        media = MediaIoBaseUpload(
            io.BytesIO(data), mimetype="application/zip", resumable=False
        )

        # Reemplazar un archivo homónimo existente
        query = (
            f"name = '{_escape_query_value(filename)}' and "
            f"'{folder_id}' in parents and trashed = false"
        )
        existing = service.files().list(
            q=query, spaces="drive", fields="files(id)"
        ).execute().get("files", [])

        if existing:
            service.files().update(
                fileId=existing[0]["id"], media_body=media
            ).execute()
        else:
            service.files().create(
                body={"name": filename, "parents": [folder_id]},
                media_body=media,
                fields="id",
            ).execute()

        logger.info(f"Uploaded backup to Google Drive: {filename} (folder {folder_id})")
        return f"{folder_id}/{filename}"
