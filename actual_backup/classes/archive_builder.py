"""
Construcción de archivos de backup
==================================

Empaqueta una copia sanitizada de la base de datos de un presupuesto y su
registro de metadatos en un zip en memoria.

La copia viva de la caché nunca se modifica: la sanitización se hace sobre
una copia en un directorio temporal que se elimina siempre.
"""

import io
import json
import logging
import os
import pathlib
import sqlite3
import tempfile
import zipfile
from typing import Any, Dict, Optional

from .budget_files import (
    DB_FILE_NAME,
    METADATA_FILE_NAME,
    read_metadata,
)
from ..errors import BackupIOError
from .models import Archive

# Tablas de caché derivada, reconstruibles y dependientes del dispositivo
CACHE_TABLES = ("kvcache", "kvcache_key")

# Fecha fija de los miembros del zip para que el contenido sea determinista
ZIP_MEMBER_DATE = (1980, 1, 1, 0, 0, 0)


class ArchiveBuilder:
    """Construye el archivo zip sanitizado de un presupuesto."""

    def __init__(self, logger: logging.Logger = None):
        self.logger = logger or logging.getLogger(__name__)

    def build(self, db_file_path: str, local_id: str, sync_id: str) -> Archive:
        """
        Construye el archivo de backup de un presupuesto resuelto.

        Args:
            db_file_path: Ruta de la base de datos resuelta
            local_id: Identidad local del presupuesto
            sync_id: Sync id del objetivo

        Returns:
            Archive: Archivo inmutable en memoria

        Raises:
            BackupIOError: Si la base de datos no se puede leer o sanitizar
        """
        db_bytes = self.sanitize_database(db_file_path)

        metadata_path = os.path.join(
            os.path.dirname(db_file_path), METADATA_FILE_NAME
        )
        metadata_bytes = self.prepare_metadata(metadata_path)

        data = self.package(db_bytes, metadata_bytes)

        self.logger.info(
            f"Built archive for {local_id} ({len(data)} bytes, "
            f"metadata={'yes' if metadata_bytes else 'no'})"
        )

        return Archive(
            data=data,
            local_id=local_id,
            sync_id=sync_id,
            has_metadata=metadata_bytes is not None,
        )

    def sanitize_database(self, db_file_path: str) -> bytes:
        """
        Copia la base de datos a un directorio temporal con la API de backup
        de SQLite, vacía las tablas de caché y retorna los bytes resultantes.

        La copia incluye las páginas pendientes en el fichero WAL.

        Args:
            db_file_path: Ruta de la base de datos original

        Returns:
            bytes: Contenido de la copia sanitizada

        Raises:
            BackupIOError: Si la copia o la sanitización fallan
        """
        with tempfile.TemporaryDirectory(prefix="actual-backup-") as scratch_dir:
            scratch_path = os.path.join(scratch_dir, DB_FILE_NAME)

            try:
                self._copy_database(db_file_path, scratch_path)
            except (OSError, sqlite3.Error) as e:
                raise BackupIOError(
                    f"Cannot read budget database {db_file_path}: {e}"
                ) from e

            try:
                self._clear_cache_tables(scratch_path)
            except sqlite3.Error as e:
                raise BackupIOError(
                    f"Failed to sanitize budget database {db_file_path}: {e}"
                ) from e

            with open(scratch_path, "rb") as f:
                return f.read()

    def _copy_database(self, source_path: str, target_path: str) -> None:
        if not os.path.isfile(source_path):
            raise FileNotFoundError(f"No such file: {source_path}")

        # Solo lectura: nunca crear ni alterar la caché viva
        source_uri = pathlib.Path(os.path.abspath(source_path)).as_uri() + "?mode=ro"
        source = sqlite3.connect(source_uri, uri=True)
        try:
            target = sqlite3.connect(target_path)
            try:
                source.backup(target)
            finally:
                target.close()
        finally:
            source.close()

    def _clear_cache_tables(self, path: str) -> None:
        connection = sqlite3.connect(path)
        try:
            existing = {
                row[0]
                for row in connection.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table'"
                )
            }
            for table in CACHE_TABLES:
                if table not in existing:
                    self.logger.debug(f"Cache table {table} not present, skipping")
                    continue
                connection.execute(f"DELETE FROM {table}")
            connection.commit()
        finally:
            connection.close()

    def prepare_metadata(self, metadata_path: str) -> Optional[bytes]:
        """
        Lee los metadatos y fuerza resetClock.

        La ausencia de metadatos no es fatal.

        Args:
            metadata_path: Ruta del metadata.json hermano

        Returns:
            bytes: Metadatos serializados o None
        """
        try:
            metadata: Dict[str, Any] = read_metadata(metadata_path)
        except (OSError, ValueError) as e:
            self.logger.warning(
                f"Could not read budget metadata {metadata_path}, "
                f"continuing without it: {e}"
            )
            return None

        metadata["resetClock"] = True
        return json.dumps(metadata, indent=2).encode("utf-8")

    @staticmethod
    def package(db_bytes: bytes, metadata_bytes: Optional[bytes]) -> bytes:
        """
        Empaqueta la base de datos y los metadatos en un zip.

        Args:
            db_bytes: Base de datos sanitizada
            metadata_bytes: Metadatos modificados (opcional)

        Returns:
            bytes: Contenido del zip
        """
        members = [(DB_FILE_NAME, db_bytes)]
        if metadata_bytes is not None:
            members.append((METADATA_FILE_NAME, metadata_bytes))

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            for name, content in members:
                info = zipfile.ZipInfo(name, date_time=ZIP_MEMBER_DATE)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.external_attr = 0o644 << 16
                archive.writestr(info, content)

        return buffer.getvalue()
