"""
Destino de disco local
======================

Escribe el archivo en el directorio de salida, actualiza la marca de
último backup y aplica la política de retención.
"""

import logging
import os
from datetime import datetime, timezone
from typing import List, Tuple

from ..errors import ConfigError
from ..utils import current_epoch_seconds, get_week_key
from .base import Destination

SUCCESS_MARKER_NAME = ".last-success"


def write_success_marker(output_dir: str) -> str:
    """
    Escribe la marca de éxito (epoch en segundos) en el padre del
    directorio de salida.

    Args:
        output_dir: Directorio de salida de los backups locales

    Returns:
        str: Ruta de la marca escrita
    """
    marker_dir = os.path.dirname(os.path.abspath(output_dir))
    os.makedirs(marker_dir, exist_ok=True)

    marker_path = os.path.join(marker_dir, SUCCESS_MARKER_NAME)
    with open(marker_path, "w", encoding="utf-8") as f:
        f.write(str(current_epoch_seconds()))

    return marker_path


def read_success_marker(output_dir: str) -> int:
    """Retorna el epoch del último backup exitoso o 0 si no hay marca."""
    marker_path = os.path.join(
        os.path.dirname(os.path.abspath(output_dir)), SUCCESS_MARKER_NAME
    )
    try:
        with open(marker_path, "r", encoding="utf-8") as f:
            return int(f.read().strip() or 0)
    except (OSError, ValueError):
        return 0


def prune_local_backups(
    directory: str,
    retention_count: int,
    retention_weeks: int,
    logger: logging.Logger,
) -> List[str]:
    """
    Elimina los backups antiguos según la política de retención.

    Se conservan los retention_count más recientes por fecha de
    modificación y, si retention_weeks > 0, el más reciente de cada una de
    las últimas retention_weeks semanas. Sin política no se elimina nada.

    Args:
        directory: Directorio de backups
        retention_count: Número de backups recientes a conservar
        retention_weeks: Número de semanas a conservar
        logger: Logger para mensajes

    Returns:
        List[str]: Nombres de los archivos eliminados
    """
    if retention_count <= 0 and retention_weeks <= 0:
        return []

    entries: List[Tuple[str, float]] = []
    for filename in os.listdir(directory):
        if not filename.endswith(".zip"):
            continue
        path = os.path.join(directory, filename)
        entries.append((filename, os.stat(path).st_mtime))

    if not entries:
        return []

    entries.sort(key=lambda entry: entry[1], reverse=True)

    keep = {filename for filename, _ in entries[: max(retention_count, 0)]}

    if retention_weeks > 0:
        newest_by_week = {}
        for filename, mtime in entries:
            week = get_week_key(datetime.fromtimestamp(mtime, tz=timezone.utc))
            newest_by_week.setdefault(week, filename)

        for week in sorted(newest_by_week, reverse=True)[:retention_weeks]:
            keep.add(newest_by_week[week])

    removed = []
    for filename, _ in entries:
        if filename in keep:
            continue
        target = os.path.join(directory, filename)
        try:
            os.remove(target)
            removed.append(filename)
        except OSError as e:
            logger.warning(f"Failed to remove old backup {target}: {e}")

    if removed:
        logger.info(f"Pruned old backups: {', '.join(removed)}")

    return removed


class LocalDestination(Destination):
    """Guarda los backups en un directorio local con retención."""

    name = "local"
    label = "Local"

    def validate(self, logger: logging.Logger) -> None:
        if not self.config.get("output_dir"):
            raise ConfigError("local.enabled=true but local.output_dir is not set")

    def store(self, data: bytes, filename: str, logger: logging.Logger) -> str:
        output_dir = self.config["output_dir"]
        os.makedirs(output_dir, exist_ok=True)

        file_path = os.path.join(output_dir, filename)
        with open(file_path, "wb") as f:
            f.write(data)
        logger.info(f"Local backup saved: {file_path}")

        write_success_marker(output_dir)

        prune_local_backups(
            output_dir,
            self.config.get("retention_count", 0),
            self.config.get("retention_weeks", 0),
            logger,
        )

        return file_path
