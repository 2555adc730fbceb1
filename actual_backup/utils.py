"""
Utilidades para el sistema de backup de Actual Budget
=====================================================

Funciones de ayuda para nombres de archivo, marcas de tiempo, retención,
validaciones y otras utilidades comunes.
"""

import logging
import os
import re
import time
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from dateutil.parser import parse as parse_datetime

DEFAULT_LABEL = "budget"

_UNSAFE_LABEL_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_label(value: Optional[str], fallback: str = DEFAULT_LABEL) -> str:
    """
    Convierte un texto arbitrario en un token seguro para nombres de archivo.

    Los caracteres no permitidos se sustituyen por guiones, se colapsan las
    repeticiones y se eliminan guiones/puntos en los extremos.

    Args:
        value: Texto a sanitizar (nombre visible o identidad local)
        fallback: Valor a usar si el resultado queda vacío

    Returns:
        str: Token seguro para el sistema de archivos
    """
    if value is None:
        return fallback

    sanitized = _UNSAFE_LABEL_CHARS.sub("-", str(value).strip())
    sanitized = re.sub(r"-{2,}", "-", sanitized).strip("-.")

    return sanitized or fallback


def format_backup_timestamp(moment: Optional[datetime] = None) -> str:
    """
    Genera la marca de tiempo usada en los nombres de los archivos de backup.

    Formato ISO 8601 en UTC con milisegundos y sufijo 'Z', con los ':'
    reemplazados por '-' (ej: 2024-01-01T00-00-00.000Z).

    Args:
        moment: Momento a formatear (por defecto ahora)

    Returns:
        str: Marca de tiempo apta para nombres de archivo
    """
    if moment is None:
        moment = datetime.now(timezone.utc)
    elif moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)

    iso = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    iso = iso.replace("+00:00", "Z")
    return iso.replace(":", "-")


def build_backup_filename(label: str, timestamp: str) -> str:
    """Construye el nombre de archivo '<label>-<timestamp>.zip'."""
    return f"{label}-{timestamp}.zip"


def get_week_key(moment: datetime) -> str:
    """
    Calcula la clave de semana (año-Wnn) usada por la retención semanal.

    Las semanas empiezan en lunes y se cuentan desde el 1 de enero del año
    (en UTC).

    Args:
        moment: Fecha a clasificar

    Returns:
        str: Clave con formato 'YYYY-Wnn'
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)

    first_jan = datetime(moment.year, 1, 1, tzinfo=timezone.utc)
    offset_days = first_jan.weekday()
    elapsed_days = (moment - first_jan).total_seconds() / 86400 + offset_days
    week = int(elapsed_days // 7) + 1

    return f"{moment.year}-W{week:02d}"


def parse_token_expiry(value: Any) -> Optional[datetime]:
    """
    Interpreta una fecha de expiración de token en cualquiera de los formatos
    que guardan los proveedores (epoch en ms, epoch en s o ISO 8601).

    Args:
        value: Valor almacenado en el token

    Returns:
        datetime: Fecha en UTC o None si no hay valor
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        # Epoch en milisegundos si es suficientemente grande
        seconds = value / 1000 if value > 10_000_000_000 else value
        parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
    else:
        parsed = parse_datetime(str(value))

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def unique_in_order(values: Iterable[Optional[str]]) -> List[str]:
    """
    Elimina duplicados y valores vacíos manteniendo el orden original.

    Args:
        values: Valores a filtrar

    Returns:
        List[str]: Lista sin duplicados
    """
    seen = set()
    result = []

    for value in values:
        if not value or value in seen:
            continue
        seen.add(value)
        result.append(value)

    return result


def retry_with_backoff(
    max_retries: int,
    retry_delay: float,
    logger: Optional[logging.Logger] = None,
    exceptions: tuple = (Exception,),
):
    """
    Decorador para reintentar una función con backoff exponencial.

    Args:
        max_retries: Número máximo de reintentos
        retry_delay: Delay inicial entre reintentos (segundos)
        logger: Logger para mensajes de reintento
        exceptions: Excepciones que provocan reintento

    Returns:
        Decorador
    """

    def decorator(func):
        def wrapper(*args, **kwargs):
            last_exception = None

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e

                    if attempt < max_retries:
                        wait_time = retry_delay * (2**attempt)
                        if logger:
                            logger.warning(
                                f"Attempt {attempt + 1} failed: {e}. "
                                f"Retrying in {wait_time:.2f} seconds..."
                            )
                        time.sleep(wait_time)
                    else:
                        if logger:
                            logger.error(
                                f"All {max_retries + 1} attempts failed"
                            )
                        raise

            raise last_exception

        return wrapper

    return decorator


def get_config_name_from_path(config_path: str) -> str:
    """
    Obtiene el nombre de configuración desde la ruta del archivo.

    Args:
        config_path: Ruta del archivo de configuración

    Returns:
        str: Nombre de la configuración (sin extensión)
    """
    return os.path.splitext(os.path.basename(config_path))[0]


def resolve_path(path: str) -> str:
    """Convierte una ruta relativa en absoluta respecto al directorio actual."""
    if os.path.isabs(path):
        return path
    return os.path.join(os.getcwd(), path)


def validate_url(url: str) -> bool:
    """
    Valida que una URL sea válida.

    Args:
        url: URL a validar

    Returns:
        bool: True si es válida
    """
    url_pattern = re.compile(
        r"^https?://"  # http:// o https://
        r"(?:(?:[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?\.)+[A-Z]{2,63}\.?|"  # domain...
        r"localhost|"  # localhost...
        r"[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?|"  # simple hostname...
        r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})"  # ...or ip
        r"(?::\d+)?"  # optional port
        r"(?:/?|[/?]\S+)$",
        re.IGNORECASE,
    )

    return bool(url_pattern.match(url))


def get_process_id() -> int:
    """
    Obtiene el ID del proceso actual.

    Returns:
        int: PID del proceso
    """
    return os.getpid()


def current_epoch_seconds() -> int:
    """Retorna el epoch actual en segundos enteros."""
    return int(time.time())
