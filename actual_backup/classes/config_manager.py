"""
Gestor de configuración para el sistema de backup de Actual Budget
==================================================================

Maneja la carga, validación y parsing de archivos de configuración YAML
con esquemas robustos para el servidor Actual, los objetivos de
sincronización y cada uno de los destinos de backup.
"""

import copy
import logging
from typing import Any, Dict, List, Optional

import yaml
from schema import And
from schema import Optional as SchemaOptional
from schema import Or, Schema, SchemaError, Use

from ..errors import ConfigError
from ..utils import get_config_name_from_path, resolve_path, validate_url
from .apscheduler_backup import build_cron_trigger
from .models import SyncTarget

OptionalString = Or(None, str)

DEFAULT_SCHEDULE = {"cron": "0 0 * * 1"}

DEFAULT_TOKENS = {"path": "/app/data/tokens"}

DEFAULT_LOCAL = {
    "enabled": True,
    "output_dir": "/app/data/backups",
    "retention_count": 4,
    "retention_weeks": 0,
}

DEFAULT_GOOGLE_DRIVE = {
    "enabled": False,
    "mode": "service-account",
    "credentials_path": None,
    "folder_id": None,
    "oauth": {"client_id": None, "client_secret": None},
}

DEFAULT_S3 = {
    "enabled": False,
    "endpoint": None,
    "region": None,
    "bucket": None,
    "prefix": "",
    "access_key_id": None,
    "secret_access_key": None,
    "force_path_style": False,
}

DEFAULT_DROPBOX = {
    "enabled": False,
    "access_token": None,
    "base_path": "/Actual-Backups",
    "app_key": None,
    "app_secret": None,
}

DEFAULT_WEBDAV = {
    "enabled": False,
    "url": None,
    "username": None,
    "password": None,
    "base_path": "/actual-backups",
}

DEFAULT_LOG_ROTATION = {
    "enabled": True,
    "when": "D",
    "interval": 1,
    "backup_count": 7,
}

DEFAULT_LOKI = {"enabled": False, "url": "", "port": 3100, "tags": {}}

DEFAULT_LOGGING = {
    "log_directory": "/app/data/logs",
    "log_level": "INFO",
    "log_rotation": DEFAULT_LOG_ROTATION,
    "loki": DEFAULT_LOKI,
}


def _section(key: str, default: Dict, body: Dict) -> Dict:
    """Declara una sección opcional cuyo valor por defecto es una copia."""
    return {
        SchemaOptional(key, default=lambda: copy.deepcopy(default)): body
    }


class ConfigManager:
    """
    Gestor de configuración para el sistema de backup.

    Maneja la carga, validación y parsing de archivos de configuración YAML.
    """

    def __init__(self, config_path: str):
        """
        Inicializa el gestor de configuración.

        Args:
            config_path: Ruta al archivo de configuración YAML
        """
        self.config_path = config_path
        self.config_name = get_config_name_from_path(config_path)
        self.config_data = None
        self.logger = logging.getLogger(f"ConfigManager.{self.config_name}")

        # Cargar configuración
        self._load_config()
        self._validate_config()

        self.sync_targets = self._parse_sync_targets()

    def _load_config(self) -> None:
        """Carga el archivo de configuración YAML."""
        try:
            with open(self.config_path, "r", encoding="utf-8") as file:
                self.config_data = yaml.safe_load(file)
        except FileNotFoundError:
            raise ConfigError(
                f"Configuration file not found: {self.config_path}"
            )
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Invalid YAML syntax in {self.config_path}: {e}"
            )
        except OSError as e:
            raise ConfigError(
                f"Error loading configuration {self.config_path}: {e}"
            )

        if not self.config_data:
            raise ConfigError(f"Empty configuration file: {self.config_path}")

    def _get_config_schema(self) -> Schema:
        """
        Define el esquema de validación para la configuración.

        Returns:
            Schema: Esquema de validación
        """
        sync_target_entry = Or(
            And(str, len),
            {
                "sync_id": And(str, len),
                SchemaOptional("budget_id", default=None): OptionalString,
            },
        )

        schema = {
            "actual": {
                "server_url": And(str, validate_url),
                "password": And(str, len),
                SchemaOptional("sync_id", default=None): OptionalString,
                SchemaOptional("sync_targets", default=list): Or(
                    None, [sync_target_entry]
                ),
                SchemaOptional("budget_dir", default="/app/data/budget"): And(
                    str, len
                ),
                SchemaOptional(
                    "encryption_password", default=None
                ): OptionalString,
            },
        }

        schema.update(
            _section("schedule", DEFAULT_SCHEDULE, {"cron": And(str, len)})
        )
        schema.update(
            _section("tokens", DEFAULT_TOKENS, {"path": And(str, len)})
        )
        schema.update(
            _section(
                "local",
                DEFAULT_LOCAL,
                {
                    SchemaOptional("enabled", default=True): bool,
                    SchemaOptional(
                        "output_dir", default="/app/data/backups"
                    ): And(str, len),
                    SchemaOptional("retention_count", default=4): And(
                        int, lambda x: x >= 0
                    ),
                    SchemaOptional("retention_weeks", default=0): And(
                        int, lambda x: x >= 0
                    ),
                },
            )
        )
        schema.update(
            _section(
                "google_drive",
                DEFAULT_GOOGLE_DRIVE,
                {
                    SchemaOptional("enabled", default=False): bool,
                    SchemaOptional("mode", default="service-account"): And(
                        Use(lambda x: str(x).lower()),
                        lambda x: x in ["service-account", "oauth"],
                    ),
                    SchemaOptional(
                        "credentials_path", default=None
                    ): OptionalString,
                    SchemaOptional("folder_id", default=None): OptionalString,
                    SchemaOptional(
                        "oauth",
                        default=lambda: {
                            "client_id": None,
                            "client_secret": None,
                        },
                    ): {
                        SchemaOptional(
                            "client_id", default=None
                        ): OptionalString,
                        SchemaOptional(
                            "client_secret", default=None
                        ): OptionalString,
                    },
                },
            )
        )
        schema.update(
            _section(
                "s3",
                DEFAULT_S3,
                {
                    SchemaOptional("enabled", default=False): bool,
                    SchemaOptional("endpoint", default=None): OptionalString,
                    SchemaOptional("region", default=None): OptionalString,
                    SchemaOptional("bucket", default=None): OptionalString,
                    SchemaOptional("prefix", default=""): Or(None, str),
                    SchemaOptional(
                        "access_key_id", default=None
                    ): OptionalString,
                    SchemaOptional(
                        "secret_access_key", default=None
                    ): OptionalString,
                    SchemaOptional("force_path_style", default=False): bool,
                },
            )
        )
        schema.update(
            _section(
                "dropbox",
                DEFAULT_DROPBOX,
                {
                    SchemaOptional("enabled", default=False): bool,
                    SchemaOptional(
                        "access_token", default=None
                    ): OptionalString,
                    SchemaOptional(
                        "base_path", default="/Actual-Backups"
                    ): And(str, len),
                    SchemaOptional("app_key", default=None): OptionalString,
                    SchemaOptional("app_secret", default=None): OptionalString,
                },
            )
        )
        schema.update(
            _section(
                "webdav",
                DEFAULT_WEBDAV,
                {
                    SchemaOptional("enabled", default=False): bool,
                    SchemaOptional("url", default=None): OptionalString,
                    SchemaOptional("username", default=None): OptionalString,
                    SchemaOptional("password", default=None): OptionalString,
                    SchemaOptional(
                        "base_path", default="/actual-backups"
                    ): And(str, len),
                },
            )
        )
        schema.update(
            _section(
                "logging",
                DEFAULT_LOGGING,
                {
                    SchemaOptional(
                        "log_directory", default="/app/data/logs"
                    ): And(str, len),
                    SchemaOptional("log_level", default="INFO"): And(
                        str,
                        lambda x: x
                        in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                    ),
                    SchemaOptional(
                        "log_rotation",
                        default=lambda: copy.deepcopy(DEFAULT_LOG_ROTATION),
                    ): {
                        "enabled": bool,
                        "when": And(str, lambda x: x in ["D", "H", "M", "S"]),
                        "interval": And(int, lambda x: x > 0),
                        "backup_count": And(int, lambda x: x >= 0),
                    },
                    SchemaOptional(
                        "loki", default=lambda: copy.deepcopy(DEFAULT_LOKI)
                    ): {
                        "enabled": bool,
                        "url": str,
                        "port": And(int, lambda x: 1 <= x <= 65535),
                        SchemaOptional("tags", default=dict): {str: str},
                    },
                },
            )
        )

        return Schema(schema)

    def _validate_config(self) -> None:
        """Valida la configuración contra el esquema."""
        try:
            schema = self._get_config_schema()
            self.config_data = schema.validate(self.config_data)
        except SchemaError as e:
            raise ConfigError(f"Configuration validation failed: {e}")

        # Validaciones adicionales
        self._validate_additional_rules()

    def _validate_additional_rules(self) -> None:
        """Valida reglas adicionales de configuración."""
        actual = self.config_data["actual"]

        if not actual.get("sync_targets") and not actual.get("sync_id"):
            raise ConfigError(
                "Either actual.sync_targets or actual.sync_id is required"
            )

        # La expresión cron debe ser válida para APScheduler
        build_cron_trigger(self.config_data["schedule"]["cron"])

    def _parse_sync_targets(self) -> List[SyncTarget]:
        """
        Construye la lista efectiva de objetivos de sincronización.

        Acepta entradas 'syncId', 'budgetId:syncId' o diccionarios con
        'sync_id' y 'budget_id'. Las entradas repetidas se descartan
        conservando la primera aparición.

        Returns:
            List[SyncTarget]: Objetivos en el orden configurado
        """
        actual = self.config_data["actual"]
        entries = actual.get("sync_targets") or []

        if not entries:
            return [SyncTarget(sync_id=actual["sync_id"].strip())]

        targets = []
        seen = set()

        for entry in entries:
            target = self._parse_sync_target_entry(entry)
            key = (target.budget_id, target.sync_id)
            if key in seen:
                self.logger.debug(f"Skipping duplicate sync target {target}")
                continue
            seen.add(key)
            targets.append(target)

        return targets

    def _parse_sync_target_entry(self, entry: Any) -> SyncTarget:
        """
        Parsea una entrada individual de sync_targets.

        Args:
            entry: Cadena o diccionario configurado

        Returns:
            SyncTarget: Objetivo parseado

        Raises:
            ConfigError: Si la entrada está incompleta
        """
        if isinstance(entry, dict):
            sync_id = entry["sync_id"].strip()
            budget_id = (entry.get("budget_id") or "").strip() or None
            if not sync_id:
                raise ConfigError("sync_targets entries must include a sync_id")
            return SyncTarget(sync_id=sync_id, budget_id=budget_id)

        parts = entry.split(":")
        if len(parts) == 1:
            sync_id = parts[0].strip()
            if not sync_id:
                raise ConfigError("sync_targets entries must include a sync ID")
            return SyncTarget(sync_id=sync_id)

        budget_id = parts[0].strip()
        sync_id = parts[1].strip()
        if not budget_id or not sync_id:
            raise ConfigError(
                "sync_targets entries must include both budget and sync IDs "
                "when using the budgetId:syncId form"
            )
        return SyncTarget(sync_id=sync_id, budget_id=budget_id)

    def get_config_name(self) -> str:
        """Retorna el nombre de la configuración."""
        return self.config_name

    def get_server_url(self) -> str:
        """Retorna la URL del servidor de sincronización."""
        return self.config_data["actual"]["server_url"]

    def get_server_password(self) -> str:
        """Retorna la contraseña del servidor de sincronización."""
        return self.config_data["actual"]["password"]

    def get_encryption_password(self) -> Optional[str]:
        """Retorna la contraseña de cifrado de los presupuestos si existe."""
        return self.config_data["actual"].get("encryption_password") or None

    def get_budget_dir(self) -> str:
        """Retorna el directorio local de caché de presupuestos."""
        return resolve_path(self.config_data["actual"]["budget_dir"])

    def get_sync_targets(self) -> List[SyncTarget]:
        """Retorna los objetivos de sincronización configurados."""
        return list(self.sync_targets)

    def get_schedule(self) -> str:
        """Retorna la expresión cron del backup programado."""
        return self.config_data["schedule"]["cron"]

    def get_token_store_path(self) -> str:
        """Retorna el directorio del almacén de tokens."""
        return resolve_path(self.config_data["tokens"]["path"])

    def get_local_config(self) -> Dict:
        """Retorna la configuración del destino local."""
        local = dict(self.config_data["local"])
        local["output_dir"] = resolve_path(local["output_dir"])
        return local

    def get_google_drive_config(self) -> Dict:
        """Retorna la configuración de Google Drive."""
        google_drive = copy.deepcopy(self.config_data["google_drive"])
        if google_drive.get("credentials_path"):
            google_drive["credentials_path"] = resolve_path(
                google_drive["credentials_path"]
            )
        return google_drive

    def get_s3_config(self) -> Dict:
        """Retorna la configuración de S3."""
        s3 = dict(self.config_data["s3"])
        s3["prefix"] = s3.get("prefix") or ""
        return s3

    def get_dropbox_config(self) -> Dict:
        """Retorna la configuración de Dropbox."""
        return dict(self.config_data["dropbox"])

    def get_webdav_config(self) -> Dict:
        """Retorna la configuración de WebDAV."""
        return dict(self.config_data["webdav"])

    def get_destinations_config(self) -> Dict[str, Dict]:
        """
        Retorna la configuración de todos los destinos por nombre.

        Returns:
            Dict: Configuración de cada destino
        """
        return {
            "local": self.get_local_config(),
            "google_drive": self.get_google_drive_config(),
            "s3": self.get_s3_config(),
            "dropbox": self.get_dropbox_config(),
            "webdav": self.get_webdav_config(),
        }

    def get_logging_config(self) -> Dict:
        """Retorna la configuración de logging."""
        logging_config = copy.deepcopy(self.config_data["logging"])
        logging_config["log_directory"] = resolve_path(
            logging_config["log_directory"]
        )
        return logging_config

    def get_log_level(self) -> str:
        """Retorna el nivel de log."""
        return self.config_data["logging"]["log_level"]

    def __repr__(self) -> str:
        """Representación en string del objeto."""
        return (
            f"ConfigManager(config_name='{self.config_name}', "
            f"targets={len(self.sync_targets)})"
        )
