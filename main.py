#!/usr/bin/env python3
"""
Punto de entrada del sistema de backup de Actual Budget
=======================================================

Carga el archivo .yaml de configuración y ejecuta el backup de todos los
presupuestos configurados, una sola vez o según la expresión cron.

Cada presupuesto se exporta como un zip sanitizado y se entrega a los
destinos habilitados (disco local, Google Drive, S3, Dropbox, WebDAV).
"""

import argparse
import json
import logging
import sys

from actual_backup.classes import BackupProcessor, ConfigManager
from actual_backup.errors import BackupError


def _setup_logging(verbose: bool) -> None:
    """Configura el logging básico para los mensajes previos a la carga."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _print_summary(result: dict) -> None:
    """
    Imprime un resumen del resultado de un backup único.

    Args:
        result: Resultado de BackupProcessor.run_backup
    """
    stats = result.get("stats", {})
    archives = stats.get("archives", [])

    print("=" * 60)
    print("BACKUP SUMMARY")
    print("=" * 60)
    print(f"Status: {'SUCCESS' if result.get('success') else 'FAILED'}")
    print(f"Targets processed: {len(archives)}/{stats.get('targets_total', 0)}")

    for archive in archives:
        destinations = ", ".join(archive.get("destinations", {})) or "none"
        print(
            f"  - {archive['label']} ({archive['size_bytes']} bytes) "
            f"-> {destinations}"
        )

    if not result.get("success"):
        print(f"Error: {result.get('error', 'Unknown error')}")

    print("=" * 60)


def _validate_only(config_path: str) -> int:
    try:
        config = ConfigManager(config_path)
    except BackupError as e:
        print(f"  ✗ {config_path}: {e}")
        return 1

    print(f"  ✓ {config_path}")
    print(f"    Targets: {', '.join(str(t) for t in config.get_sync_targets())}")
    enabled = [
        name
        for name, section in config.get_destinations_config().items()
        if section.get("enabled")
    ]
    print(f"    Destinations: {', '.join(enabled) or 'none'}")
    return 0


def main():
    """Función principal."""
    parser = argparse.ArgumentParser(
        description="Actual Budget Backup",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                               # Use /config/backup.yaml on schedule
  python main.py --config /path/to/backup.yaml # Use custom config file
  python main.py --once                        # Run a single backup and exit
  python main.py --validate-only               # Only validate the configuration
  python main.py --status                      # Show destinations and last backup
        """,
    )

    parser.add_argument(
        "--config",
        "-c",
        default="/config/backup.yaml",
        help="Configuration file (default: /config/backup.yaml)",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single backup and exit instead of waiting for the schedule",
    )

    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose logging"
    )

    parser.add_argument(
        "--validate-only",
        action="store_true",
        help="Only validate the configuration file, do not run backups",
    )

    parser.add_argument(
        "--status",
        action="store_true",
        help="Print destination link state and last successful backup",
    )

    args = parser.parse_args()

    _setup_logging(args.verbose)
    logger = logging.getLogger("actual_backup")

    if args.validate_only:
        print("Validating configuration file...")
        return _validate_only(args.config)

    try:
        with BackupProcessor(
            args.config, log_level="DEBUG" if args.verbose else None
        ) as processor:
            if args.status:
                print(json.dumps(processor.get_status(), indent=2))
                return 0

            result = processor.run(once=args.once)
            if result is None:
                return 0

            _print_summary(result)
            return 0 if result.get("success") else 1

    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down...")
        return 130

    except BackupError as e:
        logger.error(f"Backup error: {e}")
        return 1

    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
