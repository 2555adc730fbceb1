"""
Destinos de backup
==================

Adaptadores de almacenamiento en el orden en que se despachan.
"""

from .base import Destination
from .dropbox import DropboxDestination
from .google_drive import GoogleDriveDestination
from .local import LocalDestination, read_success_marker, write_success_marker
from .s3 import S3Destination
from .webdav import WebDAVDestination

# Orden de despacho: disco local y después los proveedores en la nube
DESTINATION_CLASSES = (
    LocalDestination,
    GoogleDriveDestination,
    S3Destination,
    DropboxDestination,
    WebDAVDestination,
)

# Proveedor del almacén de tokens para cada destino OAuth
TOKEN_PROVIDERS = {
    GoogleDriveDestination.name: "google",
    DropboxDestination.name: "dropbox",
}

__all__ = [
    "Destination",
    "LocalDestination",
    "GoogleDriveDestination",
    "S3Destination",
    "DropboxDestination",
    "WebDAVDestination",
    "DESTINATION_CLASSES",
    "TOKEN_PROVIDERS",
    "read_success_marker",
    "write_success_marker",
]
