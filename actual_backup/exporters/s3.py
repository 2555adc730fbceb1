"""
Destino S3
==========

Sube los backups a un bucket S3 o compatible (MinIO, Backblaze, ...).
"""

import logging

import boto3
from botocore.config import Config

from ..errors import ConfigError
from .base import Destination

DEFAULT_REGION = "us-east-1"


class S3Destination(Destination):
    """Sube backups a un bucket S3."""

    name = "s3"
    label = "S3"

    def validate(self, logger: logging.Logger) -> None:
        if not self.config.get("bucket"):
            raise ConfigError("s3.enabled=true but s3.bucket is not set")

    def _create_client(self):
        options = {
            "region_name": self.config.get("region") or DEFAULT_REGION,
            "config": Config(
                s3={
                    "addressing_style": "path"
                    if self.config.get("force_path_style")
                    else "auto"
                }
            ),
        }

        if self.config.get("endpoint"):
            options["endpoint_url"] = self.config["endpoint"]

        if self.config.get("access_key_id") and self.config.get("secret_access_key"):
            options["aws_access_key_id"] = self.config["access_key_id"]
            options["aws_secret_access_key"] = self.config["secret_access_key"]

        return boto3.client("s3", **options)

    def store(self, data: bytes, filename: str, logger: logging.Logger) -> str:
        bucket = self.config["bucket"]
        key = f"{self.config.get('prefix') or ''}{filename}"

        self._create_client().put_object(
            Bucket=bucket,
            Key=key,
            Body=data,
            ContentType="application/zip",
        )

        logger.info(f"Uploaded backup to S3: s3://{bucket}/{key}")
        return f"s3://{bucket}/{key}"
