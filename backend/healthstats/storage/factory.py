"""
Storage Factory - Creates the configured object store backend.
"""

from typing import Any

from ..exceptions import ConfigurationError
from .interface import StorageInterface
from .local_storage import LocalStorage
from .s3_storage import S3Storage


def create_storage(config: Any) -> StorageInterface:
    """
    Create a storage backend from settings.

    Args:
        config: Settings object with storage_type, local_storage_path,
            aws_bucket_name and aws_region

    Returns:
        StorageInterface implementation
    """
    storage_type = (config.storage_type or "local").lower()

    if storage_type == "local":
        return LocalStorage(config.local_storage_path)

    elif storage_type == "s3":
        if not config.aws_bucket_name:
            raise ConfigurationError("AWS_BUCKET_NAME environment variable is not set")
        return S3Storage(bucket=config.aws_bucket_name, region=config.aws_region)

    else:
        raise ConfigurationError(f"Unsupported storage type: {config.storage_type}")
