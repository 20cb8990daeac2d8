"""Storage module - object store backends and the per-metric snapshot store."""

from .interface import StorageInterface
from .local_storage import LocalStorage
from .s3_storage import S3Storage
from .factory import create_storage
from .snapshot_store import SnapshotStore, merge_records

__all__ = ['StorageInterface', 'LocalStorage', 'S3Storage', 'create_storage', 'SnapshotStore', 'merge_records']
