# Storage providers package
from .base import StorageProvider, is_object_locator, object_locator, parse_object_locator
from .local_storage import LocalStorageProvider
from .s3_storage import S3StorageProvider
from .factory import object_store_enabled, get_local_storage, get_object_storage, get_storage_provider
