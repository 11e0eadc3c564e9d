import logging

from flask import current_app

from app.models import PROVIDER_S3
from app.storage.local_storage import LocalStorageProvider
from app.storage.s3_storage import S3StorageProvider

logger = logging.getLogger(__name__)


def object_store_enabled(settings):
    """The object store is active only with a complete set of credentials"""
    return (settings.get('provider') == PROVIDER_S3
            and bool(settings.get('s3_access_key'))
            and bool(settings.get('s3_secret_key'))
            and bool(settings.get('s3_bucket')))


def get_local_storage(root=None):
    return LocalStorageProvider(root or current_app.config['STORAGE_PATH'])


def get_object_storage(settings):
    """Object store provider, or None when it is not configured"""
    if not object_store_enabled(settings):
        return None
    return S3StorageProvider(settings)


def get_storage_provider(settings, root=None):
    """Provider for the active backend named in the storage configuration"""
    provider = get_object_storage(settings)
    if provider is None:
        if settings.get('provider') == PROVIDER_S3:
            logger.warning("Object storage selected but credentials are incomplete; using local storage")
        return get_local_storage(root)
    return provider
