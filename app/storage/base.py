"""
Storage provider interface.

Upload components talk to this interface only, so the local filesystem tree
and the S3-compatible object store can be swapped by configuration.
"""

from abc import ABC, abstractmethod

from app.errors import StorageProviderError

OBJECT_SCHEME = 's3://'


def is_object_locator(locator):
    return bool(locator) and locator.startswith(OBJECT_SCHEME)


def object_locator(bucket, key):
    return f'{OBJECT_SCHEME}{bucket}/{key}'


def parse_object_locator(locator):
    """Split ``s3://bucket/key`` into ``(bucket, key)``"""
    if not is_object_locator(locator):
        raise StorageProviderError(f'Not an object storage locator: {locator}')
    bucket, _, key = locator[len(OBJECT_SCHEME):].partition('/')
    if not bucket or not key:
        raise StorageProviderError(f'Malformed object storage locator: {locator}')
    return bucket, key


class StorageProvider(ABC):
    name = None
    supports_direct_upload = False

    @abstractmethod
    def write(self, locator, stream, content_type=None):
        """Write a stream to the locator and return the stored locator"""

    @abstractmethod
    def delete(self, locator):
        """Remove the data behind a locator; missing data is not an error"""

    @abstractmethod
    def exists(self, locator):
        """Whether data is present at the locator"""

    def presign_put(self, key, expires_in=3600):
        raise StorageProviderError('Direct upload not configured')

    def begin_multipart(self, key, content_type=None):
        raise StorageProviderError(f'Multipart assembly is not supported by {self.name} storage')

    def copy_part(self, key, upload_id, part_number, source_locator):
        raise StorageProviderError(f'Multipart assembly is not supported by {self.name} storage')

    def complete_multipart(self, key, upload_id, parts):
        raise StorageProviderError(f'Multipart assembly is not supported by {self.name} storage')

    def abort_multipart(self, key, upload_id):
        raise StorageProviderError(f'Multipart assembly is not supported by {self.name} storage')
