import os
import uuid
import logging

from app.errors import PathTraversal, StorageProviderError, ValidationError
from app.storage.base import StorageProvider

logger = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 1024 * 1024


class LocalStorageProvider(StorageProvider):
    """Filesystem tree confined under a single root directory"""
    name = 'local'

    def __init__(self, root):
        self.root = os.path.realpath(root)
        os.makedirs(self.root, exist_ok=True)

    def resolve(self, locator):
        """Map a relative locator to an absolute path that stays under the root"""
        if not locator or os.path.isabs(locator):
            raise PathTraversal(locator)
        target = os.path.realpath(os.path.join(self.root, locator))
        if not target.startswith(self.root + os.sep):
            raise PathTraversal(locator)
        return target

    def write(self, locator, stream, content_type=None, max_bytes=None):
        """Store a stream or bytes; more than ``max_bytes`` raises ValidationError and keeps nothing"""
        path = self.resolve(locator)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        # Write beside the target then rename, so a crash never leaves a partial file under the locator
        temp_path = f'{path}.{uuid.uuid4().hex}.tmp'
        try:
            with open(temp_path, 'wb') as f:
                if isinstance(stream, (bytes, bytearray)):
                    if max_bytes is not None and len(stream) > max_bytes:
                        raise ValidationError(f'Data exceeds {max_bytes} bytes')
                    f.write(stream)
                else:
                    written = 0
                    while True:
                        block = stream.read(COPY_BUFFER_SIZE)
                        if not block:
                            break
                        written += len(block)
                        if max_bytes is not None and written > max_bytes:
                            raise ValidationError(f'Data exceeds {max_bytes} bytes')
                        f.write(block)
            os.replace(temp_path, path)
        except ValidationError:
            os.remove(temp_path)
            raise
        except OSError as e:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise StorageProviderError(f'Failed to write {locator}: {e}') from e
        return locator

    def open(self, locator):
        return open(self.resolve(locator), 'rb')

    def exists(self, locator):
        return os.path.isfile(self.resolve(locator))

    def size(self, locator):
        return os.path.getsize(self.resolve(locator))

    def delete(self, locator):
        path = self.resolve(locator)
        try:
            os.remove(path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageProviderError(f'Failed to delete {locator}: {e}') from e

    def remove_empty_dir(self, locator):
        """Drop a namespace directory once its files are gone"""
        path = self.resolve(locator)
        try:
            os.rmdir(path)
        except FileNotFoundError:
            return
        except OSError:
            logger.debug("Directory %s not removed (not empty)", locator)
