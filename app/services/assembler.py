import os
import time
import shutil
import secrets
import logging

from app.errors import AssemblyError, StorageProviderError, UploadError
from app.storage import get_local_storage, get_object_storage, is_object_locator

logger = logging.getLogger(__name__)

COPY_BUFFER_SIZE = 1024 * 1024


def final_filename(filename):
    """Unique artifact name that keeps the uploaded extension"""
    ext = os.path.splitext(filename or '')[1]
    return f"{int(time.time() * 1000)}_{secrets.token_hex(8)}{ext}"


class ChunkAssembler:
    """Turns a session's chunks into one durable object.

    Chunks written through this process are concatenated on local disk and,
    when the object store is active, pushed up as a single object. Chunks the
    client put straight into the object store are stitched together there with
    a multipart copy.
    """

    def __init__(self, local_storage=None):
        self._local_storage = local_storage

    @property
    def local_storage(self):
        if self._local_storage is None:
            self._local_storage = get_local_storage()
        return self._local_storage

    def assemble(self, session, chunks, settings):
        """Returns the storage locator of the assembled artifact"""
        chunks = self._ordered(session, chunks)
        placements = [is_object_locator(chunk.storage_path) for chunk in chunks]

        if all(placements):
            return self.assemble_direct(session, chunks, settings)
        if any(placements):
            raise AssemblyError('Chunks were stored in mixed locations')
        return self.assemble_local(session, chunks, settings)

    def _ordered(self, session, chunks):
        ordered = sorted(chunks, key=lambda chunk: chunk.chunk_number)
        present = {chunk.chunk_number for chunk in ordered}
        for index in range(session.total_chunks):
            if index not in present:
                raise AssemblyError(f'chunk {index} not found')
        if len(ordered) != session.total_chunks:
            raise AssemblyError('Chunk count mismatch')
        return ordered

    def assemble_local(self, session, chunks, settings):
        local = self.local_storage
        final_name = final_filename(session.filename)
        final_path = local.resolve(final_name)

        try:
            with open(final_path, 'wb') as out:
                for chunk in chunks:
                    if not local.exists(chunk.storage_path):
                        raise AssemblyError(f'chunk {chunk.chunk_number} not found')
                    with local.open(chunk.storage_path) as src:
                        shutil.copyfileobj(src, out, COPY_BUFFER_SIZE)
        except (AssemblyError, OSError) as e:
            if os.path.exists(final_path):
                os.remove(final_path)
            if isinstance(e, AssemblyError):
                raise
            raise AssemblyError(f'Failed to assemble chunks: {e}') from e

        logger.info("Assembled %s chunks for session %s into %s", len(chunks), session.id, final_name)

        remote = get_object_storage(settings)
        if remote is None:
            return final_name

        key = f"{session.user_id}/{final_name}"
        try:
            storage_path = remote.upload_file(final_path, key, session.mimetype)
        except StorageProviderError as e:
            logger.error("Object storage upload failed for session %s, keeping local copy: %s", session.id, e)
            return final_name

        try:
            local.delete(final_name)
        except StorageProviderError as e:
            logger.warning("Uploaded %s but could not remove local copy: %s", key, e)
        return storage_path

    def assemble_direct(self, session, chunks, settings):
        remote = get_object_storage(settings)
        if remote is None:
            raise AssemblyError('Object storage is not configured for direct-upload assembly')

        key = f"{session.user_id}/{final_filename(session.filename)}"
        try:
            upload_id = remote.begin_multipart(key, session.mimetype)
        except StorageProviderError as e:
            raise AssemblyError(f'Failed to start object storage assembly: {e.message}') from e

        try:
            parts = [
                remote.copy_part(key, upload_id, part_number, chunk.storage_path)
                for part_number, chunk in enumerate(chunks, start=1)
            ]
            storage_path = remote.complete_multipart(key, upload_id, parts)
        except StorageProviderError as e:
            try:
                remote.abort_multipart(key, upload_id)
            except StorageProviderError as abort_error:
                logger.warning("Could not abort multipart upload %s for %s: %s", upload_id, key, abort_error)
            raise AssemblyError(f'Failed to assemble chunks in object storage: {e.message}') from e

        logger.info("Assembled %s direct chunks for session %s into %s", len(chunks), session.id, key)
        return storage_path

    def discard(self, locators, settings):
        """Best-effort removal of chunk data; failures are logged and skipped"""
        remote = None
        directories = set()
        removed = 0

        for locator in locators:
            try:
                if is_object_locator(locator):
                    remote = remote or get_object_storage(settings)
                    if remote is None:
                        logger.warning("Cannot delete %s: object storage is not configured", locator)
                        continue
                    remote.delete(locator)
                else:
                    self.local_storage.delete(locator)
                    directories.add(os.path.dirname(locator))
                removed += 1
            except UploadError as e:
                logger.warning("Failed to delete chunk data %s: %s", locator, e)

        for directory in directories:
            if directory:
                self.local_storage.remove_empty_dir(directory)
        return removed
