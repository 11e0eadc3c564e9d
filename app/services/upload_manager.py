"""
Upload session manager.

Owns the chunked upload state machine:

    pending -> uploading -> assembling -> completed
                                       -> failed -> assembling (finalize retry)
    pending / uploading / failed -> cancelled

Quota is reserved when a session starts. A completed session keeps the
reservation as the owner's charge; cancel and expiry release it. A failed
session keeps both its reservation and its chunks so finalize can be retried.
"""

import secrets
import logging
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from app import db
from app.errors import AssemblyError, InvalidState, NotFound, Unauthorized, ValidationError
from app.models import UploadChunk, UploadSession, UploadStatus, Video, OPEN_STATUSES, RELEASABLE_STATUSES
from app.services.assembler import ChunkAssembler
from app.services.cache_service import ConfigCache
from app.services.quota_ledger import QuotaLedger
from app.services.video_catalog import VideoCatalog
from app.storage import get_local_storage, get_object_storage
from app.utils.runtime import debug_log

logger = logging.getLogger(__name__)

MB = 1024 * 1024


def chunk_locator(session_id, index):
    """Local storage locator for a chunk written through this process"""
    return f"chunks/{session_id}/{index}"


def direct_chunk_key(owner_id, session_id, index):
    """Object key a client uploads a chunk to with a presigned URL"""
    return f"chunks/{owner_id}/{session_id}/{index}"


def _parse_int(value, field):
    if isinstance(value, bool):
        raise ValidationError(f'Invalid {field}')
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f'Invalid {field}')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {field}')


class UploadSessionManager:

    def __init__(self, config_cache=None, ledger=None, assembler=None, catalog=None):
        self.config_cache = config_cache or ConfigCache()
        self.ledger = ledger or QuotaLedger(self.config_cache)
        self.assembler = assembler or ChunkAssembler()
        self.catalog = catalog or VideoCatalog()

    # -- lookups ---------------------------------------------------------

    def get_session(self, session_id, owner_id):
        session = UploadSession.query.get(session_id)
        if session is None:
            raise NotFound()
        if session.user_id != owner_id:
            raise Unauthorized()
        return session

    def status(self, session_id, owner_id):
        return self.get_session(session_id, owner_id).to_dict()

    def _chunk_index(self, session, chunk_number):
        index = _parse_int(chunk_number, 'chunk number')
        if index < 0 or index >= session.total_chunks:
            raise ValidationError('Invalid chunk number')
        return index

    def _require_open(self, session):
        if not session.is_open():
            raise InvalidState(f'Cannot upload chunks in status: {session.status.value}')

    def _recorded(self, session_id, index):
        return UploadChunk.query.filter_by(session_id=session_id, chunk_number=index).first() is not None

    # -- start -----------------------------------------------------------

    def start(self, owner_id, filename, file_size, mimetype, total_chunks):
        if not filename or not isinstance(filename, str):
            raise ValidationError('Invalid filename')
        file_size = _parse_int(file_size, 'file size')
        total_chunks = _parse_int(total_chunks, 'chunk count')
        if file_size <= 0:
            raise ValidationError('Invalid file size')
        if total_chunks <= 0 or total_chunks > current_app.config['MAX_TOTAL_CHUNKS']:
            raise ValidationError('Invalid chunk count')

        settings = self.config_cache.get_storage_config()
        allowed_types = settings['allowed_types']
        if mimetype not in allowed_types:
            raise ValidationError(f"File type not allowed. Allowed types: {', '.join(allowed_types)}")
        max_size = settings['max_file_size_bytes']
        if file_size > max_size:
            raise ValidationError(f'File too large. Maximum size: {max_size // MB}MB')

        debug_log(logger, "Starting session for user %s, file %s, size %s", owner_id, filename, file_size)

        self.ledger.reconcile(owner_id)
        try:
            self.ledger.reserve(owner_id, file_size, commit=False)

            now = datetime.utcnow()
            session = UploadSession(
                user_id=owner_id,
                filename=filename,
                file_size=file_size,
                mimetype=mimetype,
                total_chunks=total_chunks,
                chunks_uploaded=0,
                status=UploadStatus.PENDING,
                share_id=secrets.token_hex(6),
                quota_reserved=True,
                reserved_bytes=file_size,
                created_at=now,
                updated_at=now,
                expires_at=now + current_app.config['UPLOAD_SESSION_TTL']
            )
            db.session.add(session)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info("Upload session %s started for user %s (%s bytes reserved)", session.id, owner_id, file_size)
        return session

    # -- chunk arrival ---------------------------------------------------

    def upload_chunk(self, session_id, owner_id, chunk_number, stream):
        """Store a chunk sent through this process, then record it"""
        session = self.get_session(session_id, owner_id)
        index = self._chunk_index(session, chunk_number)
        if self._recorded(session.id, index):
            debug_log(logger, "Chunk %s already recorded for session %s", index, session.id)
            return session
        self._require_open(session)

        max_chunk_mb = current_app.config['MAX_CHUNK_SIZE_MB']
        local = get_local_storage()
        try:
            locator = local.write(chunk_locator(session.id, index), stream, max_bytes=max_chunk_mb * MB)
        except ValidationError:
            raise ValidationError(f'Chunk too large. Maximum size: {max_chunk_mb}MB')

        try:
            return self.accept_chunk(session.id, owner_id, index, local.size(locator), locator)
        except InvalidState:
            local.delete(locator)
            raise

    def accept_chunk(self, session_id, owner_id, chunk_number, size, locator):
        """Record a stored chunk; re-submitting a recorded index changes nothing"""
        session = self.get_session(session_id, owner_id)
        index = self._chunk_index(session, chunk_number)
        if self._recorded(session.id, index):
            return session
        self._require_open(session)

        db.session.add(UploadChunk(session_id=session.id, chunk_number=index,
                                   chunk_size=size, storage_path=locator))
        try:
            db.session.flush()
        except IntegrityError:
            # Same index recorded by a concurrent request
            db.session.rollback()
            return self.get_session(session_id, owner_id)

        counted = UploadSession.query\
            .filter(UploadSession.id == session.id, UploadSession.status.in_(OPEN_STATUSES))\
            .update({
                'chunks_uploaded': UploadSession.chunks_uploaded + 1,
                'status': UploadStatus.UPLOADING,
                'updated_at': datetime.utcnow()
            }, synchronize_session=False)
        if not counted:
            # Cancelled or finalized after the status check above
            db.session.rollback()
            session = self.get_session(session_id, owner_id)
            raise InvalidState(f'Cannot upload chunks in status: {session.status.value}')
        db.session.commit()
        db.session.refresh(session)

        debug_log(logger, "Chunk %s recorded: %s/%s", index, session.chunks_uploaded, session.total_chunks)
        return session

    def presign_chunk(self, session_id, owner_id, chunk_number):
        """Presigned PUT URL for uploading a chunk straight to the object store"""
        session = self.get_session(session_id, owner_id)
        index = self._chunk_index(session, chunk_number)
        self._require_open(session)

        remote = get_object_storage(self.config_cache.get_storage_config())
        if remote is None:
            raise ValidationError('Direct upload not configured')

        key = direct_chunk_key(owner_id, session.id, index)
        url = remote.presign_put(key, expires_in=current_app.config['PRESIGNED_URL_EXPIRES'])
        return url, key

    def complete_direct_chunk(self, session_id, owner_id, chunk_number, key, size):
        """Record a chunk the client reports as uploaded to the object store"""
        session = self.get_session(session_id, owner_id)
        index = self._chunk_index(session, chunk_number)
        if key != direct_chunk_key(owner_id, session.id, index):
            raise ValidationError('Chunk key does not match this upload session')
        size = _parse_int(size, 'chunk size')
        if size < 0:
            raise ValidationError('Invalid chunk size')

        remote = get_object_storage(self.config_cache.get_storage_config())
        if remote is None:
            raise ValidationError('Direct upload not configured')
        return self.accept_chunk(session.id, owner_id, index, size, remote.locator_for(key))

    # -- finalize --------------------------------------------------------

    def finalize(self, session_id, owner_id):
        session = self.get_session(session_id, owner_id)
        if session.status == UploadStatus.COMPLETED:
            return session
        if session.status not in RELEASABLE_STATUSES:
            raise InvalidState(f'Cannot complete upload in status: {session.status.value}')
        if not session.is_complete():
            raise ValidationError('Not all chunks uploaded', {
                'chunksUploaded': session.chunks_uploaded,
                'totalChunks': session.total_chunks
            })

        claimed = UploadSession.query\
            .filter_by(id=session.id, status=session.status)\
            .update({'status': UploadStatus.ASSEMBLING, 'error_message': None,
                     'updated_at': datetime.utcnow()}, synchronize_session=False)
        db.session.commit()
        if not claimed:
            raise InvalidState('Upload session changed state before assembly')
        db.session.refresh(session)

        settings = self.config_cache.get_storage_config()
        chunks = session.chunks.order_by(UploadChunk.chunk_number).all()
        locators = [chunk.storage_path for chunk in chunks]

        try:
            storage_path = self.assembler.assemble(session, chunks, settings)
        except AssemblyError as e:
            self._mark_failed(session.id, e.message)
            raise
        except Exception as e:
            self._mark_failed(session.id, str(e))
            raise AssemblyError(f'Failed to assemble upload: {e}') from e

        try:
            expires_at = Video.expiry_from_days(self.ledger.video_expiration_days(owner_id))
            video = self.catalog.create_video(
                owner_id=owner_id,
                storage_path=storage_path,
                size=session.file_size,
                share_id=session.share_id,
                filename=session.filename,
                expires_at=expires_at
            )
            session.status = UploadStatus.COMPLETED
            session.storage_path = storage_path
            session.video_id = video.id
            session.completed_at = datetime.utcnow()
            # The reservation is now the owner's permanent charge, accounted by the video
            session.quota_reserved = False
            self.ledger.record_upload(owner_id, commit=False)
            UploadChunk.query.filter_by(session_id=session.id).delete(synchronize_session=False)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.exception("Recording finished upload %s failed", session_id)
            # A retry assembles a new artifact; nothing references this one
            self.assembler.discard([storage_path], settings)
            self._mark_failed(session_id, str(e))
            raise

        self.assembler.discard(locators, settings)
        logger.info("Upload session %s completed as video %s", session.id, session.video_id)
        return session

    def _mark_failed(self, session_id, message):
        db.session.rollback()
        UploadSession.query.filter_by(id=session_id).update({
            'status': UploadStatus.FAILED,
            'error_message': message,
            'updated_at': datetime.utcnow()
        }, synchronize_session=False)
        db.session.commit()
        logger.error("Upload session %s failed: %s", session_id, message)

    # -- cancel / expiry -------------------------------------------------

    def cancel(self, session_id, owner_id):
        session = self.get_session(session_id, owner_id)
        if session.status in (UploadStatus.COMPLETED, UploadStatus.CANCELLED):
            return session
        if self.release_session(session) is None:
            db.session.refresh(session)
            if session.status not in (UploadStatus.COMPLETED, UploadStatus.CANCELLED):
                raise InvalidState(f'Cannot cancel upload in status: {session.status.value}')
        return session

    def expire(self, session):
        return self.release_session(session, reason='Session expired')

    def release_session(self, session, reason=None):
        """Move a releasable session to cancelled, free its reservation and chunk data.

        Returns the released byte count, or None if the session was no longer
        releasable when the transition was attempted.
        """
        owner_id = session.user_id
        released = int(session.reserved_bytes or 0) if session.quota_reserved else 0
        locators = [chunk.storage_path for chunk in session.chunks.all()]

        try:
            claimed = UploadSession.query\
                .filter(UploadSession.id == session.id, UploadSession.status.in_(RELEASABLE_STATUSES))\
                .update({'status': UploadStatus.CANCELLED, 'quota_reserved': False,
                         'error_message': reason, 'updated_at': datetime.utcnow()},
                        synchronize_session=False)
            if not claimed:
                db.session.rollback()
                return None
            if released > 0:
                self.ledger.release(owner_id, released, commit=False)
            UploadChunk.query.filter_by(session_id=session.id).delete(synchronize_session=False)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        self.assembler.discard(locators, self.config_cache.get_storage_config())
        logger.info("Upload session %s cancelled (%s bytes released)", session.id, released)
        return released


def build_upload_manager():
    return UploadSessionManager(config_cache=ConfigCache())
