import os
import logging
from datetime import datetime

from flask import current_app

from app import db
from app.models import UploadChunk, UploadSession, UploadStatus, RELEASABLE_STATUSES
from app.services.cache_service import ConfigCache
from app.services.quota_ledger import QuotaLedger
from app.services.upload_manager import UploadSessionManager
from app.services.video_catalog import VideoCatalog

logger = logging.getLogger(__name__)

CHUNK_ROOT = 'chunks'


class ExpiryReaper:
    """Periodic sweep that reclaims abandoned uploads.

    Every item is handled in its own transaction. A failure is logged with
    the item id, rolled back and counted, and the sweep moves on.
    """

    def __init__(self, manager=None, ledger=None, catalog=None, config_cache=None):
        self.config_cache = config_cache or ConfigCache()
        self.ledger = ledger or QuotaLedger(self.config_cache)
        self.catalog = catalog or VideoCatalog()
        self.manager = manager or UploadSessionManager(
            config_cache=self.config_cache, ledger=self.ledger, catalog=self.catalog)

    def sweep(self, now=None):
        now = now or datetime.utcnow()
        stats = {
            'expired_sessions': 0,
            'freed_bytes': 0,
            'orphaned_chunks': 0,
            'purged_sessions': 0,
            'expired_videos': 0,
            'errors': 0,
        }

        self.expire_sessions(now, stats)
        self.remove_orphaned_chunks(stats)
        self.purge_sessions(now, stats)
        self.expire_videos(now, stats)

        logger.info("Upload sweep finished: %s", stats)
        return stats

    def expire_sessions(self, now, stats):
        session_ids = [row.id for row in UploadSession.query
                       .with_entities(UploadSession.id)
                       .filter(UploadSession.status.in_(RELEASABLE_STATUSES),
                               UploadSession.expires_at < now)
                       .all()]

        for session_id in session_ids:
            try:
                session = UploadSession.query.get(session_id)
                if session is None:
                    continue
                released = self.manager.expire(session)
                if released is not None:
                    stats['expired_sessions'] += 1
                    stats['freed_bytes'] += released
            except Exception:
                db.session.rollback()
                stats['errors'] += 1
                logger.exception("Failed to expire upload session %s", session_id)

    def remove_orphaned_chunks(self, stats):
        """Chunk data whose session is gone or can no longer use it"""
        settings = self.config_cache.get_storage_config()
        local = self.manager.assembler.local_storage

        leftovers = UploadChunk.query\
            .join(UploadSession, UploadChunk.session_id == UploadSession.id)\
            .filter(UploadSession.status.in_([UploadStatus.COMPLETED, UploadStatus.CANCELLED]))\
            .all()
        by_session = {}
        for chunk in leftovers:
            by_session.setdefault(chunk.session_id, []).append(chunk.storage_path)

        for session_id, locators in by_session.items():
            try:
                UploadChunk.query.filter_by(session_id=session_id).delete(synchronize_session=False)
                db.session.commit()
                stats['orphaned_chunks'] += self.manager.assembler.discard(locators, settings)
            except Exception:
                db.session.rollback()
                stats['errors'] += 1
                logger.exception("Failed to remove leftover chunks of session %s", session_id)

        chunk_root = local.resolve(CHUNK_ROOT)
        if not os.path.isdir(chunk_root):
            return

        for session_id in os.listdir(chunk_root):
            try:
                session = UploadSession.query.get(session_id)
                if session is not None and session.status not in (UploadStatus.COMPLETED, UploadStatus.CANCELLED):
                    continue
                directory = f"{CHUNK_ROOT}/{session_id}"
                locators = [f"{directory}/{name}" for name in os.listdir(local.resolve(directory))]
                stats['orphaned_chunks'] += self.manager.assembler.discard(locators, settings)
                local.remove_empty_dir(directory)
            except Exception:
                db.session.rollback()
                stats['errors'] += 1
                logger.exception("Failed to remove orphaned chunk directory %s", session_id)

    def purge_sessions(self, now, stats):
        """Hard-delete sinks that are older than the retention window"""
        cutoff = now - current_app.config['UPLOAD_SESSION_RETENTION']
        session_ids = [row.id for row in UploadSession.query
                       .with_entities(UploadSession.id)
                       .filter(UploadSession.status.in_([UploadStatus.COMPLETED, UploadStatus.CANCELLED]),
                               UploadSession.quota_reserved.is_(False),
                               UploadSession.updated_at < cutoff)
                       .all()]

        for session_id in session_ids:
            try:
                UploadChunk.query.filter_by(session_id=session_id).delete(synchronize_session=False)
                UploadSession.query.filter_by(id=session_id).delete(synchronize_session=False)
                db.session.commit()
                stats['purged_sessions'] += 1
            except Exception:
                db.session.rollback()
                stats['errors'] += 1
                logger.exception("Failed to purge upload session %s", session_id)

    def expire_videos(self, now, stats):
        settings = self.config_cache.get_storage_config()
        owners = set()

        for video in self.catalog.expired_videos(now):
            video_id, owner_id, storage_path = video.id, video.user_id, video.storage_path
            try:
                size = self.catalog.delete_video(video, commit=False)
                self.ledger.release(owner_id, size, commit=False)
                db.session.commit()
            except Exception:
                db.session.rollback()
                stats['errors'] += 1
                logger.exception("Failed to delete expired video %s", video_id)
                continue

            owners.add(owner_id)
            stats['expired_videos'] += 1
            stats['freed_bytes'] += size
            logger.info("Deleted expired video %s (%s bytes)", video_id, size)

            # Record is gone; a leftover object is unreferenced either way
            try:
                self.catalog.delete_video_data(storage_path, settings)
            except Exception:
                stats['errors'] += 1
                logger.exception("Failed to remove data of expired video %s at %s", video_id, storage_path)

        for owner_id in owners:
            try:
                self.ledger.reconcile(owner_id)
            except Exception:
                db.session.rollback()
                stats['errors'] += 1
                logger.exception("Failed to reconcile quota for user %s", owner_id)


def build_reaper():
    return ExpiryReaper(config_cache=ConfigCache())
