import logging
from datetime import datetime

from app import db
from app.models import Video
from app.storage import get_local_storage, get_object_storage, is_object_locator

logger = logging.getLogger(__name__)


class VideoCatalog:
    """Durable video records produced by finished uploads"""

    def create_video(self, owner_id, storage_path, size, share_id, filename=None, expires_at=None):
        video = Video(
            title=Video.title_from_filename(filename),
            storage_path=storage_path,
            user_id=owner_id,
            share_id=share_id,
            size=size,
            filename=filename,
            expires_at=expires_at
        )
        db.session.add(video)
        db.session.flush()
        return video

    def expired_videos(self, now=None):
        now = now or datetime.utcnow()
        return Video.query.filter(Video.expires_at.isnot(None), Video.expires_at < now).all()

    def delete_video_data(self, storage_path, settings):
        """Remove the stored object behind a video record"""
        if is_object_locator(storage_path):
            remote = get_object_storage(settings)
            if remote is None:
                logger.warning("%s lives in object storage but it is not configured; data kept", storage_path)
                return False
            remote.delete(storage_path)
        else:
            get_local_storage().delete(storage_path)
        return True

    def delete_video(self, video, commit=True):
        """Delete the record only; returns the bytes the owner no longer uses.

        The stored object is removed separately once the deletion is committed.
        """
        size = int(video.size or 0)
        db.session.delete(video)
        if commit:
            db.session.commit()
        return size
