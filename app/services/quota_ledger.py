import logging

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from app import db
from app.errors import QuotaExceeded, ValidationError
from app.models import UserQuota, UploadSession, Video
from app.services.cache_service import ConfigCache

logger = logging.getLogger(__name__)


class QuotaLedger:
    """Per-user storage counters.

    ``reserve`` is the only check-then-increment path and runs under an
    exclusive row lock (``SELECT ... FOR UPDATE``), so two concurrent uploads
    for one owner cannot both pass the "would fit" check. ``reconcile`` only
    corrects drift; reservation/release pairing is what keeps the counter right.

    Mutating methods take ``commit``; pass ``commit=False`` to fold the change
    into the caller's transaction.
    """

    def __init__(self, config_cache=None):
        self.config_cache = config_cache or ConfigCache()

    def default_limit(self, owner_id):
        if self.config_cache.is_privileged(owner_id):
            return current_app.config['ADMIN_STORAGE_LIMIT_BYTES']
        return self.config_cache.get_storage_config()['default_storage_limit_bytes']

    def _locked_quota(self, owner_id):
        """Fetch the owner's ledger row under lock, creating it on first use"""
        quota = UserQuota.query.filter_by(user_id=owner_id).with_for_update().first()
        if quota is None:
            quota = UserQuota(user_id=owner_id, storage_limit_bytes=self.default_limit(owner_id))
            db.session.add(quota)
            try:
                db.session.flush()
            except IntegrityError:
                # Created concurrently by another request
                db.session.rollback()
                quota = UserQuota.query.filter_by(user_id=owner_id).with_for_update().one()
        elif not quota.storage_limit_bytes:
            quota.storage_limit_bytes = self.default_limit(owner_id)
        return quota

    def _finish(self, commit):
        if commit:
            db.session.commit()
        else:
            db.session.flush()

    def get_quota(self, owner_id):
        """Reconciled ledger row for display"""
        return self.reconcile(owner_id)

    def reserve(self, owner_id, nbytes, commit=True):
        if nbytes < 0:
            raise ValidationError('Reservation size must not be negative')

        quota = self._locked_quota(owner_id)
        used = int(quota.storage_used_bytes or 0)
        limit = int(quota.storage_limit_bytes or 0)

        if not self.config_cache.is_privileged(owner_id) and used + nbytes > limit:
            db.session.rollback()
            logger.info("Quota exceeded for user %s: %s + %s > %s", owner_id, used, nbytes, limit)
            raise QuotaExceeded(used, nbytes, limit)

        quota.storage_used_bytes = used + nbytes
        self._finish(commit)
        return quota

    def release(self, owner_id, nbytes, commit=True):
        """Unconditional decrement, floored at zero"""
        quota = UserQuota.query.filter_by(user_id=owner_id).with_for_update().first()
        if quota is None:
            logger.warning("Release of %s bytes for user %s without a quota row", nbytes, owner_id)
            return None

        quota.storage_used_bytes = max(0, int(quota.storage_used_bytes or 0) - nbytes)
        self._finish(commit)
        return quota

    def reconcile(self, owner_id, commit=True):
        """Replace ``used`` with durable video sizes plus open reservations"""
        quota = self._locked_quota(owner_id)

        video_bytes = db.session.query(func.coalesce(func.sum(Video.size), 0))\
            .filter(Video.user_id == owner_id)\
            .scalar()
        reserved_bytes = db.session.query(func.coalesce(func.sum(UploadSession.reserved_bytes), 0))\
            .filter(UploadSession.user_id == owner_id, UploadSession.quota_reserved.is_(True))\
            .scalar()
        actual = int(video_bytes or 0) + int(reserved_bytes or 0)

        recorded = int(quota.storage_used_bytes or 0)
        if recorded != actual:
            logger.info("Reconciled quota for user %s: recorded=%s actual=%s delta=%s",
                        owner_id, recorded, actual, actual - recorded)
            quota.storage_used_bytes = actual

        self._finish(commit)
        return quota

    def reconcile_all(self):
        """Reconcile every ledger row; returns the number of owners processed"""
        owner_ids = [row.user_id for row in UserQuota.query.with_entities(UserQuota.user_id).all()]
        for owner_id in owner_ids:
            self.reconcile(owner_id)
        return len(owner_ids)

    def record_upload(self, owner_id, commit=True):
        quota = self._locked_quota(owner_id)
        quota.upload_count = int(quota.upload_count or 0) + 1
        self._finish(commit)
        return quota

    def set_limit(self, owner_id, limit_bytes):
        if limit_bytes < 0:
            raise ValidationError('Invalid storage limit')
        quota = self._locked_quota(owner_id)
        quota.storage_limit_bytes = limit_bytes
        db.session.commit()
        return quota

    def set_video_expiration_days(self, owner_id, days):
        """None follows the global default, 0 never expires"""
        if days is not None and days < 0:
            raise ValidationError('Invalid expiration value')
        quota = self._locked_quota(owner_id)
        quota.video_expiration_days = days
        db.session.commit()
        return quota

    def video_expiration_days(self, owner_id):
        quota = UserQuota.query.filter_by(user_id=owner_id).first()
        if quota is not None and quota.video_expiration_days is not None:
            return quota.video_expiration_days
        return self.config_cache.get_storage_config()['video_expiration_days']
