from datetime import datetime

from app import db


class UserQuota(db.Model):
    """Per-user storage ledger, mutated only through QuotaLedger"""
    __tablename__ = 'user_quotas'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete="CASCADE"), nullable=False, unique=True)
    storage_used_bytes = db.Column(db.BigInteger, nullable=False, default=0)
    storage_limit_bytes = db.Column(db.BigInteger, nullable=False, default=0)
    upload_count = db.Column(db.Integer, nullable=False, default=0)
    video_expiration_days = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship('User', backref=db.backref('quota', uselist=False, passive_deletes=True))

    def __init__(self, user_id, storage_limit_bytes, storage_used_bytes=0, upload_count=0):
        self.user_id = user_id
        self.storage_limit_bytes = storage_limit_bytes
        self.storage_used_bytes = storage_used_bytes
        self.upload_count = upload_count

    def remaining(self):
        return max(0, self.storage_limit_bytes - self.storage_used_bytes)

    def to_dict(self):
        return {
            'storage_used_bytes': int(self.storage_used_bytes or 0),
            'storage_limit_bytes': int(self.storage_limit_bytes or 0),
            'upload_count': int(self.upload_count or 0),
            'video_expiration_days': self.video_expiration_days
        }

    def __repr__(self):
        return f'<UserQuota user={self.user_id} {self.storage_used_bytes}/{self.storage_limit_bytes}>'
