import os
from datetime import datetime, timedelta

from app import db


class Video(db.Model):
    """Durable catalog record produced by a completed upload"""
    __tablename__ = 'videos'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False, default='Untitled')
    filename = db.Column(db.String(500), nullable=True)
    storage_path = db.Column(db.String(1000), nullable=False)
    share_id = db.Column(db.String(32), unique=True, nullable=False, index=True)
    size = db.Column(db.BigInteger, nullable=False, default=0)
    views = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    expires_at = db.Column(db.DateTime, nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete="CASCADE"), nullable=False, index=True)

    owner = db.relationship('User', backref=db.backref('videos', lazy=True, passive_deletes=True))

    def __init__(self, title, storage_path, user_id, share_id, size=0, filename=None, expires_at=None):
        self.title = title
        self.storage_path = storage_path
        self.user_id = user_id
        self.share_id = share_id
        self.size = size
        self.filename = filename
        self.expires_at = expires_at
        self.views = 0

    @staticmethod
    def title_from_filename(filename):
        """Use the uploaded file's base name as the default title"""
        return os.path.basename(filename or '') or 'Untitled'

    @staticmethod
    def expiry_from_days(days, now=None):
        """0 means the video never expires"""
        if not days:
            return None
        return (now or datetime.utcnow()) + timedelta(days=days)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'filename': self.filename,
            'share_id': self.share_id,
            'size': self.size,
            'views': self.views,
            'user_id': self.user_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None
        }

    def __repr__(self):
        return f'<Video {self.id} {self.title}>'
