import uuid
from enum import Enum
from datetime import datetime

from app import db


class UploadStatus(Enum):
    PENDING = 'pending'
    UPLOADING = 'uploading'
    ASSEMBLING = 'assembling'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


# Sessions that may still receive chunks
OPEN_STATUSES = (UploadStatus.PENDING, UploadStatus.UPLOADING)
# Sessions whose reservation may still be released by cancel or expiry
RELEASABLE_STATUSES = (UploadStatus.PENDING, UploadStatus.UPLOADING, UploadStatus.FAILED)
TERMINAL_STATUSES = (UploadStatus.COMPLETED, UploadStatus.FAILED, UploadStatus.CANCELLED)


def _new_session_id():
    return str(uuid.uuid4())


class UploadSession(db.Model):
    __tablename__ = "upload_sessions"

    id = db.Column(db.String(36), primary_key=True, default=_new_session_id)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete="CASCADE"), nullable=False, index=True)
    filename = db.Column(db.String(500), nullable=False)
    file_size = db.Column(db.BigInteger, nullable=False)
    mimetype = db.Column(db.String(255), nullable=False)
    total_chunks = db.Column(db.Integer, nullable=False)
    chunks_uploaded = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.Enum(UploadStatus), nullable=False, default=UploadStatus.PENDING, index=True)
    share_id = db.Column(db.String(32), unique=True, nullable=False)
    quota_reserved = db.Column(db.Boolean, nullable=False, default=False)
    reserved_bytes = db.Column(db.BigInteger, nullable=False, default=0)
    storage_path = db.Column(db.String(1000), nullable=True)
    video_id = db.Column(db.Integer, nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    chunks = db.relationship('UploadChunk', backref='session', lazy='dynamic',
                             cascade='all, delete-orphan', passive_deletes=True)

    def is_open(self):
        return self.status in OPEN_STATUSES

    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    def is_complete(self):
        """All declared chunks have been recorded"""
        return self.chunks_uploaded == self.total_chunks

    def to_dict(self):
        return {
            'id': self.id,
            'filename': self.filename,
            'file_size': self.file_size,
            'mimetype': self.mimetype,
            'total_chunks': self.total_chunks,
            'chunks_uploaded': self.chunks_uploaded,
            'status': self.status.value,
            'share_id': self.share_id,
            'video_id': self.video_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'error_message': self.error_message
        }

    def __repr__(self):
        return f'<UploadSession {self.id} {self.status.value} {self.chunks_uploaded}/{self.total_chunks}>'


class UploadChunk(db.Model):
    __tablename__ = "upload_chunks"
    __table_args__ = (
        db.UniqueConstraint('session_id', 'chunk_number', name='uq_upload_chunks_session_chunk'),
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(36), db.ForeignKey('upload_sessions.id', ondelete="CASCADE"),
                           nullable=False, index=True)
    chunk_number = db.Column(db.Integer, nullable=False)
    chunk_size = db.Column(db.BigInteger, nullable=False)
    storage_path = db.Column(db.String(1000), nullable=False)
    uploaded_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f'<UploadChunk {self.session_id}#{self.chunk_number}>'
