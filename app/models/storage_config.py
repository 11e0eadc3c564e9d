from datetime import datetime

from app import db

PROVIDER_LOCAL = 'local'
PROVIDER_S3 = 's3'


class StorageConfig(db.Model):
    """Admin-managed storage settings; the first row is the source of truth"""
    __tablename__ = 'storage_config'

    EDITABLE_FIELDS = ('provider', 's3_access_key', 's3_secret_key', 's3_endpoint', 's3_bucket',
                       's3_region', 'max_file_size_mb', 'allowed_types', 'default_storage_limit_mb',
                       'video_expiration_days')

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(20), nullable=False, default=PROVIDER_LOCAL)
    s3_access_key = db.Column(db.String(255), nullable=True)
    s3_secret_key = db.Column(db.String(255), nullable=True)
    s3_endpoint = db.Column(db.String(500), nullable=True)
    s3_bucket = db.Column(db.String(255), nullable=True)
    s3_region = db.Column(db.String(50), nullable=True, default='us-east-1')
    max_file_size_mb = db.Column(db.Integer, nullable=True)
    allowed_types = db.Column(db.JSON, nullable=True)
    default_storage_limit_mb = db.Column(db.Integer, nullable=True)
    video_expiration_days = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def apply_updates(self, updates):
        """Copy known fields from an admin payload; returns the names that changed"""
        changed = []
        for field in self.EDITABLE_FIELDS:
            if field in updates:
                setattr(self, field, updates[field])
                changed.append(field)
        return changed

    def to_dict(self, include_secrets=True):
        data = {
            'id': self.id,
            'provider': self.provider,
            's3_access_key': self.s3_access_key,
            's3_secret_key': self.s3_secret_key,
            's3_endpoint': self.s3_endpoint,
            's3_bucket': self.s3_bucket,
            's3_region': self.s3_region,
            'max_file_size_mb': self.max_file_size_mb,
            'allowed_types': list(self.allowed_types) if self.allowed_types else None,
            'default_storage_limit_mb': self.default_storage_limit_mb,
            'video_expiration_days': self.video_expiration_days,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }
        if not include_secrets:
            data['s3_secret_key'] = '********' if self.s3_secret_key else None
        return data

    @classmethod
    def get_active_config(cls):
        """Get the storage configuration row"""
        return cls.query.order_by(cls.created_at, cls.id).first()

    def __repr__(self):
        return f'<StorageConfig {self.provider}>'
