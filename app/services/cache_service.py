import logging

from flask import current_app

from app import cache
from app.models import StorageConfig, User, UserRole

logger = logging.getLogger(__name__)

MB = 1024 * 1024


class ConfigCache:
    """Short-TTL cache for the storage configuration row and role lookups.

    Values are kept as plain dicts/lists so they survive any cache backend.
    Components receive an instance instead of reading module state.
    """

    CONFIG_KEY = 'storage_config'
    ROLES_KEY = 'user_roles:{}'

    def __init__(self, backend=None, app_config=None):
        self.backend = backend or cache
        self.app_config = app_config or current_app.config

    def get_or_refresh(self, key, ttl, loader):
        value = self.backend.get(key)
        if value is None:
            value = loader()
            if value is not None:
                self.backend.set(key, value, timeout=ttl)
        return value

    def invalidate(self, key=None):
        """Drop one cached entry, or everything when no key is given"""
        if key is None:
            self.backend.clear()
        else:
            self.backend.delete(key)

    def invalidate_roles(self, owner_id):
        self.invalidate(self.ROLES_KEY.format(owner_id))

    def get_storage_config(self):
        return self.get_or_refresh(self.CONFIG_KEY, self.app_config['CONFIG_CACHE_TTL'],
                                   self._load_storage_config)

    def get_roles(self, owner_id):
        return self.get_or_refresh(self.ROLES_KEY.format(owner_id), self.app_config['ROLES_CACHE_TTL'],
                                   lambda: self._load_roles(owner_id))

    def is_privileged(self, owner_id):
        return UserRole.ADMIN.value in self.get_roles(owner_id)

    def _load_storage_config(self):
        """Merge the admin-managed row over the application defaults"""
        settings = {
            'provider': 'local',
            's3_access_key': None,
            's3_secret_key': None,
            's3_endpoint': None,
            's3_bucket': None,
            's3_region': 'us-east-1',
            'max_file_size_bytes': self.app_config['MAX_FILE_SIZE_MB'] * MB,
            'allowed_types': list(self.app_config['ALLOWED_TYPES']),
            'default_storage_limit_bytes': self.app_config['DEFAULT_STORAGE_LIMIT_MB'] * MB,
            'video_expiration_days': self.app_config['DEFAULT_VIDEO_EXPIRATION_DAYS'],
        }

        row = StorageConfig.get_active_config()
        if row is None:
            return settings

        settings.update({
            'provider': row.provider or 'local',
            's3_access_key': row.s3_access_key,
            's3_secret_key': row.s3_secret_key,
            's3_endpoint': row.s3_endpoint,
            's3_bucket': row.s3_bucket,
            's3_region': row.s3_region or 'us-east-1',
        })
        if row.max_file_size_mb:
            settings['max_file_size_bytes'] = row.max_file_size_mb * MB
        if row.allowed_types:
            settings['allowed_types'] = list(row.allowed_types)
        if row.default_storage_limit_mb:
            settings['default_storage_limit_bytes'] = row.default_storage_limit_mb * MB
        if row.video_expiration_days is not None:
            settings['video_expiration_days'] = row.video_expiration_days
        return settings

    def _load_roles(self, owner_id):
        user = User.query.get(owner_id)
        if not user or not user.role:
            return []
        return [user.role.value]
