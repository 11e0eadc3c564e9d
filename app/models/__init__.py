# Models package
from .auth import User, UserRole
from .video import Video
from .quota import UserQuota
from .storage_config import StorageConfig, PROVIDER_LOCAL, PROVIDER_S3
from .upload_session import (UploadSession, UploadChunk, UploadStatus, OPEN_STATUSES,
                             RELEASABLE_STATUSES, TERMINAL_STATUSES)
