# Services package
from .scheduler import init_scheduler, scheduler
from .cache_service import ConfigCache
from .quota_ledger import QuotaLedger
from .video_catalog import VideoCatalog
from .assembler import ChunkAssembler
from .upload_manager import UploadSessionManager, build_upload_manager
from .reaper import ExpiryReaper, build_reaper
