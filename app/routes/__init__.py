# Routes package
from .admin import admin_bp
from .quota import quota_bp
from .upload import upload_bp
