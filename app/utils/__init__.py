# Utils package
from .decorators import admin_required, current_user_id
from .runtime import RuntimeContext, get_runtime, debug_log
