import logging

from flask import current_app, has_app_context


class RuntimeContext:
    """Mutable runtime switches, changed only through the admin API"""

    def __init__(self, debug_enabled=False, base_level=logging.INFO):
        self.base_level = base_level
        self.debug_enabled = False
        self.set_debug(debug_enabled)

    def set_debug(self, enabled):
        self.debug_enabled = bool(enabled)
        logging.getLogger('app').setLevel(logging.DEBUG if self.debug_enabled else self.base_level)
        return self.debug_enabled


def get_runtime():
    return current_app.extensions['runtime']


def debug_log(logger, message, *args):
    """Log verbose upload tracing when debug is switched on"""
    if has_app_context() and get_runtime().debug_enabled:
        logger.debug(message, *args)
