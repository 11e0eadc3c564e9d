"""Error taxonomy for the chunked upload engine.

Every error carries the HTTP status it maps to and an optional payload that
is merged into the JSON error body.
"""


class UploadError(Exception):
    status_code = 400

    def __init__(self, message, payload=None):
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def to_dict(self):
        body = {'error': self.message}
        body.update(self.payload)
        return body


class ValidationError(UploadError):
    """Bad media type, size over ceiling, malformed chunk index"""
    status_code = 400


class QuotaExceeded(UploadError):
    status_code = 400

    def __init__(self, current_used, requested, limit):
        super().__init__('Storage quota exceeded', {
            'currentUsed': current_used,
            'fileSize': requested,
            'storageLimit': limit,
            'remaining': max(0, limit - current_used),
        })
        self.current_used = current_used
        self.requested = requested
        self.limit = limit


class Unauthorized(UploadError):
    status_code = 403

    def __init__(self, message='Unauthorized', payload=None):
        super().__init__(message, payload)


class NotFound(UploadError):
    status_code = 404

    def __init__(self, message='Upload session not found', payload=None):
        super().__init__(message, payload)


class InvalidState(UploadError):
    status_code = 400


class AssemblyError(UploadError):
    status_code = 500


class StorageProviderError(UploadError):
    status_code = 502


class PathTraversal(StorageProviderError):
    status_code = 400

    def __init__(self, locator):
        super().__init__('Invalid path')
        self.locator = locator
