"""Error handling utilities."""


class AptrackError(Exception):
    """Base exception for the apartment tracker."""
    pass


class StorageError(AptrackError):
    """Object storage operation error."""
    pass


class StorageConfigError(StorageError):
    """Object storage credentials or settings are missing."""
    pass


class ProxyError(AptrackError):
    """Bridge proxy request failed."""
    pass


class ImageUploadError(AptrackError):
    """Image could not be persisted to any backend."""
    pass


class InvalidImageRefError(AptrackError):
    """Image reference string cannot be decoded."""
    pass


class InvalidDataUrlError(AptrackError):
    """Inline payload is not a base64 data URL."""
    pass


class QuotaExceededError(AptrackError):
    """Local cache write would exceed its byte quota."""
    pass
