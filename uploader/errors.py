"""
Errors raised by uploaders.

Integrity, processing and download errors are the ones a mounted
attribute can be configured to retain instead of raise.
"""


class UploadError(Exception):
    """Base class for every uploader error."""


class IntegrityError(UploadError):
    """The content was rejected (extension, size, empty payload)."""


class ProcessingError(UploadError):
    """A processing step failed after the content was accepted."""


class DownloadError(UploadError):
    """A remote file could not be fetched."""


class InvalidParameter(UploadError):
    """A cache name or identifier has an invalid format."""
