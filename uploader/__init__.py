"""
Uploader module - caching, storing and removing single uploaded files.

Mounted attributes (see the mount module) hold one uploader per file.
"""

from uploader.base import Uploader
from uploader.errors import (
    DownloadError,
    IntegrityError,
    InvalidParameter,
    ProcessingError,
    UploadError,
)
from uploader.sanitized_file import RemoteFile, SanitizedFile

__all__ = [
    "DownloadError",
    "IntegrityError",
    "InvalidParameter",
    "ProcessingError",
    "RemoteFile",
    "SanitizedFile",
    "UploadError",
    "Uploader",
]
