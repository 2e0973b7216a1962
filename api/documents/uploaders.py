"""
Uploaders mounted on documents
"""

from uploader import Uploader


class AttachmentUploader(Uploader):
    """
    Any file up to 25 MB
    """
    size_range = (1, 25 * 1024 * 1024)


class CoverUploader(Uploader):
    """
    Cover images
    """
    extension_allowlist = ("jpg", "jpeg", "png", "gif", "webp")
    size_range = (1, 5 * 1024 * 1024)
