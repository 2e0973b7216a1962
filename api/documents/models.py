"""
Models for the Documents API
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

from api.documents.uploaders import AttachmentUploader, CoverUploader
from mount import MountableModel


class Document(MountableModel, SQLModel, table=True):
    """
    Represents a document and the identifiers of its stored files
    """
    __tablename__ = "document"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    title: str = Field(max_length=255)
    attachment_files: list[str] | None = Field(default=None, sa_column=Column(JSON))
    cover_file: str | None = Field(default=None, max_length=255)
    created_on: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


Document.mount_uploaders("attachments", AttachmentUploader, mount_on="attachment_files")
# A rejected cover image is reported on the response instead of failing the request
Document.mount_uploader("cover", CoverUploader, mount_on="cover_file", ignore_integrity_errors=True)


class DocumentPublic(SQLModel):
    """
    Represents a public view of a document
    """
    id: uuid.UUID
    title: str
    created_on: datetime
    attachments: list[str]
    attachment_urls: list[str | None]
    cover: str | None = None
    cover_url: str | None = None
    cover_error: str | None = None


class CachedAttachmentsPublic(SQLModel):
    """
    Files cached ahead of a create/update; send attachments_cache back
    with the form to attach them without uploading again
    """
    attachments_cache: str | None = None
    filenames: list[str]
