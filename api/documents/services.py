"""
Services for managing documents and their files
"""
import logging
import uuid
from dataclasses import dataclass, field

from fastapi import HTTPException, UploadFile, status
from sqlmodel import Session

from api.documents.models import CachedAttachmentsPublic, Document, DocumentPublic
from uploader import UploadError

logger = logging.getLogger(__name__)


@dataclass
class DocumentFiles:
    """
    File fields of a document form. Unset fields leave the mount untouched.
    """
    attachments: list[UploadFile] = field(default_factory=list)
    attachments_cache: str | None = None
    remote_attachment_urls: list[str] = field(default_factory=list)
    remove_attachments: str | None = None
    cover: UploadFile | None = None
    cover_cache: str | None = None
    remote_cover_url: str | None = None
    remove_cover: str | None = None


def _uploaded(files: list[UploadFile] | None) -> list[UploadFile]:
    """Drop the empty parts browsers send for untouched file inputs"""
    return [file for file in files or [] if file is not None and file.filename]


def _document_to_public(document: Document) -> DocumentPublic:
    cover_error = document.cover_integrity_error or document.cover_processing_error
    return DocumentPublic(
        id=document.id,
        title=document.title,
        created_on=document.created_on,
        attachments=document.attachments_identifiers,
        attachment_urls=document.attachments_urls(),
        cover=document.cover_identifier,
        cover_url=document.cover_url(),
        cover_error=str(cover_error) if cover_error else None,
    )


def _assign_files(document: Document, files: DocumentFiles) -> None:
    """
    Apply a form's file fields to the document. An uploaded file wins over
    a cache token for the same field.
    """
    try:
        attachments = _uploaded(files.attachments)
        if attachments:
            document.attachments = attachments
        if files.attachments_cache:
            document.attachments_cache = files.attachments_cache
        if files.remote_attachment_urls:
            document.remote_attachments_urls = files.remote_attachment_urls
        if files.remove_attachments is not None:
            document.remove_attachments = files.remove_attachments

        covers = _uploaded([files.cover])
        if covers:
            document.cover = covers[0]
        if files.cover_cache:
            document.cover_cache = files.cover_cache
        if files.remote_cover_url:
            document.remote_cover_url = files.remote_cover_url
        if files.remove_cover is not None:
            document.remove_cover = files.remove_cover
    except UploadError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e


def _commit(session: Session, document: Document) -> None:
    """Commit the document; files are stored during the flush"""
    try:
        session.add(document)
        session.commit()
    except UploadError as e:
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e
    session.refresh(document)


def _get_document_or_404(session: Session, document_id: uuid.UUID) -> Document:
    document = session.get(Document, document_id)
    if not document:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document with id {document_id} not found",
        )
    return document


def cache_attachments(files: list[UploadFile]) -> CachedAttachmentsPublic:
    """
    Cache attachments without creating a document, e.g. while a form is
    being filled in
    """
    uploads = _uploaded(files)
    if not uploads:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No files were uploaded",
        )
    # Never added to a session, so nothing is stored
    document = Document(title="")
    _assign_files(document, DocumentFiles(attachments=uploads))
    return CachedAttachmentsPublic(
        attachments_cache=document.attachments_cache,
        filenames=[attachment.filename for attachment in document.attachments],
    )


def create_document(session: Session, title: str, files: DocumentFiles) -> DocumentPublic:
    """ Create a document and store its files """
    document = Document(title=title)
    _assign_files(document, files)
    _commit(session, document)
    logger.info("Created document %s", document.id)
    return _document_to_public(document)


def get_document(session: Session, document_id: uuid.UUID) -> DocumentPublic:
    """ Get a specific document """
    return _document_to_public(_get_document_or_404(session, document_id))


def update_document(
    session: Session,
    document_id: uuid.UUID,
    title: str | None,
    files: DocumentFiles,
) -> DocumentPublic:
    """
    Update a document. Files it no longer references are removed once the
    update is committed.
    """
    document = _get_document_or_404(session, document_id)
    if title is not None:
        document.title = title
    _assign_files(document, files)
    _commit(session, document)
    return _document_to_public(document)


def delete_document(session: Session, document_id: uuid.UUID) -> None:
    """ Delete a document; its files are removed on commit """
    document = _get_document_or_404(session, document_id)
    session.delete(document)
    session.commit()
    logger.info("Deleted document %s", document_id)
