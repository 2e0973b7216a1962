"""
Routes/endpoints for the Documents API

HTTP   URI                             Action
----   ---                             ------
POST   /api/v1/documents/cache         Cache attachments ahead of a form submit
POST   /api/v1/documents               Create a document with its files
GET    /api/v1/documents/[id]          Retrieve a document and its file urls
PUT    /api/v1/documents/[id]          Replace, add back or remove files
DELETE /api/v1/documents/[id]          Delete a document and its files
"""

import uuid
from typing import List, Optional
from fastapi import APIRouter, File, Form, UploadFile, status
from core.deps import SessionDep
from api.documents.models import CachedAttachmentsPublic, DocumentPublic
from api.documents import services
from api.documents.services import DocumentFiles

router = APIRouter(prefix="/documents", tags=["Document Endpoints"])


def _document_files(
    attachments: Optional[List[UploadFile]],
    attachments_cache: Optional[str],
    remote_attachment_urls: Optional[List[str]],
    remove_attachments: Optional[str],
    cover: Optional[UploadFile],
    cover_cache: Optional[str],
    remote_cover_url: Optional[str],
    remove_cover: Optional[str],
) -> DocumentFiles:
    return DocumentFiles(
        attachments=attachments or [],
        attachments_cache=attachments_cache,
        remote_attachment_urls=remote_attachment_urls or [],
        remove_attachments=remove_attachments,
        cover=cover,
        cover_cache=cover_cache,
        remote_cover_url=remote_cover_url,
        remove_cover=remove_cover,
    )


@router.post(
    "/cache",
    response_model=CachedAttachmentsPublic,
    status_code=status.HTTP_201_CREATED,
)
def cache_attachments(
    attachments: List[UploadFile] = File(..., description="Files to cache"),
) -> CachedAttachmentsPublic:
    """
    Cache attachments and return the token that attaches them later.
    """
    return services.cache_attachments(files=attachments)


@router.post(
    "",
    response_model=DocumentPublic,
    status_code=status.HTTP_201_CREATED,
)
def create_document(
    session: SessionDep,
    title: str = Form(...),
    attachments: Optional[List[UploadFile]] = File(None),
    attachments_cache: Optional[str] = Form(None),
    remote_attachment_urls: Optional[List[str]] = Form(None),
    cover: Optional[UploadFile] = File(None),
    cover_cache: Optional[str] = Form(None),
    remote_cover_url: Optional[str] = Form(None),
) -> DocumentPublic:
    """
    Create a new document. Files may be uploaded, restored from a cache
    token or downloaded from remote urls.
    """
    files = _document_files(
        attachments, attachments_cache, remote_attachment_urls, None,
        cover, cover_cache, remote_cover_url, None,
    )
    return services.create_document(session=session, title=title, files=files)


@router.get(
    "/{document_id}",
    response_model=DocumentPublic,
    status_code=status.HTTP_200_OK,
)
def get_document(session: SessionDep, document_id: uuid.UUID) -> DocumentPublic:
    """
    Retrieve a specific document by ID.
    """
    return services.get_document(session=session, document_id=document_id)


@router.put(
    "/{document_id}",
    response_model=DocumentPublic,
    status_code=status.HTTP_200_OK,
)
def update_document(
    session: SessionDep,
    document_id: uuid.UUID,
    title: Optional[str] = Form(None),
    attachments: Optional[List[UploadFile]] = File(None),
    attachments_cache: Optional[str] = Form(None),
    remote_attachment_urls: Optional[List[str]] = Form(None),
    remove_attachments: Optional[str] = Form(None),
    cover: Optional[UploadFile] = File(None),
    cover_cache: Optional[str] = Form(None),
    remote_cover_url: Optional[str] = Form(None),
    remove_cover: Optional[str] = Form(None),
) -> DocumentPublic:
    """
    Update a document. Replaced or removed files are deleted once the
    update is committed.
    """
    files = _document_files(
        attachments, attachments_cache, remote_attachment_urls, remove_attachments,
        cover, cover_cache, remote_cover_url, remove_cover,
    )
    return services.update_document(
        session=session, document_id=document_id, title=title, files=files
    )


@router.delete(
    "/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_document(session: SessionDep, document_id: uuid.UUID) -> None:
    """
    Delete a document and its stored files.
    """
    services.delete_document(session=session, document_id=document_id)
