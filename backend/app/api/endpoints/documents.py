"""
Document endpoints
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_storage, require_beneficiary
from app.db.database import get_db
from app.db.models import Document, User
from app.db.schemas import DocumentResponse, DownloadUrlResponse
from app.services.audit_service import audit_service
from app.services.visibility_service import can_view_document, scope_documents
from app.utils.exceptions import ForbiddenError, NotFoundError
from app.utils.helpers import client_ip

router = APIRouter()

DOWNLOAD_URL_TTL = 900


def _load_visible_document(db: Session, document_id, user: User, request: Request) -> Document:
    document = db.query(Document).filter(Document.id == document_id).first()
    if not document:
        raise NotFoundError("Document", document_id)
    if not can_view_document(user, document.case, document):
        audit_service.log_denied(
            db, user, "document", document.id, reason="document outside scope", ip_address=client_ip(request)
        )
        raise ForbiddenError("You don't have access to this document")
    return document


@router.get("/my", response_model=List[DocumentResponse])
def list_my_documents(
    current_user: User = Depends(require_beneficiary),
    db: Session = Depends(get_db)
):
    """Public documents attached to the caller's own cases and requests"""
    return (
        scope_documents(db.query(Document), current_user)
        .order_by(Document.created_at.desc())
        .all()
    )


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: UUID,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return _load_visible_document(db, document_id, current_user, request)


@router.get("/{document_id}/download-url", response_model=DownloadUrlResponse)
def get_download_url(
    document_id: UUID,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage=Depends(get_storage)
):
    """Short-lived pre-signed GET URL"""
    document = _load_visible_document(db, document_id, current_user, request)
    url = storage.generate_download_url(document.storage_key, expires_in=DOWNLOAD_URL_TTL)
    return {"url": url, "expires_in": DOWNLOAD_URL_TTL}
