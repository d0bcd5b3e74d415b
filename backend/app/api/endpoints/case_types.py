"""
Case type reference data
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require_admin
from app.db.database import get_db
from app.db.models import Case, CaseType, IntakeRequest, ServiceRequest, User
from app.db.schemas import CaseTypeCreate, CaseTypeResponse, CaseTypeUpdate
from app.services.audit_service import audit_service
from app.utils.exceptions import ConflictError, NotFoundError
from app.utils.helpers import client_ip, slugify

router = APIRouter()


def _get_case_type(db: Session, case_type_id) -> CaseType:
    case_type = db.query(CaseType).filter(CaseType.id == case_type_id).first()
    if not case_type:
        raise NotFoundError("Case type", case_type_id)
    return case_type


def _ensure_unique_key(db: Session, key, exclude_id=None) -> None:
    if not key:
        return
    query = db.query(CaseType).filter(CaseType.key == key)
    if exclude_id is not None:
        query = query.filter(CaseType.id != exclude_id)
    if query.first():
        raise ConflictError(f"Case type key '{key}' already exists")


@router.get("/active", response_model=List[CaseTypeResponse])
def list_active_case_types(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Active case types for intake and case forms"""
    return (
        db.query(CaseType)
        .filter(CaseType.is_active == True)  # noqa: E712
        .order_by(CaseType.sort_order, CaseType.name_ar)
        .all()
    )


@router.get("", response_model=List[CaseTypeResponse])
def list_case_types(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return db.query(CaseType).order_by(CaseType.sort_order, CaseType.name_ar).all()


@router.post("", response_model=CaseTypeResponse, status_code=status.HTTP_201_CREATED)
def create_case_type(
    body: CaseTypeCreate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    data = body.model_dump()
    if not data.get("key") and data.get("name_en"):
        data["key"] = slugify(data["name_en"]).replace("-", "_")
    _ensure_unique_key(db, data.get("key"))

    case_type = CaseType(**data)
    db.add(case_type)
    db.flush()
    audit_service.log(db, "create", "case_type", case_type.id, user=current_user, ip_address=client_ip(request))
    db.commit()
    db.refresh(case_type)
    return case_type


@router.patch("/{case_type_id}", response_model=CaseTypeResponse)
def update_case_type(
    case_type_id: UUID,
    body: CaseTypeUpdate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    case_type = _get_case_type(db, case_type_id)
    changes = body.model_dump(exclude_unset=True)
    if "key" in changes:
        _ensure_unique_key(db, changes["key"], exclude_id=case_type.id)

    for field, value in changes.items():
        setattr(case_type, field, value)

    audit_service.log(db, "update", "case_type", case_type.id, user=current_user, ip_address=client_ip(request))
    db.commit()
    db.refresh(case_type)
    return case_type


@router.patch("/{case_type_id}/toggle", response_model=CaseTypeResponse)
def toggle_case_type(
    case_type_id: UUID,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    case_type = _get_case_type(db, case_type_id)
    case_type.is_active = not case_type.is_active
    audit_service.log(
        db, "toggle", "case_type", case_type.id, user=current_user,
        details=f"is_active={case_type.is_active}", ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(case_type)
    return case_type


@router.delete("/{case_type_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_case_type(
    case_type_id: UUID,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Referenced case types cannot be deleted; deactivate them instead."""
    case_type = _get_case_type(db, case_type_id)

    for model in (Case, IntakeRequest, ServiceRequest):
        if db.query(model).filter(model.case_type_id == case_type.id).first():
            raise ConflictError("Case type is in use; deactivate it instead")

    db.delete(case_type)
    audit_service.log(db, "delete", "case_type", case_type_id, user=current_user, ip_address=client_ip(request))
    db.commit()
