"""
Rules (named permission sets) and their assignment to users
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, require_permission
from app.core.logger import logger
from app.core.permissions import MANAGE_SETTINGS
from app.db.database import get_db
from app.db.models import Rule, User
from app.db.schemas import (
    EffectivePermissions,
    RuleAssignment,
    RuleCreate,
    RuleResponse,
    RuleUpdate,
)
from app.services.audit_service import audit_service
from app.services.permission_service import (
    assign_rule,
    get_permissions,
    has_permission,
    invalidate_all_permissions,
    remove_rule,
    rule_assignment_count,
)
from app.utils.exceptions import ConflictError, ForbiddenError, NotFoundError
from app.utils.helpers import client_ip

router = APIRouter()

require_settings = require_permission(MANAGE_SETTINGS)


def _get_rule(db: Session, rule_id) -> Rule:
    rule = db.query(Rule).filter(Rule.id == rule_id).first()
    if not rule:
        raise NotFoundError("Rule", rule_id)
    return rule


def _get_user(db: Session, user_id) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User", user_id)
    return user


def _ensure_unique_name(db: Session, name: str, exclude_id=None) -> None:
    query = db.query(Rule).filter(Rule.name == name)
    if exclude_id is not None:
        query = query.filter(Rule.id != exclude_id)
    if query.first():
        raise ConflictError(f"Rule '{name}' already exists")


# ============================================================================
# Rule CRUD
# ============================================================================

@router.get("", response_model=List[RuleResponse])
def list_rules(
    current_user: User = Depends(require_settings),
    db: Session = Depends(get_db)
):
    return db.query(Rule).order_by(Rule.name).all()


@router.get("/{rule_id}", response_model=RuleResponse)
def get_rule(
    rule_id: UUID,
    current_user: User = Depends(require_settings),
    db: Session = Depends(get_db)
):
    return _get_rule(db, rule_id)


@router.post("", response_model=RuleResponse, status_code=status.HTTP_201_CREATED)
def create_rule(
    body: RuleCreate,
    request: Request,
    current_user: User = Depends(require_settings),
    db: Session = Depends(get_db)
):
    _ensure_unique_name(db, body.name)
    rule = Rule(**body.model_dump())
    db.add(rule)
    db.flush()
    audit_service.log(db, "create", "rule", rule.id, user=current_user, ip_address=client_ip(request))
    db.commit()
    db.refresh(rule)
    return rule


@router.patch("/{rule_id}", response_model=RuleResponse)
def update_rule(
    rule_id: UUID,
    body: RuleUpdate,
    request: Request,
    current_user: User = Depends(require_settings),
    db: Session = Depends(get_db)
):
    rule = _get_rule(db, rule_id)
    changes = body.model_dump(exclude_unset=True)
    if changes.get("name"):
        _ensure_unique_name(db, changes["name"], exclude_id=rule.id)

    for field, value in changes.items():
        if value is None and field in ("name", "permissions"):
            continue
        setattr(rule, field, value)

    audit_service.log(
        db, "update", "rule", rule.id, user=current_user,
        details=",".join(sorted(changes)), ip_address=client_ip(request)
    )
    db.commit()
    invalidate_all_permissions()
    db.refresh(rule)
    return rule


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rule(
    rule_id: UUID,
    request: Request,
    current_user: User = Depends(require_settings),
    db: Session = Depends(get_db)
):
    """Assigned rules cannot be deleted; remove the assignments first."""
    rule = _get_rule(db, rule_id)
    assigned = rule_assignment_count(db, rule)
    if assigned:
        raise ConflictError(f"Rule is assigned to {assigned} user(s); unassign it first")

    db.delete(rule)
    audit_service.log(db, "delete", "rule", rule_id, user=current_user, ip_address=client_ip(request))
    db.commit()
    invalidate_all_permissions()
    logger.info(f"Rule deleted: {rule_id}")


# ============================================================================
# Assignment
# ============================================================================

@router.get("/users/{user_id}", response_model=List[RuleResponse])
def list_user_rules(
    user_id: UUID,
    current_user: User = Depends(require_settings),
    db: Session = Depends(get_db)
):
    return sorted(_get_user(db, user_id).rules, key=lambda r: r.name)


@router.post("/users/{user_id}", response_model=List[RuleResponse], status_code=status.HTTP_201_CREATED)
def assign_user_rule(
    user_id: UUID,
    body: RuleAssignment,
    request: Request,
    current_user: User = Depends(require_settings),
    db: Session = Depends(get_db)
):
    user = _get_user(db, user_id)
    rule = _get_rule(db, body.rule_id)
    if not assign_rule(db, user, rule):
        raise ConflictError("Rule already assigned to this user")

    audit_service.log(
        db, "assign", "rule", rule.id, user=current_user,
        details=f"user={user.id}", ip_address=client_ip(request)
    )
    db.commit()
    db.refresh(user)
    return sorted(user.rules, key=lambda r: r.name)


@router.delete("/users/{user_id}/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_user_rule(
    user_id: UUID,
    rule_id: UUID,
    request: Request,
    current_user: User = Depends(require_settings),
    db: Session = Depends(get_db)
):
    user = _get_user(db, user_id)
    rule = _get_rule(db, rule_id)
    if not remove_rule(db, user, rule):
        raise NotFoundError("Rule assignment")

    audit_service.log(
        db, "unassign", "rule", rule.id, user=current_user,
        details=f"user={user.id}", ip_address=client_ip(request)
    )
    db.commit()


@router.get("/users/{user_id}/permissions", response_model=EffectivePermissions)
def get_user_permissions(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Any user may read their own; reading others requires manage_settings."""
    if user_id != current_user.id and not has_permission(current_user, MANAGE_SETTINGS):
        raise ForbiddenError(f"Missing permission: {MANAGE_SETTINGS}")

    user = current_user if user_id == current_user.id else _get_user(db, user_id)
    return {
        "user_id": user.id,
        "role": user.role,
        "permissions": sorted(get_permissions(user)),
    }
