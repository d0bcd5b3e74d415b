# app/services/permission_service.py
"""
Role / permission model
=======================
Every route guard goes through this module: ``has_role`` for the coarse
role check and ``has_permission`` for rule-based permissions. A missing
role or permission is an ordinary ``False``; callers turn it into a 403.

Admins (``admin``, ``super_admin``) hold the full permission catalog
without any rule assignment. Everyone else gets the union of the
permissions of the rules assigned to them.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional, Union

from sqlalchemy import event
from sqlalchemy.orm import Session

from app.core.permissions import (
    ALL_PERMISSIONS,
    BENEFICIARY_PERMISSIONS,
    DEFAULT_BENEFICIARY_RULE,
)
from app.db.models import Rule, User, UserRole, UserRule, UserType
from app.services.cache_service import CacheService, cache_key, cache_service

logger = logging.getLogger(__name__)

PERMISSIONS_SCOPE = "permissions"

ADMIN_ROLES = frozenset({UserRole.admin.value, UserRole.super_admin.value})


def enum_value(v) -> Optional[str]:
    return getattr(v, "value", v)


def is_admin(user) -> bool:
    return user is not None and enum_value(user.role) in ADMIN_ROLES


def is_staff(user) -> bool:
    return user is not None and enum_value(user.user_type) == UserType.staff.value


def is_beneficiary(user) -> bool:
    return user is not None and enum_value(user.user_type) == UserType.beneficiary.value


def resolve_permissions(user) -> frozenset:
    """Effective permission set of ``user``; uncached."""
    if user is None:
        return frozenset()
    if is_admin(user):
        return frozenset(ALL_PERMISSIONS)

    permissions = set()
    for rule in getattr(user, "rules", None) or []:
        permissions.update(rule.permissions or [])
    return frozenset(permissions)


def get_permissions(user, cache: Optional[CacheService] = None) -> frozenset:
    """Cached ``resolve_permissions``."""
    if user is None:
        return frozenset()
    cache = cache_service if cache is None else cache
    key = cache_key("user", user.id, PERMISSIONS_SCOPE)
    permissions = cache.get(key)
    if permissions is None:
        permissions = resolve_permissions(user)
        cache.set(key, permissions)
    return permissions


def has_permission(user, permission: str, cache: Optional[CacheService] = None) -> bool:
    return permission in get_permissions(user, cache)


def has_role(user, roles: Union[str, UserRole, Iterable[Union[str, UserRole]]]) -> bool:
    """Exact match against the user's single role."""
    if user is None:
        return False
    if isinstance(roles, (str, UserRole)):
        roles = [roles]
    return enum_value(user.role) in {enum_value(r) for r in roles}


# ============================================================================
# Cache invalidation
# ============================================================================

def invalidate_user_permissions(user_id, cache: Optional[CacheService] = None) -> None:
    cache = cache_service if cache is None else cache
    cache.invalidate(cache_key("user", user_id, PERMISSIONS_SCOPE))


def forget_user(user_id, cache: Optional[CacheService] = None) -> None:
    """Every scope cached for the user, e.g. after a role change or deactivation."""
    cache = cache_service if cache is None else cache
    cache.invalidate_entity("user", user_id)


def invalidate_all_permissions(cache: Optional[CacheService] = None) -> None:
    cache = cache_service if cache is None else cache
    cache.invalidate_scope(PERMISSIONS_SCOPE)


def invalidate_on_commit(db: Session, user_id) -> None:
    """
    Drop the cached set once the transaction commits. Until then other
    sessions still read the old assignments and could re-cache them.
    """
    def _after_commit(session):
        invalidate_user_permissions(user_id)

    event.listen(db, "after_commit", _after_commit, once=True)


# ============================================================================
# Rule assignment
# ============================================================================

def assign_rule(db: Session, user: User, rule: Rule) -> bool:
    """Assign ``rule`` to ``user``; returns False when already assigned."""
    existing = (
        db.query(UserRule)
        .filter(UserRule.user_id == user.id, UserRule.rule_id == rule.id)
        .first()
    )
    if existing:
        return False

    db.add(UserRule(user_id=user.id, rule_id=rule.id))
    db.flush()
    db.expire(user, ["rules"])
    invalidate_on_commit(db, user.id)
    logger.info("Assigned rule %s to user %s", rule.name, user.id)
    return True


def remove_rule(db: Session, user: User, rule: Rule) -> bool:
    """Returns False when the rule was not assigned."""
    deleted = (
        db.query(UserRule)
        .filter(UserRule.user_id == user.id, UserRule.rule_id == rule.id)
        .delete(synchronize_session=False)
    )
    db.flush()
    db.expire(user, ["rules"])
    invalidate_on_commit(db, user.id)
    if deleted:
        logger.info("Removed rule %s from user %s", rule.name, user.id)
    return bool(deleted)


def rule_assignment_count(db: Session, rule: Rule) -> int:
    return db.query(UserRule).filter(UserRule.rule_id == rule.id).count()


def get_or_create_beneficiary_rule(db: Session) -> Rule:
    rule = db.query(Rule).filter(Rule.name == DEFAULT_BENEFICIARY_RULE).first()
    if rule is None:
        rule = Rule(
            name=DEFAULT_BENEFICIARY_RULE,
            description="Self-service access for beneficiary accounts",
            permissions=sorted(BENEFICIARY_PERMISSIONS),
        )
        db.add(rule)
        db.flush()
        logger.info("Created default beneficiary rule")
    return rule
