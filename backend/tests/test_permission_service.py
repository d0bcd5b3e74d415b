"""
Tests for the role/permission model.
"""
import uuid
from types import SimpleNamespace

from app.core.permissions import (
    ALL_PERMISSIONS,
    BENEFICIARY_PERMISSIONS,
    CASES_SELF_READ,
    MANAGE_CASES,
    MANAGE_FINANCE,
    MANAGE_SETTINGS,
)
from app.db.models import Rule, UserRole, UserRule, UserType
from app.services.cache_service import CacheService, cache_key, cache_service
from app.services.permission_service import (
    PERMISSIONS_SCOPE,
    assign_rule,
    get_or_create_beneficiary_rule,
    get_permissions,
    has_permission,
    has_role,
    invalidate_all_permissions,
    invalidate_user_permissions,
    is_admin,
    is_beneficiary,
    is_staff,
    remove_rule,
    resolve_permissions,
    rule_assignment_count,
)


def fake_user(role="lawyer", user_type="staff", permissions=()):
    rules = [SimpleNamespace(name="r", permissions=list(permissions))] if permissions else []
    return SimpleNamespace(
        id=uuid.uuid4(),
        role=role,
        user_type=user_type,
        beneficiary_id=None,
        rules=rules,
    )


# ── Role checks ──────────────────────────────────────────────────────

def test_has_role_matches_string_enum_and_iterable():
    user = fake_user(role=UserRole.lawyer)
    assert has_role(user, "lawyer")
    assert has_role(user, UserRole.lawyer)
    assert has_role(user, ["admin", UserRole.lawyer])
    assert not has_role(user, ("admin", "super_admin"))


def test_has_role_is_false_without_user():
    assert not has_role(None, "admin")


def test_admin_and_super_admin_are_admins():
    assert is_admin(fake_user(role="admin"))
    assert is_admin(fake_user(role=UserRole.super_admin))
    assert not is_admin(fake_user(role="lawyer"))
    assert not is_admin(None)


def test_user_type_helpers():
    assert is_staff(fake_user(user_type=UserType.staff))
    assert not is_staff(fake_user(user_type="beneficiary"))
    assert is_beneficiary(fake_user(role="beneficiary", user_type="beneficiary"))


# ── Permission resolution ────────────────────────────────────────────

def test_admin_holds_every_permission_without_rules():
    admin = fake_user(role="admin")
    assert resolve_permissions(admin) == ALL_PERMISSIONS
    assert has_permission(admin, MANAGE_FINANCE, cache=CacheService())


def test_permissions_are_union_of_rules():
    user = fake_user()
    user.rules = [
        SimpleNamespace(name="a", permissions=[MANAGE_CASES]),
        SimpleNamespace(name="b", permissions=[MANAGE_SETTINGS, MANAGE_CASES]),
        SimpleNamespace(name="c", permissions=None),
    ]
    assert resolve_permissions(user) == {MANAGE_CASES, MANAGE_SETTINGS}


def test_user_without_rules_has_no_permissions():
    user = fake_user()
    assert resolve_permissions(user) == frozenset()
    assert not has_permission(user, MANAGE_CASES, cache=CacheService())


def test_unknown_permission_is_false():
    user = fake_user(permissions=[MANAGE_CASES])
    assert not has_permission(user, "launch_rockets", cache=CacheService())


def test_permissions_are_cached_until_invalidated():
    cache = CacheService()
    user = fake_user(permissions=[MANAGE_CASES])

    assert has_permission(user, MANAGE_CASES, cache=cache)
    user.rules = []
    # Stale until invalidated
    assert has_permission(user, MANAGE_CASES, cache=cache)

    invalidate_user_permissions(user.id, cache=cache)
    assert not has_permission(user, MANAGE_CASES, cache=cache)


def test_invalidate_all_drops_only_permission_scope():
    cache = CacheService()
    a, b = fake_user(permissions=[MANAGE_CASES]), fake_user(permissions=[MANAGE_SETTINGS])
    get_permissions(a, cache)
    get_permissions(b, cache)
    cache.set(cache_key("case", "1", "summary"), "kept")

    invalidate_all_permissions(cache)

    assert cache.get(cache_key("user", a.id, PERMISSIONS_SCOPE)) is None
    assert cache.get(cache_key("user", b.id, PERMISSIONS_SCOPE)) is None
    assert cache.get(cache_key("case", "1", "summary")) == "kept"


# ── Rule assignment (database) ───────────────────────────────────────

def test_rule_grants_only_its_permissions(db, make_user):
    rule = Rule(name="case-managers", permissions=[MANAGE_CASES])
    db.add(rule)
    db.commit()

    user = make_user(role=UserRole.intake_officer, rules=[rule])

    assert has_permission(user, MANAGE_CASES)
    assert not has_permission(user, MANAGE_FINANCE)


def test_assign_rule_is_idempotent(db, make_user):
    rule = Rule(name="viewers", permissions=[MANAGE_CASES])
    db.add(rule)
    user = make_user(role=UserRole.viewer)

    assert assign_rule(db, user, rule) is True
    assert assign_rule(db, user, rule) is False
    db.commit()

    assert db.query(UserRule).filter(UserRule.user_id == user.id).count() == 1
    assert rule_assignment_count(db, rule) == 1


def test_assign_and_remove_rule_refresh_cached_permissions(db, make_user):
    rule = Rule(name="settings", permissions=[MANAGE_SETTINGS])
    db.add(rule)
    user = make_user(role=UserRole.viewer)

    assert not has_permission(user, MANAGE_SETTINGS)

    assign_rule(db, user, rule)
    db.commit()
    assert has_permission(user, MANAGE_SETTINGS)

    assert remove_rule(db, user, rule) is True
    db.commit()
    assert not has_permission(user, MANAGE_SETTINGS)
    assert remove_rule(db, user, rule) is False


def test_removal_drops_entry_cached_before_commit(db, make_user):
    rule = Rule(name="finance", permissions=[MANAGE_FINANCE])
    db.add(rule)
    db.commit()
    user = make_user(role=UserRole.viewer, rules=[rule])
    key = cache_key("user", user.id, PERMISSIONS_SCOPE)

    remove_rule(db, user, rule)
    # Another request resolves the still-committed set before this one commits
    cache_service.set(key, frozenset({MANAGE_FINANCE}))
    db.commit()

    assert cache_service.get(key) is None
    assert not has_permission(user, MANAGE_FINANCE)


def test_rolled_back_assignment_leaves_cache_alone(db, make_user):
    rule = Rule(name="finance", permissions=[MANAGE_FINANCE])
    db.add(rule)
    db.commit()
    user = make_user(role=UserRole.viewer)

    assert not has_permission(user, MANAGE_FINANCE)
    assign_rule(db, user, rule)
    db.rollback()

    assert cache_service.get(cache_key("user", user.id, PERMISSIONS_SCOPE)) == frozenset()


def test_default_beneficiary_rule_is_created_once(db):
    first = get_or_create_beneficiary_rule(db)
    db.commit()
    second = get_or_create_beneficiary_rule(db)

    assert first.id == second.id
    assert set(first.permissions) == BENEFICIARY_PERMISSIONS


def test_beneficiary_account_gets_self_permissions(make_beneficiary, make_beneficiary_user):
    account = make_beneficiary_user(make_beneficiary())

    assert has_permission(account, CASES_SELF_READ)
    assert not has_permission(account, MANAGE_CASES)
