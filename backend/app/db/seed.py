# backend/app/db/seed.py

"""
Database Seeding Script

Creates reference data and an admin account for development:

    python -m app.db.seed

Safe to re-run: existing records are left untouched.
"""

import os
from typing import List

from sqlalchemy.orm import Session

from app.core.security import get_password_hash
from app.db.database import SessionLocal, init_db
from app.db.models import CaseType, Rule, User, UserRole, UserType
from app.services.permission_service import get_or_create_beneficiary_rule

# ============================================================================
# Seed Data
# ============================================================================

DEFAULT_CASE_TYPES = [
    # (key, name_ar, name_en)
    ("civil", "مدني", "Civil"),
    ("criminal", "جنائي", "Criminal"),
    ("family", "أحوال شخصية", "Family / Personal Status"),
    ("labor", "عمالي", "Labor"),
    ("asylum", "لجوء", "Asylum / Refugee"),
    ("other", "أخرى", "Other"),
]


def create_case_types(db: Session) -> List[CaseType]:
    """Create the default case types"""
    created = []
    for order, (key, name_ar, name_en) in enumerate(DEFAULT_CASE_TYPES):
        if db.query(CaseType).filter(CaseType.key == key).first():
            continue
        case_type = CaseType(key=key, name_ar=name_ar, name_en=name_en, sort_order=order, is_active=True)
        db.add(case_type)
        created.append(case_type)
    db.commit()
    print(f"✅ Case types created: {len(created)}")
    return created


def create_beneficiary_rule(db: Session) -> Rule:
    rule = get_or_create_beneficiary_rule(db)
    db.commit()
    print(f"✅ Default rule ready: {rule.name}")
    return rule


def create_admin(db: Session) -> User:
    """Create the admin account from ADMIN_USERNAME / ADMIN_EMAIL / ADMIN_PASSWORD"""
    username = os.getenv("ADMIN_USERNAME", "admin")
    email = os.getenv("ADMIN_EMAIL", "admin@example.org").lower()
    password = os.getenv("ADMIN_PASSWORD", "ChangeMe123")

    user = db.query(User).filter(User.username == username).first()
    if user:
        print(f"⚠️  Admin already exists: {username}")
        return user

    user = User(
        username=username,
        email=email,
        password_hash=get_password_hash(password),
        full_name="System Administrator",
        user_type=UserType.staff,
        role=UserRole.super_admin,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    print(f"✅ Created admin user: {username}")
    return user


def seed_database():
    """Main seeding function"""
    print("🌱 Seeding database...")
    init_db()

    db = SessionLocal()
    try:
        create_case_types(db)
        create_beneficiary_rule(db)
        create_admin(db)
        print("✅ Database seeding completed successfully!")
    except Exception as e:
        print(f"\n❌ Seeding failed: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()

# ============================================================================
# CLI Entry Point
# ============================================================================

if __name__ == "__main__":
    seed_database()
