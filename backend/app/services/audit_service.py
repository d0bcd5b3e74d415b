# app/services/audit_service.py

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.logger import logger
from app.db.models import AuditLog


class AuditService:
    """
    Audit trail stored in the audit_log table.
    Writes never break the request: failures are logged and swallowed.
    """

    def log(
        self,
        db: Session,
        action: str,
        entity: str,
        entity_id=None,
        user=None,
        details: Optional[str] = None,
        ip_address: Optional[str] = None,
        commit: bool = False,
    ) -> None:
        """
        Record an action. The entry is committed with the caller's
        transaction unless ``commit`` is set.
        """
        try:
            db.add(AuditLog(
                user_id=getattr(user, "id", None),
                action=action,
                entity=entity,
                entity_id=str(entity_id) if entity_id is not None else None,
                details=details,
                ip_address=ip_address,
            ))
            if commit:
                db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to write audit entry {action}/{entity}: {str(e)}")

    def log_denied(
        self,
        db: Session,
        user,
        entity: str,
        entity_id=None,
        reason: str = "",
        ip_address: Optional[str] = None,
    ) -> None:
        """
        Record a denied access attempt (SECURITY event). Committed
        immediately since the request is about to fail.
        """
        logger.warning(
            f"Denied access: user={getattr(user, 'id', None)} entity={entity} "
            f"id={entity_id} reason={reason}"
        )
        self.log(
            db,
            action="unauthorized_access_attempt",
            entity=entity,
            entity_id=entity_id,
            user=user,
            details=reason,
            ip_address=ip_address,
            commit=True,
        )


# Singleton instance
audit_service = AuditService()
