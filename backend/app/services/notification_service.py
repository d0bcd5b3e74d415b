# app/services/notification_service.py
"""
In-app notifications created by system events.

The acting user is never notified about their own action. Notifications
are added to the caller's session and committed with it.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from app.db.models import Notification, User

logger = logging.getLogger(__name__)


class NotificationService:

    def notify(
        self,
        db: Session,
        user_id,
        type: str,
        title: str,
        message: str,
        url: Optional[str] = None,
        related_entity_id=None,
        actor=None,
    ) -> Optional[Notification]:
        if user_id is None:
            return None
        if actor is not None and actor.id == user_id:
            return None

        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            url=url,
            related_entity_id=str(related_entity_id) if related_entity_id is not None else None,
        )
        db.add(notification)
        return notification

    def notify_many(self, db: Session, user_ids: Iterable, **kwargs) -> int:
        sent = 0
        for user_id in dict.fromkeys(user_ids):
            if self.notify(db, user_id, **kwargs) is not None:
                sent += 1
        return sent

    def beneficiary_account_ids(self, db: Session, beneficiary_id) -> list:
        if beneficiary_id is None:
            return []
        rows = (
            db.query(User.id)
            .filter(User.beneficiary_id == beneficiary_id, User.is_active == True)  # noqa: E712
            .all()
        )
        return [row.id for row in rows]

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def document_uploaded(self, db: Session, case, document, actor) -> int:
        recipients = [case.assigned_lawyer_id]
        if document.is_public:
            recipients += self.beneficiary_account_ids(db, case.beneficiary_id)
        sent = self.notify_many(
            db,
            recipients,
            type="document_uploaded",
            title="New document",
            message=f"A document \"{document.title}\" was added to case {case.case_number}",
            url=f"/cases/{case.id}",
            related_entity_id=case.id,
            actor=actor,
        )
        logger.info("document_uploaded notifications sent=%s case=%s", sent, case.id)
        return sent

    def session_scheduled(self, db: Session, case, session, actor) -> int:
        recipients = [case.assigned_lawyer_id]
        if not session.is_confidential:
            recipients += self.beneficiary_account_ids(db, case.beneficiary_id)
        return self.notify_many(
            db,
            recipients,
            type="session_scheduled",
            title="Court session scheduled",
            message=f"{session.title} on {session.gregorian_date:%Y-%m-%d} at {session.time}, {session.court_name}",
            url=f"/sessions/{session.id}",
            related_entity_id=session.id,
            actor=actor,
        )

    def request_status_changed(self, db: Session, record, entity: str, actor) -> int:
        status = getattr(record.status, "value", record.status)
        return self.notify_many(
            db,
            self.beneficiary_account_ids(db, record.beneficiary_id),
            type=f"{entity}_status_changed",
            title="Request status updated",
            message=f"Your request status is now: {status}",
            related_entity_id=record.id,
            actor=actor,
        )

    def judicial_service_assigned(self, db: Session, record, actor) -> int:
        sent = self.notify_many(
            db,
            [record.assigned_lawyer_id],
            type="judicial_service_assigned",
            title="Judicial service assigned",
            message=f"You were assigned to judicial service {record.service_number}",
            url=f"/lawyer/judicial-services/{record.id}",
            related_entity_id=record.id,
            actor=actor,
        )
        sent += self.notify_many(
            db,
            self.beneficiary_account_ids(db, record.beneficiary_id),
            type="judicial_service_assigned",
            title="Lawyer assigned",
            message=f"A lawyer was assigned to your judicial service {record.service_number}",
            related_entity_id=record.id,
            actor=actor,
        )
        return sent

    def consultation_assigned(self, db: Session, record, actor) -> int:
        return self.notify_many(
            db,
            [record.lawyer_id],
            type="consultation_assigned",
            title="Consultation assigned",
            message=f"You were assigned consultation {record.consultation_number}: {record.topic}",
            url=f"/consultations/{record.id}",
            related_entity_id=record.id,
            actor=actor,
        )


# Singleton instance
notification_service = NotificationService()
