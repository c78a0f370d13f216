# services/notification_service.py
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.core.constants import QueryCategory, QueryPriority
from bikefine.models.case import Case
from bikefine.models.query import UserQuery
from bikefine.schemas.query import QueryCreate
from bikefine.services import query_service

logger = logging.getLogger(__name__)


class NotificationService:
    """Tells riders about new cases through their support-query inbox."""

    CASE_FILED = {
        "subject": "New violation filed: {violation_type}",
        "message": (
            "A new violation case (ID: {case_id}) has been created for your account. "
            "Fine: {fine}. Please review your dashboard for details."
        ),
    }

    async def notify_case_filed(self, db: AsyncSession, case: Case) -> Optional[UserQuery]:
        """
        Create the companion query for a freshly filed case.

        Failures are logged and swallowed; the case is already committed.
        """
        case_id = case.id
        fine = f"{case.fine:g}"
        try:
            return await query_service.create_query(db, QueryCreate(
                user_id=case.user_id,
                case_id=case_id,
                subject=self.CASE_FILED["subject"].format(violation_type=case.violation_type.value),
                message=self.CASE_FILED["message"].format(case_id=case_id, fine=fine),
                category=QueryCategory.VIOLATION_DISPUTE,
                priority=QueryPriority.HIGH,
                is_urgent=False,
            ))
        except Exception:
            await db.rollback()
            logger.exception("Failed to create notification query for case %s", case_id)
            return None


notification_service = NotificationService()
