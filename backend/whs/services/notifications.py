"""Notification gateway: writes outbox rows inside the caller's transaction."""
from __future__ import annotations
import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from whs.models.notification import RepairNotification
from whs.models.repair import Repair

logger = logging.getLogger(__name__)

EVENT_CREATED = 'repair.created'
EVENT_APPROVED = 'repair.approved'
EVENT_REJECTED = 'repair.rejected'
EVENT_ASSIGNED = 'repair.item_assigned'
EVENT_STATUS = 'repair.status_changed'


class RepairNotifier:
    def __init__(self, session: Session, enabled: bool = True):
        self.session = session
        self.enabled = enabled

    def notify(self, event: str, repair: Repair, recipients: Iterable[Optional[int]], **payload) -> List[RepairNotification]:
        """Queue one row per distinct recipient; the caller commits."""
        if not self.enabled:
            return []
        rows = []
        for uid in dict.fromkeys(r for r in recipients if r is not None):
            row = RepairNotification(
                recipient_user_id=uid,
                event=event,
                repair_id=repair.id,
                payload={'repair_number': repair.repair_number, **payload},
            )
            self.session.add(row)
            rows.append(row)
        if rows:
            logger.debug('queued %s for repair_id=%s recipients=%s', event, repair.id, [r.recipient_user_id for r in rows])
        return rows
