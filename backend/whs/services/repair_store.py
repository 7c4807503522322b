"""Persistence gateway for the repair aggregate.

Approval and assignment are exactly-once transitions, so they are written
with conditional UPDATE statements keyed on the state the guard saw. A
rowcount of 0 means another actor got there first. Every other write goes
through the ORM and is protected by the `version` column.
"""
from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from whs.errors import Conflict, NotFound
from whs.models.repair import Repair, RepairItem, utcnow
from whs.services.directory import UserRef

logger = logging.getLogger(__name__)


class RepairStore:
    def __init__(self, session: Session):
        self.session = session

    def load(self, repair_id: int) -> Repair:
        """Fetch the aggregate with items, overwriting any stale identity-map copy."""
        repair = self.session.execute(
            select(Repair)
            .options(selectinload(Repair.items))
            .where(Repair.id == repair_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if repair is None:
            raise NotFound('Repair', repair_id)
        return repair

    def find_by_idempotency_key(self, reported_by: int, key: str) -> Optional[Repair]:
        return self.session.execute(
            select(Repair)
            .options(selectinload(Repair.items))
            .where(Repair.reported_by == reported_by, Repair.idempotency_key == key)
        ).scalar_one_or_none()

    def add(self, repair: Repair) -> Repair:
        self.session.add(repair)
        self.session.flush()
        return repair

    def delete(self, repair: Repair):
        self.session.delete(repair)

    def approve_if_pending(self, repair_id: int, values: Dict[str, Any]) -> bool:
        result = self.session.execute(
            update(Repair)
            .where(Repair.id == repair_id, Repair.approval_status == Repair.APPROVAL_PENDING)
            .values(version=Repair.version + 1, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def assign_if_unassigned(self, repair_id: int, item_id: int, assignee: UserRef, at: datetime) -> bool:
        result = self.session.execute(
            update(RepairItem)
            .where(
                RepairItem.id == item_id,
                RepairItem.repair_id == repair_id,
                RepairItem.is_repairable.is_(True),
                RepairItem.assigned_to_id.is_(None),
                RepairItem.status.notin_(RepairItem.TERMINAL_STATUSES),
            )
            .values(
                assigned_to_id=assignee.id,
                assigned_to_name=assignee.display_name,
                assigned_at=at,
                status=RepairItem.STATUS_ASSIGNED,
                updated_at=at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def touch_if_approved(self, repair_id: int) -> bool:
        """Bump the aggregate version, provided approval still stands."""
        result = self.session.execute(
            update(Repair)
            .where(Repair.id == repair_id, Repair.approval_status == Repair.APPROVAL_APPROVED)
            .values(version=Repair.version + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def commit(self):
        try:
            self.session.commit()
        except StaleDataError:
            self.session.rollback()
            logger.warning('stale repair aggregate on commit')
            raise Conflict('Repair was modified by another request; reload and retry')
        except IntegrityError as e:
            self.session.rollback()
            logger.warning('integrity error on repair commit: %s', e.orig)
            raise Conflict('Repair conflicts with an existing record')

    def rollback(self):
        self.session.rollback()
