"""Repair workflow orchestrator.

The only code allowed to mutate repairs and repair items. Each public method
is one unit of work and runs the same steps:

    load -> validate -> guard -> write -> commit -> side effects

Validation failures raise `ValidationError`, guard failures and lost
conditional updates raise `ForbiddenTransition`, stale versions raise
`Conflict`. The session is rolled back before any of them leaves this
module, so callers never see a half-applied aggregate.
"""
from __future__ import annotations
import logging
from collections import OrderedDict
from datetime import date
from typing import Dict, List, Mapping, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Query, Session, selectinload

from whs.errors import Conflict, ForbiddenTransition, NotFound, ValidationError, WorkflowError
from whs.models.repair import Repair, RepairItem, utcnow
from whs.services import repair_guards as guards
from whs.services.directory import SqlUserDirectory, UserRef
from whs.services.item_source import AssignableItem, SqlAssignableItemSource
from whs.services.notifications import (
    RepairNotifier, EVENT_CREATED, EVENT_APPROVED, EVENT_REJECTED, EVENT_ASSIGNED, EVENT_STATUS,
)
from whs.services.policy import Actor
from whs.services.repair_intents import (
    ApproveRepair, AssignmentInstruction, CreateRepair, EditRepair, PatchItem,
    UpdateItemStatus, UpdateRepairProgress,
)
from whs.services.repair_store import RepairStore
from whs.services.repair_validation import (
    validate_approval, validate_assignment, validate_create, validate_edit,
    validate_item_status_update, validate_progress_update,
)
from whs.utils.filters import apply_filters

logger = logging.getLogger(__name__)

COMPLETION_STATUSES = (Repair.STATUS_COMPLETED, Repair.STATUS_RESOLVED)

REPAIR_LIST_FILTERS = {
    'reported_by': {'coerce': int, 'op': lambda q, v: q.filter(Repair.reported_by == v)},
    'approver_id': {'coerce': int, 'op': lambda q, v: q.filter(Repair.approver_id == v)},
    'status': {'choices': Repair.ALL_STATUSES, 'op': lambda q, v: q.filter(Repair.status == v)},
    'approval_status': {
        'choices': Repair.ALL_APPROVAL_STATUSES,
        'op': lambda q, v: q.filter(Repair.approval_status == v),
    },
    'priority': {'choices': Repair.PRIORITIES, 'op': lambda q, v: q.filter(Repair.priority == v)},
    'assigned_to': {
        'coerce': int,
        'op': lambda q, v: q.filter(Repair.items.any(RepairItem.assigned_to_id == v)),
    },
    'q': {
        'op': lambda q, v: q.filter(
            Repair.description.ilike(f'%{v}%') | Repair.repair_number.ilike(f'%{v}%')
        ),
    },
}


def _as_date(value) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


class RepairWorkflow:
    def __init__(
        self,
        session: Session,
        directory: SqlUserDirectory,
        item_source: SqlAssignableItemSource,
        notifier: RepairNotifier,
        number_prefix: str = 'RPR',
    ):
        self.session = session
        self.store = RepairStore(session)
        self.directory = directory
        self.item_source = item_source
        self.notifier = notifier
        self.number_prefix = number_prefix

    # ---- helpers -------------------------------------------------------

    def _fail(self, err: WorkflowError):
        self.store.rollback()
        raise err

    def _load(self, repair_id: int, expected_version: Optional[int] = None) -> Repair:
        repair = self.store.load(repair_id)
        if expected_version is not None and expected_version != repair.version:
            logger.warning('repair.conflict repair_id=%s expected=%s current=%s', repair_id, expected_version, repair.version)
            raise Conflict(f'Repair {repair_id} is at version {repair.version}, not {expected_version}')
        return repair

    def _check(self, errors: Dict[str, str]):
        if errors:
            self._fail(ValidationError(errors))

    def _guard(self, assertion, *args):
        try:
            assertion(*args)
        except ForbiddenTransition as e:
            logger.info('repair.forbidden %s', e.detail)
            self._fail(e)

    def _sources(self, actor: Actor) -> Dict[str, AssignableItem]:
        return self.item_source.available_by_source(actor)

    def _new_item(self, source: AssignableItem, quantity: int, is_repairable: bool, notes: Optional[str]) -> RepairItem:
        # Product identity is copied once; later catalog changes do not leak in
        return RepairItem(
            source_item_id=source.source_item_id,
            product_id=source.product_id,
            variant_id=source.variant_id,
            product_name=source.product_name,
            variant_name=source.variant_name,
            quantity=quantity,
            is_repairable=is_repairable,
            notes=notes,
            status=RepairItem.STATUS_PENDING,
        )

    def _resolve_source(self, sources: Dict[str, AssignableItem], source_item_id: str) -> AssignableItem:
        source = sources.get(source_item_id)
        if source is None:
            self._fail(NotFound('Assignable item', source_item_id))
        return source

    def _resolve_user(self, user_id, field: str) -> UserRef:
        try:
            return self.directory.resolve_user(user_id, field=field)
        except WorkflowError as e:
            self._fail(e)

    # ---- intents -------------------------------------------------------

    def create_repair(self, actor: Actor, intent: CreateRepair) -> Tuple[Repair, bool]:
        """Returns (repair, created); created is False on an idempotent replay."""
        if intent.idempotency_key:
            existing = self.store.find_by_idempotency_key(actor.user_id, intent.idempotency_key)
            if existing is not None:
                logger.info('repair.create_replayed repair_id=%s actor=%s', existing.id, actor.user_id)
                return existing, False
        sources = self._sources(actor)
        self._check(validate_create(intent, {k: v.available for k, v in sources.items()}))
        approver = self._resolve_user(intent.approver_id, 'approver_id')
        repair = Repair(
            reported_by=actor.user_id,
            approver_id=approver.id,
            description=intent.description.strip(),
            notes=intent.notes,
            status=Repair.STATUS_REPORTED,
            approval_status=Repair.APPROVAL_PENDING,
            idempotency_key=intent.idempotency_key,
        )
        for draft in intent.items:
            source = self._resolve_source(sources, draft.source_item_id)
            repair.items.append(self._new_item(source, draft.quantity, draft.is_repairable, draft.notes))
        self.store.add(repair)
        repair.repair_number = f'{self.number_prefix}-{repair.id:06d}'
        self.notifier.notify(EVENT_CREATED, repair, [approver.id], reported_by=actor.user_id)
        self.store.commit()
        logger.info('repair.created repair_id=%s number=%s actor=%s items=%d',
                    repair.id, repair.repair_number, actor.user_id, len(repair.items))
        return repair, True

    def approve_repair(self, actor: Actor, repair_id: int, intent: ApproveRepair,
                       expected_version: Optional[int] = None) -> Repair:
        repair = self._load(repair_id, expected_version)
        self._check(validate_approval(intent))
        self._guard(guards.assert_can_approve, repair)
        values = {
            'approval_status': intent.decision,
            'approved_by': actor.user_id,
            'approved_at': utcnow(),
            'approval_notes': intent.notes.strip(),
            'rejection_reason': intent.rejection_reason if intent.decision == Repair.APPROVAL_REJECTED else None,
        }
        if not self.store.approve_if_pending(repair_id, values):
            logger.info('repair.approve_lost repair_id=%s actor=%s', repair_id, actor.user_id)
            self._fail(ForbiddenTransition('Repair approval was already decided'))
        event = EVENT_APPROVED if intent.decision == Repair.APPROVAL_APPROVED else EVENT_REJECTED
        self.notifier.notify(event, repair, [repair.reported_by], decided_by=actor.user_id,
                             rejection_reason=values['rejection_reason'])
        self.store.commit()
        logger.info('repair.%s repair_id=%s actor=%s', intent.decision, repair_id, actor.user_id)
        return self.store.load(repair_id)

    def assign_items(self, actor: Actor, repair_id: int, instructions: List[AssignmentInstruction],
                     expected_version: Optional[int] = None) -> Repair:
        repair = self._load(repair_id, expected_version)
        # State first: an empty plan on a repair with nothing left to assign is a 412
        self._guard(guards.assert_can_assign, repair)
        self._check(validate_assignment(instructions))
        resolved: List[Tuple[RepairItem, UserRef]] = []
        for ins in instructions:
            item = repair.item_by_id(ins.item_id)
            if item is None:
                self._fail(NotFound('Repair item', ins.item_id))
            self._guard(guards.assert_item_assignable, item)
            resolved.append((item, self._resolve_user(ins.assigned_to, f'items[{ins.item_id}].assigned_to')))
        now = utcnow()
        for item, assignee in resolved:
            if not self.store.assign_if_unassigned(repair_id, item.id, assignee, now):
                logger.info('repair.assign_lost repair_id=%s item_id=%s', repair_id, item.id)
                self._fail(ForbiddenTransition(f'Item {item.id} is no longer assignable'))
        if not self.store.touch_if_approved(repair_id):
            self._fail(ForbiddenTransition('Repair is no longer approved'))
        by_assignee: Dict[int, List[int]] = OrderedDict()
        for item, assignee in resolved:
            by_assignee.setdefault(assignee.id, []).append(item.id)
        for user_id, item_ids in by_assignee.items():
            self.notifier.notify(EVENT_ASSIGNED, repair, [user_id], item_ids=item_ids, assigned_by=actor.user_id)
        self.store.commit()
        logger.info('repair.assigned repair_id=%s actor=%s items=%s',
                    repair_id, actor.user_id, [i.id for i, _ in resolved])
        return self.store.load(repair_id)

    def _set_repair_status(self, repair: Repair, target: str, completion: Optional[date] = None) -> bool:
        if target == repair.status:
            return False
        self._guard(guards.REPAIR_STATUS_FSM.assert_can_transition, repair.status, target)
        repair.status = target
        if target in COMPLETION_STATUSES and repair.actual_completion_date is None:
            repair.actual_completion_date = completion or utcnow().date()
        return True

    def update_item_status(self, actor: Actor, repair_id: int, intent: UpdateItemStatus,
                           expected_version: Optional[int] = None) -> Repair:
        repair = self._load(repair_id, expected_version)
        self._check(validate_item_status_update(intent, repair))
        self._guard(guards.assert_can_update_status, repair)
        now = utcnow()
        changed_items = []
        for change in intent.items:
            item = repair.item_by_id(change.item_id)
            if item is None:
                self._fail(NotFound('Repair item', change.item_id))
            if item.status == change.status:
                continue
            self._guard(guards.ITEM_STATUS_FSM.assert_can_transition, item.status, change.status)
            item.status = change.status
            if change.status == RepairItem.STATUS_COMPLETED:
                item.repaired = True
                item.repaired_by = actor.user_id
                item.repaired_at = now
            changed_items.append(item.id)
        status_changed = False
        if intent.repair_status is not None:
            status_changed = self._set_repair_status(repair, intent.repair_status)
        repair.updated_at = now
        if status_changed:
            self.notifier.notify(EVENT_STATUS, repair, [repair.reported_by], status=repair.status)
        self.store.commit()
        logger.info('repair.items_status repair_id=%s actor=%s items=%s repair_status=%s',
                    repair_id, actor.user_id, changed_items, repair.status)
        return repair

    def update_repair_progress(self, actor: Actor, repair_id: int, intent: UpdateRepairProgress,
                               expected_version: Optional[int] = None) -> Repair:
        repair = self._load(repair_id, expected_version)
        self._check(validate_progress_update(intent, repair))
        self._guard(guards.assert_can_update_status, repair)
        actual = _as_date(intent.actual_completion_date)
        status_changed = False
        if intent.status is not None:
            status_changed = self._set_repair_status(repair, intent.status, actual)
        if intent.priority is not None:
            repair.priority = intent.priority
        if intent.estimated_completion_date is not None:
            repair.estimated_completion_date = _as_date(intent.estimated_completion_date)
        if actual is not None:
            repair.actual_completion_date = actual
        if intent.cost_cents is not None:
            repair.cost_cents = intent.cost_cents
        if intent.repair_notes is not None:
            repair.repair_notes = intent.repair_notes
        repair.updated_at = utcnow()
        if status_changed:
            self.notifier.notify(EVENT_STATUS, repair, [repair.reported_by], status=repair.status)
        self.store.commit()
        logger.info('repair.progress repair_id=%s actor=%s status=%s', repair_id, actor.user_id, repair.status)
        return repair

    def _apply_items(self, actor: Actor, repair: Repair, lines: List[PatchItem], sources: Dict[str, AssignableItem]):
        kept = set()
        for line in lines:
            if line.is_new:
                continue
            item = repair.item_by_id(line.id)
            if item is None:
                self._fail(NotFound('Repair item', line.id))
            kept.add(item.id)
            source = sources.get(item.source_item_id)
            if source is not None and line.quantity > item.quantity and line.quantity > source.available:
                # Existing lines are not re-bounded by availability, only flagged
                logger.warning('repair.item_quantity_above_available repair_id=%s item_id=%s quantity=%s available=%s',
                               repair.id, item.id, line.quantity, source.available)
            item.quantity = line.quantity
            if line.is_repairable is not None:
                item.is_repairable = line.is_repairable
            if line.notes is not None:
                item.notes = line.notes
        for item in [it for it in repair.items if it.id not in kept]:
            repair.items.remove(item)
        for line in lines:
            if line.is_new:
                source = self._resolve_source(sources, line.source_item_id)
                repairable = True if line.is_repairable is None else line.is_repairable
                repair.items.append(self._new_item(source, line.quantity, repairable, line.notes))

    def edit_repair(self, actor: Actor, repair_id: int, patch: EditRepair,
                    expected_version: Optional[int] = None) -> Repair:
        repair = self._load(repair_id, expected_version)
        sources = self._sources(actor) if patch.items is not None else {}
        self._check(validate_edit(patch, repair, {k: v.available for k, v in sources.items()}))
        self._guard(guards.assert_can_edit, repair)
        new_approver = None
        if patch.approver_id is not None and patch.approver_id != repair.approver_id:
            self._guard(guards.assert_can_reassign_approver, repair)
            new_approver = self._resolve_user(patch.approver_id, 'approver_id')
            repair.approver_id = new_approver.id
        if patch.description is not None:
            repair.description = patch.description.strip()
        if patch.notes is not None:
            repair.notes = patch.notes
        if patch.priority is not None:
            repair.priority = patch.priority
        if patch.estimated_completion_date is not None:
            repair.estimated_completion_date = _as_date(patch.estimated_completion_date)
        if patch.items is not None:
            self._apply_items(actor, repair, patch.items, sources)
        repair.updated_at = utcnow()
        if new_approver is not None:
            self.notifier.notify(EVENT_CREATED, repair, [new_approver.id], reported_by=repair.reported_by, reassigned=True)
        self.store.commit()
        logger.info('repair.edited repair_id=%s actor=%s items=%d', repair_id, actor.user_id, len(repair.items))
        return repair

    def delete_repair(self, actor: Actor, repair_id: int, expected_version: Optional[int] = None):
        repair = self._load(repair_id, expected_version)
        self._guard(guards.assert_can_delete, repair)
        number = repair.repair_number
        self.store.delete(repair)
        self.store.commit()
        logger.info('repair.deleted repair_id=%s number=%s actor=%s', repair_id, number, actor.user_id)

    # ---- reads ---------------------------------------------------------

    def get_repair(self, repair_id: int) -> Repair:
        return self.store.load(repair_id)

    def list_repairs(self, params: Mapping[str, str]) -> Query:
        """Filtered query over repairs; ordering and paging are left to the caller."""
        q = self.session.query(Repair).options(selectinload(Repair.items)).populate_existing()
        return apply_filters(q, REPAIR_LIST_FILTERS, params)

    def summarize(self) -> dict:
        by_status = dict(self.session.execute(
            select(Repair.status, func.count(Repair.id)).group_by(Repair.status)
        ).all())
        by_approval = dict(self.session.execute(
            select(Repair.approval_status, func.count(Repair.id)).group_by(Repair.approval_status)
        ).all())
        awaiting = self.session.execute(
            select(func.count(RepairItem.id))
            .join(Repair, Repair.id == RepairItem.repair_id)
            .where(
                Repair.approval_status == Repair.APPROVAL_APPROVED,
                RepairItem.is_repairable.is_(True),
                RepairItem.assigned_to_id.is_(None),
                RepairItem.status.notin_(RepairItem.TERMINAL_STATUSES),
            )
        ).scalar_one()
        return {
            'total': sum(by_status.values()),
            'by_status': {s: by_status.get(s, 0) for s in Repair.ALL_STATUSES},
            'by_approval_status': {s: by_approval.get(s, 0) for s in Repair.ALL_APPROVAL_STATUSES},
            'items_awaiting_assignment': awaiting,
        }

    def list_assignable_items(self, actor: Actor) -> List[AssignableItem]:
        return self.item_source.list_available_items(actor)
