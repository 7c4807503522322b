"""Transition guards for the repair lifecycle.

Every place that needs to know whether an action is legal asks this module:
the detail serializer (advisory `actions` map) and the workflow right before
it commits. Predicates look at the repair only; permission codes are checked
in `allowed_actions` and by the route decorators.

Status update rule: only `approval_status == approved` is required. The
operational status is then constrained by REPAIR_STATUS_FSM and
ITEM_STATUS_FSM rather than by an extra guard.
"""
from __future__ import annotations
from typing import Dict, Optional

from whs.errors import ForbiddenTransition
from whs.models.repair import Repair, RepairItem
from whs.services.policy import Actor
from whs.constants.permissions import RPR_UPDATE, RPR_DELETE, RPR_APPROVE, RPR_ASSIGN, RPR_STATUS
from whs.utils.fsm import TransitionValidator

EDITABLE_STATUSES = frozenset({Repair.STATUS_REPORTED, Repair.STATUS_IN_PROGRESS})
DELETABLE_STATUSES = frozenset({Repair.STATUS_PENDING, Repair.STATUS_REPORTED})

REPAIR_STATUS_FSM = TransitionValidator({
    Repair.STATUS_PENDING: {Repair.STATUS_REPORTED, Repair.STATUS_IN_PROGRESS, Repair.STATUS_CANCELLED},
    Repair.STATUS_REPORTED: {
        Repair.STATUS_IN_PROGRESS, Repair.STATUS_COMPLETED, Repair.STATUS_FAILED,
        Repair.STATUS_CANCELLED, Repair.STATUS_RESOLVED,
    },
    Repair.STATUS_IN_PROGRESS: {
        Repair.STATUS_COMPLETED, Repair.STATUS_FAILED, Repair.STATUS_CANCELLED, Repair.STATUS_RESOLVED,
    },
    Repair.STATUS_COMPLETED: set(),
    Repair.STATUS_FAILED: set(),
    Repair.STATUS_CANCELLED: set(),
    Repair.STATUS_RESOLVED: set(),
}, field_name='repair status')

_ITEM_WORK = {RepairItem.STATUS_IN_PROGRESS, RepairItem.STATUS_COMPLETED, RepairItem.STATUS_FAILED, RepairItem.STATUS_CANCELLED}

# assigned_repair has no inbound edge: only assign_items puts an item there
ITEM_STATUS_FSM = TransitionValidator({
    RepairItem.STATUS_PENDING: set(_ITEM_WORK),
    RepairItem.STATUS_ASSIGNED: set(_ITEM_WORK),
    RepairItem.STATUS_IN_PROGRESS: {RepairItem.STATUS_COMPLETED, RepairItem.STATUS_FAILED, RepairItem.STATUS_CANCELLED},
    RepairItem.STATUS_COMPLETED: set(),
    RepairItem.STATUS_FAILED: set(),
    RepairItem.STATUS_CANCELLED: set(),
}, field_name='item status')

ACTION_PERMISSIONS = {
    'edit': RPR_UPDATE,
    'delete': RPR_DELETE,
    'approve': RPR_APPROVE,
    'assign': RPR_ASSIGN,
    'update_status': RPR_STATUS,
}


def can_edit(repair: Repair) -> bool:
    return repair.status in EDITABLE_STATUSES


def can_reassign_approver(repair: Repair) -> bool:
    return can_edit(repair) and repair.approval_status == Repair.APPROVAL_PENDING


def can_delete(repair: Repair) -> bool:
    return repair.status in DELETABLE_STATUSES and repair.approval_status == Repair.APPROVAL_PENDING


def can_approve(repair: Repair) -> bool:
    return repair.approval_status == Repair.APPROVAL_PENDING


def is_assignable(item: RepairItem) -> bool:
    if item.status in RepairItem.TERMINAL_STATUSES:
        return False
    return bool(item.is_repairable) and not item.is_assigned


def can_assign(repair: Repair) -> bool:
    if repair.approval_status != Repair.APPROVAL_APPROVED:
        return False
    return any(is_assignable(it) for it in repair.items)


def can_update_status(repair: Repair) -> bool:
    return repair.approval_status == Repair.APPROVAL_APPROVED


_GUARDS = {
    'edit': can_edit,
    'delete': can_delete,
    'approve': can_approve,
    'assign': can_assign,
    'update_status': can_update_status,
}


def allowed_actions(repair: Repair, actor: Optional[Actor] = None) -> Dict[str, bool]:
    """Advisory map for clients; the workflow re-checks on every write."""
    out = {}
    for action, guard in _GUARDS.items():
        permitted = actor is None or actor.can(ACTION_PERMISSIONS[action])
        out[action] = permitted and guard(repair)
    return out


def _describe(repair: Repair) -> str:
    return f'status={repair.status} approval_status={repair.approval_status}'


def assert_can_edit(repair: Repair):
    if not can_edit(repair):
        raise ForbiddenTransition(f'Repair cannot be edited ({_describe(repair)})')


def assert_can_reassign_approver(repair: Repair):
    if not can_reassign_approver(repair):
        raise ForbiddenTransition('Approver can only be changed while approval is pending')


def assert_can_delete(repair: Repair):
    if not can_delete(repair):
        raise ForbiddenTransition(f'Repair cannot be deleted ({_describe(repair)})')


def assert_can_approve(repair: Repair):
    if not can_approve(repair):
        raise ForbiddenTransition(f'Repair already {repair.approval_status}')


def assert_can_assign(repair: Repair):
    if repair.approval_status != Repair.APPROVAL_APPROVED:
        raise ForbiddenTransition(f'Repair must be approved before assignment ({_describe(repair)})')
    if not can_assign(repair):
        raise ForbiddenTransition('No repairable unassigned items left')


def assert_item_assignable(item: RepairItem):
    if not item.is_repairable:
        raise ForbiddenTransition(f'Item {item.id} is not repairable')
    if item.is_assigned:
        raise ForbiddenTransition(f'Item {item.id} is already assigned')
    if item.status in RepairItem.TERMINAL_STATUSES:
        raise ForbiddenTransition(f'Item {item.id} is already {item.status}')


def assert_can_update_status(repair: Repair):
    if not can_update_status(repair):
        raise ForbiddenTransition(f'Repair must be approved before status updates ({_describe(repair)})')


__all__ = [
    'REPAIR_STATUS_FSM', 'ITEM_STATUS_FSM', 'ACTION_PERMISSIONS',
    'can_edit', 'can_reassign_approver', 'can_delete', 'can_approve', 'can_assign',
    'can_update_status', 'is_assignable', 'allowed_actions',
    'assert_can_edit', 'assert_can_reassign_approver', 'assert_can_delete', 'assert_can_approve',
    'assert_can_assign', 'assert_item_assignable', 'assert_can_update_status',
]
