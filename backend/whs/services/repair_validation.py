"""Validation engine for repair intents.

Pure functions, one per intent. Each returns a dict of field -> reason; an
empty dict means the payload is acceptable. Nothing here touches the
database or raises for bad input: the workflow turns a non-empty result into
`ValidationError`.

Field keys follow the form layout clients render against, e.g.
`items[0].quantity` or `rejection_reason`.
"""
from __future__ import annotations
from typing import Dict, Iterable, List, Optional

from whs.models.repair import Repair, RepairItem
from whs.services.repair_intents import (
    ApproveRepair, AssignmentInstruction, CreateRepair, EditRepair,
    UpdateItemStatus, UpdateRepairProgress,
)
from whs.utils.validation import (
    Errors, iso_date, non_negative_int, positive_int, require_text, validate_status,
)

DECISIONS = (Repair.APPROVAL_APPROVED, Repair.APPROVAL_REJECTED)
NO_CHANGES = 'No changes detected'


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _check_new_line(errors: Errors, idx: int, source_item_id: Optional[str], quantity,
                    available_by_source: Dict[str, int], seen: set):
    prefix = f'items[{idx}]'
    qty = positive_int(errors, f'{prefix}.quantity', quantity)
    if not source_item_id:
        errors[f'{prefix}.source_item_id'] = 'Item is required'
        return
    if not isinstance(source_item_id, str):
        errors[f'{prefix}.source_item_id'] = 'Item id must be a string'
        return
    if source_item_id in seen:
        errors[f'{prefix}.source_item_id'] = 'Item is already listed in this repair'
    seen.add(source_item_id)
    # Unknown sources are reported by the workflow, not here
    available = available_by_source.get(source_item_id)
    if qty is not None and available is not None and qty > available:
        errors[f'{prefix}.quantity'] = f'Quantity exceeds available ({available})'


def validate_create(draft: CreateRepair, available_by_source: Dict[str, int]) -> Errors:
    errors: Errors = {}
    if _blank(draft.approver_id):
        errors['approver_id'] = 'Approver is required'
    require_text(errors, 'description', draft.description, 'Description is required')
    if not draft.items:
        errors['items'] = 'At least one item is required'
    seen: set = set()
    for idx, item in enumerate(draft.items):
        _check_new_line(errors, idx, item.source_item_id, item.quantity, available_by_source, seen)
    return errors


def validate_approval(decision: ApproveRepair) -> Errors:
    errors: Errors = {}
    validate_status(errors, 'decision', decision.decision, DECISIONS)
    if decision.decision == Repair.APPROVAL_REJECTED:
        if _blank(decision.rejection_reason):
            errors['rejection_reason'] = 'Rejection reason is required'
        else:
            validate_status(errors, 'rejection_reason', decision.rejection_reason, Repair.REJECTION_REASONS)
    require_text(errors, 'notes', decision.notes, 'Notes are required')
    return errors


def validate_assignment(instructions: Iterable[AssignmentInstruction]) -> Errors:
    """`instructions` are the selected lines only."""
    errors: Errors = {}
    selected = list(instructions)
    if not selected:
        errors['items'] = 'Select at least one item to assign'
        return errors
    seen = set()
    for ins in selected:
        if ins.item_id in seen:
            errors[f'items[{ins.item_id}]'] = 'Item listed more than once'
        seen.add(ins.item_id)
        if _blank(ins.assigned_to):
            errors[f'items[{ins.item_id}].assigned_to'] = 'Assignee is required'
    return errors


def validate_item_status_update(batch: UpdateItemStatus, repair: Repair) -> Errors:
    errors: Errors = {}
    for idx, change in enumerate(batch.items):
        validate_status(errors, f'items[{idx}].status', change.status, RepairItem.ALL_STATUSES)
    if batch.repair_status is not None:
        validate_status(errors, 'repair_status', batch.repair_status, Repair.ALL_STATUSES)
    if errors:
        return errors
    changed = False
    for change in batch.items:
        item = repair.item_by_id(change.item_id)
        # Unknown ids count as changes so the workflow can report them as NotFound
        if item is None or item.status != change.status:
            changed = True
            break
    if batch.repair_status is not None and batch.repair_status != repair.status:
        changed = True
    if not changed:
        errors['items'] = NO_CHANGES
    return errors


def _check_enrichment(errors: Errors, repair: Repair, field: str, new_value, current_value):
    if repair.approval_status != Repair.APPROVAL_APPROVED and new_value != current_value:
        errors[field] = f'{field} can only be set once the repair is approved'


def validate_edit(patch: EditRepair, repair: Repair, available_by_source: Dict[str, int]) -> Errors:
    errors: Errors = {}
    if patch.description is not None:
        require_text(errors, 'description', patch.description, 'Description is required')
    if patch.approver_id is not None and _blank(patch.approver_id):
        errors['approver_id'] = 'Approver is required'
    if patch.priority is not None:
        if validate_status(errors, 'priority', patch.priority, Repair.PRIORITIES):
            _check_enrichment(errors, repair, 'priority', patch.priority, repair.priority)
    if patch.estimated_completion_date is not None:
        parsed = iso_date(errors, 'estimated_completion_date', patch.estimated_completion_date)
        if parsed is not None:
            _check_enrichment(errors, repair, 'estimated_completion_date', parsed, repair.estimated_completion_date)
    if patch.items is None:
        return errors

    if not patch.items:
        errors['items'] = 'At least one item is required'
        return errors
    bad_ids = [idx for idx, line in enumerate(patch.items)
               if not line.is_new and (isinstance(line.id, bool) or not isinstance(line.id, int))]
    for idx in bad_ids:
        errors[f'items[{idx}].id'] = 'Item id must be an integer'
    if bad_ids:
        return errors
    kept_ids = [p.id for p in patch.items if not p.is_new]
    if len(kept_ids) != len(set(kept_ids)):
        errors['items'] = 'Item listed more than once'
    seen = {it.source_item_id for it in repair.items if it.id in kept_ids}
    for idx, line in enumerate(patch.items):
        if line.is_new:
            _check_new_line(errors, idx, line.source_item_id, line.quantity, available_by_source, seen)
            continue
        positive_int(errors, f'items[{idx}].quantity', line.quantity)
        existing = repair.item_by_id(line.id)
        if existing is not None and existing.is_assigned and line.is_repairable is False:
            errors[f'items[{idx}].is_repairable'] = 'Assigned items must stay repairable'
    removed: List[RepairItem] = [it for it in repair.items if it.id not in kept_ids]
    for it in removed:
        if it.is_assigned:
            errors['items'] = f'Assigned item {it.id} cannot be removed'
            break
    return errors


def validate_progress_update(patch: UpdateRepairProgress, repair: Repair) -> Errors:
    errors: Errors = {}
    changed = False
    if patch.status is not None:
        validate_status(errors, 'status', patch.status, Repair.ALL_STATUSES)
        changed |= patch.status != repair.status
    if patch.priority is not None:
        validate_status(errors, 'priority', patch.priority, Repair.PRIORITIES)
        changed |= patch.priority != repair.priority
    for field in ('estimated_completion_date', 'actual_completion_date'):
        raw = getattr(patch, field)
        if raw is None:
            continue
        parsed = iso_date(errors, field, raw)
        changed |= parsed != getattr(repair, field)
    if patch.cost_cents is not None:
        non_negative_int(errors, 'cost_cents', patch.cost_cents)
        changed |= patch.cost_cents != repair.cost_cents
    if patch.repair_notes is not None:
        changed |= patch.repair_notes != repair.repair_notes
    if not errors and not changed:
        errors['status'] = NO_CHANGES
    return errors


__all__ = [
    'validate_create', 'validate_approval', 'validate_assignment',
    'validate_item_status_update', 'validate_edit', 'validate_progress_update',
    'NO_CHANGES',
]
