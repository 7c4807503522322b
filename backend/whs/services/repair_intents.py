"""Typed payloads for the repair workflow intents.

Each intent has a `from_json` constructor used by the HTTP binding. Parsing
is lenient on purpose: values are passed through as received (numeric
strings become ints) so the validation engine can report every problem at
once instead of failing on the first malformed field.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _maybe_int(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lstrip('-').isdigit():
        return int(value.strip())
    return value


def _entries(value: Any) -> List[Dict[str, Any]]:
    """Object entries of a JSON list; anything that is not a list has none."""
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def _flag(value: Any, default: Optional[bool] = True) -> Optional[bool]:
    # Clients have sent both JSON booleans and "true"/"false" strings
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() == 'true'
    return bool(value)


@dataclass
class DraftItem:
    source_item_id: Optional[str]
    quantity: Any
    is_repairable: bool = True
    notes: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'DraftItem':
        return cls(
            source_item_id=data.get('source_item_id') or None,
            quantity=_maybe_int(data.get('quantity')),
            is_repairable=_flag(data.get('is_repairable')),
            notes=data.get('notes'),
        )


@dataclass
class CreateRepair:
    approver_id: Any
    description: Any
    items: List[DraftItem] = field(default_factory=list)
    notes: Optional[str] = None
    idempotency_key: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any], idempotency_key: Optional[str] = None) -> 'CreateRepair':
        return cls(
            approver_id=_maybe_int(data.get('approver_id')),
            description=data.get('description'),
            items=[DraftItem.from_json(i) for i in _entries(data.get('items'))],
            notes=data.get('notes'),
            idempotency_key=idempotency_key,
        )


@dataclass
class ApproveRepair:
    decision: Any
    notes: Any = None
    rejection_reason: Any = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'ApproveRepair':
        return cls(
            decision=data.get('approval_status', data.get('decision')),
            notes=data.get('notes'),
            rejection_reason=data.get('rejection_reason'),
        )


@dataclass(frozen=True)
class AssignmentInstruction:
    item_id: int
    assigned_to: Optional[int]


@dataclass
class ItemStatusChange:
    item_id: Any
    status: Any


@dataclass
class UpdateItemStatus:
    items: List[ItemStatusChange] = field(default_factory=list)
    repair_status: Any = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'UpdateItemStatus':
        return cls(
            items=[
                ItemStatusChange(item_id=_maybe_int(i.get('id')), status=i.get('status'))
                for i in _entries(data.get('items'))
            ],
            repair_status=data.get('repair_status') or None,
        )


@dataclass
class PatchItem:
    """An item line in an edit: `id` set means update in place, otherwise append.

    `is_repairable` and `notes` left as None keep the stored value; new lines
    default to repairable.
    """
    id: Any
    quantity: Any
    source_item_id: Optional[str] = None
    is_repairable: Optional[bool] = None
    notes: Optional[str] = None

    @property
    def is_new(self) -> bool:
        return self.id is None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'PatchItem':
        return cls(
            id=_maybe_int(data.get('id')),
            quantity=_maybe_int(data.get('quantity')),
            source_item_id=data.get('source_item_id') or None,
            is_repairable=_flag(data.get('is_repairable'), default=None),
            notes=data.get('notes'),
        )


@dataclass
class EditRepair:
    """Fields left as None are not touched."""
    description: Any = None
    notes: Optional[str] = None
    approver_id: Any = None
    priority: Any = None
    estimated_completion_date: Any = None
    items: Optional[List[PatchItem]] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'EditRepair':
        raw_items = data.get('items')
        return cls(
            description=data.get('description'),
            notes=data.get('notes'),
            approver_id=_maybe_int(data.get('approver_id')),
            priority=data.get('priority'),
            estimated_completion_date=data.get('estimated_completion_date'),
            items=None if raw_items is None else [PatchItem.from_json(i) for i in _entries(raw_items)],
        )


@dataclass
class UpdateRepairProgress:
    status: Any = None
    priority: Any = None
    estimated_completion_date: Any = None
    actual_completion_date: Any = None
    cost_cents: Any = None
    repair_notes: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'UpdateRepairProgress':
        return cls(
            status=data.get('status'),
            priority=data.get('priority'),
            estimated_completion_date=data.get('estimated_completion_date'),
            actual_completion_date=data.get('actual_completion_date'),
            cost_cents=_maybe_int(data.get('cost_cents')),
            repair_notes=data.get('repair_notes'),
        )
