"""Two-phase assignment planning.

A plan is built from the eligible items of a repair (all selected by
default). The caller then toggles selection, sets per-item assignees or
broadcasts a default assignee to the current selection, and finally hands
`instructions()` to `RepairWorkflow.assign_items`, which is the only commit
point. Nothing in this module touches the database.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from whs.errors import NotFound, ValidationError
from whs.models.repair import Repair
from whs.services.repair_guards import is_assignable
from whs.services.repair_intents import AssignmentInstruction


@dataclass
class AssignmentLine:
    item_id: int
    selected: bool = True
    assigned_to: Optional[int] = None


class AssignmentPlan:
    def __init__(self, lines: Iterable[AssignmentLine]):
        self._lines: Dict[int, AssignmentLine] = {ln.item_id: ln for ln in lines}

    @classmethod
    def for_repair(cls, repair: Repair) -> 'AssignmentPlan':
        return cls(AssignmentLine(item_id=it.id) for it in repair.items if is_assignable(it))

    @property
    def lines(self) -> List[AssignmentLine]:
        return list(self._lines.values())

    def _line(self, item_id: int) -> AssignmentLine:
        line = self._lines.get(item_id)
        if line is None:
            raise NotFound('Assignable repair item', item_id)
        return line

    def select(self, item_id: int):
        self._line(item_id).selected = True

    def deselect(self, item_id: int):
        self._line(item_id).selected = False

    def only(self, item_ids: Iterable[int]):
        """Narrow the selection to exactly `item_ids`.

        Ids outside the eligible set are still planned so the workflow can
        reject them with the precise reason (already assigned, not
        repairable, unknown).
        """
        wanted = set(item_ids)
        for item_id in wanted:
            self._lines.setdefault(item_id, AssignmentLine(item_id=item_id))
        for line in self._lines.values():
            line.selected = line.item_id in wanted

    def set_assignee(self, item_id: int, user_id: Optional[int]):
        self._line(item_id).assigned_to = user_id

    def apply_default_assignee(self, user_id: int):
        # Overwrites pending choices on the current selection only
        for line in self._lines.values():
            if line.selected:
                line.assigned_to = user_id

    def instructions(self) -> List[AssignmentInstruction]:
        return [
            AssignmentInstruction(item_id=ln.item_id, assigned_to=ln.assigned_to)
            for ln in self._lines.values() if ln.selected
        ]

    @classmethod
    def from_json(cls, repair: Repair, data: dict) -> 'AssignmentPlan':
        """Build a plan from the assign-items request body.

        Body: {"default_assignee": id?, "assignments": [{"item_id", "assigned_to"?, "selected"?}]?}
        When `assignments` is present only the listed items are selected.
        The default is applied first and per-item assignees override it.
        Malformed ids raise `ValidationError` before anything is planned.
        """
        errors: Dict[str, str] = {}
        entries = data.get('assignments')
        listed = []
        if entries is not None and not isinstance(entries, list):
            errors['assignments'] = 'Assignments must be a list'
        elif entries is not None:
            for idx, e in enumerate(entries):
                if not isinstance(e, dict):
                    errors[f'assignments[{idx}]'] = 'Assignment must be an object'
                    continue
                if not e.get('selected', True):
                    continue
                item_id = _as_int(errors, f'assignments[{idx}].item_id', e.get('item_id'))
                assignee = None
                if e.get('assigned_to') not in (None, ''):
                    assignee = _as_int(errors, f'assignments[{idx}].assigned_to', e.get('assigned_to'))
                listed.append((item_id, assignee))
        default = data.get('default_assignee')
        if default not in (None, ''):
            default = _as_int(errors, 'default_assignee', default)
        else:
            default = None
        if errors:
            raise ValidationError(errors)

        plan = cls.for_repair(repair)
        if entries is not None:
            plan.only(item_id for item_id, _ in listed)
        if default is not None:
            plan.apply_default_assignee(default)
        for item_id, assignee in listed:
            if assignee is not None:
                plan.set_assignee(item_id, assignee)
        return plan


def _as_int(errors: Dict[str, str], field: str, value) -> Optional[int]:
    # bool is an int subclass but never a valid id
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        errors[field] = 'Must be an integer id'
        return None
    try:
        return int(value)
    except ValueError:
        errors[field] = 'Must be an integer id'
        return None
