import pytest
from whs.errors import ValidationError
from whs.models.repair import Repair, RepairItem
from whs.services.assignment import AssignmentPlan
from whs.services.repair_intents import AssignmentInstruction


def _repair():
    r = Repair(status='reported', approval_status='approved', description='d', reported_by=1, approver_id=2)
    for i, (repairable, assigned) in enumerate([(True, None), (True, None), (False, None), (True, 8)], start=1):
        it = RepairItem(source_item_id=f'dispatch:{i}', product_id=1, quantity=1, is_repairable=repairable, assigned_to_id=assigned)
        it.id = i
        r.items.append(it)
    return r


def test_plan_preselects_eligible_items_only():
    plan = AssignmentPlan.for_repair(_repair())
    assert [ln.item_id for ln in plan.lines] == [1, 2]
    assert all(ln.selected for ln in plan.lines)


def test_default_assignee_then_override():
    plan = AssignmentPlan.for_repair(_repair())
    plan.apply_default_assignee(5)
    plan.set_assignee(2, 6)
    assert plan.instructions() == [AssignmentInstruction(1, 5), AssignmentInstruction(2, 6)]


def test_default_only_touches_selection():
    plan = AssignmentPlan.for_repair(_repair())
    plan.deselect(2)
    plan.apply_default_assignee(5)
    assert plan.instructions() == [AssignmentInstruction(1, 5)]
    plan.select(2)
    assert plan.instructions()[1] == AssignmentInstruction(2, None)


def test_from_json_lists_only_requested_items():
    plan = AssignmentPlan.from_json(_repair(), {
        'default_assignee': '5',
        'assignments': [{'item_id': 2, 'assigned_to': 6}, {'item_id': 4}, {'item_id': 1, 'selected': False}],
    })
    # item 4 is already assigned but stays in the plan so the workflow can reject it
    assert plan.instructions() == [AssignmentInstruction(2, 6), AssignmentInstruction(4, 5)]


def test_from_json_without_assignments_uses_all_eligible():
    plan = AssignmentPlan.from_json(_repair(), {'default_assignee': 3})
    assert plan.instructions() == [AssignmentInstruction(1, 3), AssignmentInstruction(2, 3)]


@pytest.mark.parametrize('body,field', [
    ({'assignments': [{'item_id': [1]}]}, 'assignments[0].item_id'),
    ({'assignments': [{'item_id': {'id': 1}}]}, 'assignments[0].item_id'),
    ({'assignments': [{'item_id': 1, 'assigned_to': 'tech'}]}, 'assignments[0].assigned_to'),
    ({'assignments': [{'item_id': True}]}, 'assignments[0].item_id'),
    ({'assignments': ['1']}, 'assignments[0]'),
    ({'assignments': {'item_id': 1}}, 'assignments'),
    ({'assignments': 'all'}, 'assignments'),
    ({'default_assignee': [5]}, 'default_assignee'),
])
def test_from_json_rejects_malformed_ids(body, field):
    with pytest.raises(ValidationError) as exc:
        AssignmentPlan.from_json(_repair(), body)
    assert field in exc.value.fields


def test_from_json_ignores_deselected_entries_before_parsing():
    plan = AssignmentPlan.from_json(_repair(), {'assignments': [{'item_id': 'x', 'selected': False}, {'item_id': '1'}]})
    assert plan.instructions() == [AssignmentInstruction(1, None)]


def test_terminal_items_are_not_preselected():
    r = _repair()
    r.items[0].status = RepairItem.STATUS_CANCELLED
    plan = AssignmentPlan.for_repair(r)
    assert [ln.item_id for ln in plan.lines] == [2]
