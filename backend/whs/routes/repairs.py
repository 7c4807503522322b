from __future__ import annotations
from typing import Optional
from flask import Blueprint, request, abort, current_app, make_response
from whs.decorators.auth import require_permissions
from whs.decorators.audit import audit_log
from whs.utils.listing import (
    make_cached_list_response, handle_conditional, apply_pagination, canonicalize_timestamp,
    _http_date, row_etag, parse_if_match,
)
from whs.utils.sorting import apply_multi_sort
from whs.services.policy import current_actor, Actor
from whs.services.audit import entity_history
from whs.services.assignment import AssignmentPlan
from whs.services.directory import SqlUserDirectory
from whs.services.item_source import SqlAssignableItemSource
from whs.services.notifications import RepairNotifier
from whs.services.repair_guards import allowed_actions
from whs.services.repair_intents import (
    ApproveRepair, CreateRepair, EditRepair, UpdateItemStatus, UpdateRepairProgress, _entries,
)
from whs.services.repair_workflow import RepairWorkflow
from whs.models.repair import Repair, RepairItem
from whs.constants.permissions import (
    RPR_READ, RPR_CREATE, RPR_UPDATE, RPR_DELETE, RPR_APPROVE, RPR_ASSIGN, RPR_STATUS,
)
from whs import get_db

rpr_bp = Blueprint('repairs', __name__)

SORTABLE = {
    'id': Repair.id,
    'repair_number': Repair.repair_number,
    'status': Repair.status,
    'approval_status': Repair.approval_status,
    'priority': Repair.priority,
    'created_at': Repair.created_at,
    'updated_at': Repair.updated_at,
}


def _workflow() -> RepairWorkflow:
    session = get_db()
    return RepairWorkflow(
        session,
        directory=SqlUserDirectory(session),
        item_source=SqlAssignableItemSource(session),
        notifier=RepairNotifier(session, enabled=current_app.config.get('REPAIRS_NOTIFICATIONS_ENABLED', True)),
        number_prefix=current_app.config.get('REPAIR_NUMBER_PREFIX', 'RPR'),
    )


def _expected_version() -> Optional[int]:
    """Version from If-Match; accepts the detail ETag ("<id>-<version>") or a bare version."""
    raw = parse_if_match()
    if raw is None:
        return None
    try:
        return int(raw.rsplit('-', 1)[-1])
    except ValueError:
        abort(400, description='If-Match invalid')


def _json_body() -> dict:
    """Request body as a JSON object; a missing or unparsable body reads as {}."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(400, description='JSON object body required')
    return data


def _iso(dt):
    return dt.isoformat() if dt else None


def _item_json(it: RepairItem):
    return {
        'id': it.id,
        'source_item_id': it.source_item_id,
        'product_id': it.product_id,
        'variant_id': it.variant_id,
        'product_name': it.product_name,
        'variant_name': it.variant_name,
        'quantity': it.quantity,
        'is_repairable': it.is_repairable,
        'notes': it.notes,
        'status': it.status,
        'assigned_to': {'id': it.assigned_to_id, 'display_name': it.assigned_to_name} if it.is_assigned else None,
        'assigned_at': _iso(it.assigned_at),
        'repaired': it.repaired,
        'repaired_by': it.repaired_by,
        'repaired_at': _iso(it.repaired_at),
        'repair_notes': it.repair_notes,
    }


def _repair_json(r: Repair, actor: Optional[Actor] = None):
    return {
        'id': r.id,
        'repair_number': r.repair_number,
        'reported_by': r.reported_by,
        'approver_id': r.approver_id,
        'approved_by': r.approved_by,
        'approved_at': _iso(r.approved_at),
        'description': r.description,
        'notes': r.notes,
        'status': r.status,
        'approval_status': r.approval_status,
        'approval_notes': r.approval_notes,
        'rejection_reason': r.rejection_reason,
        'priority': r.priority,
        'estimated_completion_date': _iso(r.estimated_completion_date),
        'actual_completion_date': _iso(r.actual_completion_date),
        'cost_cents': r.cost_cents,
        'repair_notes': r.repair_notes,
        'version': r.version,
        'items': [_item_json(it) for it in r.items],
        'actions': allowed_actions(r, actor),
        'created_at': _iso(r.created_at),
        'updated_at': _iso(r.updated_at),
    }


def _detail_response(r: Repair, actor: Actor, status: int = 200):
    resp = make_response(_repair_json(r, actor), status)
    resp.headers['ETag'] = f'"{row_etag(r.id, r.version)}"'
    if r.updated_at:
        resp.headers['Last-Modified'] = _http_date(canonicalize_timestamp(r.updated_at))
    return resp


def _prefetch_repair(repair_id):
    r = get_db().get(Repair, repair_id, populate_existing=True)
    if not r:
        return {}
    return {'status': r.status, 'approval_status': r.approval_status, 'priority': r.priority, 'approver_id': r.approver_id}


def _list(head: bool = False):
    wf = _workflow()
    actor = current_actor()
    q = wf.list_repairs(request.args)
    q = apply_multi_sort(q, request.args.get('sort'), SORTABLE, Repair.id)
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    rows_json = [_repair_json(r, actor) for r in rows]
    latest_ts = max((canonicalize_timestamp(r.updated_at) for r in rows if r.updated_at), default=None)
    resp, etag = make_cached_list_response(rows_json, total, limit, offset, latest_ts)
    cond = handle_conditional(etag, latest_ts)
    if cond:
        return cond
    if head:
        resp.set_data(b'')
    return resp


@rpr_bp.get('')
@require_permissions(RPR_READ)
def list_repairs():
    return _list()


@rpr_bp.route('', methods=['HEAD'])
@require_permissions(RPR_READ)
def head_repairs():
    return _list(head=True)


@rpr_bp.get('/summary')
@require_permissions(RPR_READ)
def repairs_summary():
    return _workflow().summarize()


@rpr_bp.get('/assignable-items')
@require_permissions(RPR_CREATE)
def assignable_items():
    items = _workflow().list_assignable_items(current_actor())
    return {'data': [i.to_json() for i in items]}


@rpr_bp.post('')
@require_permissions(RPR_CREATE)
@audit_log('RPR.REPAIR.CREATE', entity='Repair', entity_id_key='id',
           meta_builder=lambda d, rv, a, kw: {
               'repair_number': d.get('repair_number'),
               'approver_id': d.get('approver_id'),
               'items': len(d.get('items') or []),
               'replayed': getattr(rv, 'status_code', 201) == 200,
           })
def create_repair():
    data = _json_body()
    intent = CreateRepair.from_json(data, idempotency_key=request.headers.get('Idempotency-Key') or None)
    actor = current_actor()
    repair, created = _workflow().create_repair(actor, intent)
    return _detail_response(repair, actor, 201 if created else 200)


@rpr_bp.get('/<int:repair_id>')
@require_permissions(RPR_READ)
def get_repair(repair_id: int):
    r = _workflow().get_repair(repair_id)
    etag = row_etag(r.id, r.version)
    cond = handle_conditional(etag, r.updated_at)
    if cond:
        return cond
    return _detail_response(r, current_actor())


@rpr_bp.route('/<int:repair_id>', methods=['HEAD'])
@require_permissions(RPR_READ)
def head_repair(repair_id: int):
    r = _workflow().get_repair(repair_id)
    resp = _detail_response(r, current_actor())
    resp.set_data(b'')
    return resp


@rpr_bp.get('/<int:repair_id>/history')
@require_permissions(RPR_READ)
def repair_history(repair_id: int):
    _workflow().get_repair(repair_id)
    return {'data': entity_history('Repair', repair_id)}


@rpr_bp.patch('/<int:repair_id>')
@require_permissions(RPR_UPDATE)
@audit_log('RPR.REPAIR.UPDATE', entity='Repair', entity_id_key='id',
           diff_keys=['approver_id', 'priority'], pre_fetch=lambda a, kw: _prefetch_repair(kw.get('repair_id')),
           meta_keys=['approver_id', 'priority', 'version'])
def edit_repair(repair_id: int):
    data = _json_body()
    actor = current_actor()
    r = _workflow().edit_repair(actor, repair_id, EditRepair.from_json(data), _expected_version())
    return _detail_response(r, actor)


@rpr_bp.delete('/<int:repair_id>')
@require_permissions(RPR_DELETE)
@audit_log('RPR.REPAIR.DELETE', entity='Repair', entity_id_arg='repair_id')
def delete_repair(repair_id: int):
    _workflow().delete_repair(current_actor(), repair_id, _expected_version())
    return {'status': 'deleted'}


@rpr_bp.patch('/<int:repair_id>/approve')
@require_permissions(RPR_APPROVE)
@audit_log('RPR.REPAIR.APPROVE', entity='Repair', entity_id_key='id',
           diff_keys=['approval_status'], pre_fetch=lambda a, kw: _prefetch_repair(kw.get('repair_id')),
           meta_keys=['approval_status', 'rejection_reason', 'approved_by'])
def approve_repair(repair_id: int):
    data = _json_body()
    actor = current_actor()
    r = _workflow().approve_repair(actor, repair_id, ApproveRepair.from_json(data), _expected_version())
    return _detail_response(r, actor)


@rpr_bp.post('/<int:repair_id>/assign-items')
@require_permissions(RPR_ASSIGN)
@audit_log('RPR.REPAIR.ASSIGN', entity='Repair', entity_id_arg='repair_id', meta_builder=lambda d, rv, a, kw: {
    'assignments': [
        {'item_id': it['id'], 'assigned_to': (it.get('assigned_to') or {}).get('id')}
        for it in d.get('items', []) if it.get('assigned_to')
    ],
})
def assign_items(repair_id: int):
    data = _json_body()
    actor = current_actor()
    wf = _workflow()
    plan = AssignmentPlan.from_json(wf.get_repair(repair_id), data)
    r = wf.assign_items(actor, repair_id, plan.instructions(), _expected_version())
    return _detail_response(r, actor)


@rpr_bp.patch('/<int:repair_id>/items/status')
@require_permissions(RPR_STATUS)
@audit_log('RPR.REPAIR.ITEMS.STATUS', entity='Repair', entity_id_arg='repair_id',
           diff_keys=['status'], pre_fetch=lambda a, kw: _prefetch_repair(kw.get('repair_id')),
           meta_builder=lambda d, rv, a, kw: {
               'items': [{'id': c.get('id'), 'status': c.get('status')} for c in _entries(_json_body().get('items'))],
               'repair_status': d.get('status'),
           })
def update_item_status(repair_id: int):
    data = _json_body()
    actor = current_actor()
    r = _workflow().update_item_status(actor, repair_id, UpdateItemStatus.from_json(data), _expected_version())
    return _detail_response(r, actor)


@rpr_bp.patch('/<int:repair_id>/status')
@require_permissions(RPR_STATUS)
@audit_log('RPR.REPAIR.PROGRESS', entity='Repair', entity_id_key='id',
           diff_keys=['status', 'priority'], pre_fetch=lambda a, kw: _prefetch_repair(kw.get('repair_id')),
           meta_keys=['status', 'priority', 'cost_cents', 'actual_completion_date'])
def update_repair_progress(repair_id: int):
    data = _json_body()
    actor = current_actor()
    r = _workflow().update_repair_progress(actor, repair_id, UpdateRepairProgress.from_json(data), _expected_version())
    return _detail_response(r, actor)
