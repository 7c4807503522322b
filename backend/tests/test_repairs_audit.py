from flask import Flask
from whs import get_db
from whs.models.audit import AuditLog
from tests.test_lifecycle_helpers import seed_cast, create_repair, approve, assign, approved_repair

ACTIONS = ['RPR.REPAIR.CREATE', 'RPR.REPAIR.UPDATE', 'RPR.REPAIR.APPROVE', 'RPR.REPAIR.ASSIGN',
           'RPR.REPAIR.ITEMS.STATUS', 'RPR.REPAIR.PROGRESS']


def test_lifecycle_writes_audit_trail(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('aud1')
    repair = create_repair(client, cast)
    rid = repair['id']
    client.patch(f'/repairs/{rid}', json={'description': 'Bent chuck'}, headers=cast.reporter_headers)
    approve(client, cast, rid)
    body = assign(client, cast, rid, {'default_assignee': cast.technician.id})
    item_id = body['items'][0]['id']
    client.patch(f'/repairs/{rid}/items/status', json={'items': [{'id': item_id, 'status': 'in_progress'}]},
                 headers=cast.technician_headers)
    client.patch(f'/repairs/{rid}/status', json={'status': 'in_progress'}, headers=cast.technician_headers)

    entries = get_db().query(AuditLog).filter(AuditLog.entity == 'Repair', AuditLog.entity_id == str(rid)).order_by(AuditLog.id).all()
    assert [e.action for e in entries] == ACTIONS
    by_action = {e.action: e for e in entries}
    assert by_action['RPR.REPAIR.CREATE'].actor_user_id == cast.reporter.id
    assert by_action['RPR.REPAIR.CREATE'].meta['replayed'] is False
    assert by_action['RPR.REPAIR.APPROVE'].meta['changes'] == {'approval_status': {'before': 'pending', 'after': 'approved'}}
    assert by_action['RPR.REPAIR.ASSIGN'].meta['assignments'] == [{'item_id': item_id, 'assigned_to': cast.technician.id}]
    assert by_action['RPR.REPAIR.PROGRESS'].meta['changes'] == {'status': {'before': 'reported', 'after': 'in_progress'}}
    assert 'RPR.APPROVE' in by_action['RPR.REPAIR.APPROVE'].perms_snapshot['perms']


def test_failed_intent_is_not_audited(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('aud2')
    repair = create_repair(client, cast)
    resp = client.patch(f"/repairs/{repair['id']}/approve", json={'approval_status': 'approved'}, headers=cast.approver_headers)
    assert resp.status_code == 400
    rows = get_db().query(AuditLog).filter_by(entity='Repair', entity_id=str(repair['id']), action='RPR.REPAIR.APPROVE').all()
    assert rows == []


def test_history_endpoint(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('aud3')
    repair = approved_repair(client, cast)
    resp = client.get(f"/repairs/{repair['id']}/history", headers=cast.reporter_headers)
    assert resp.status_code == 200
    history = resp.get_json()['data']
    assert [h['action'] for h in history] == ['RPR.REPAIR.CREATE', 'RPR.REPAIR.APPROVE']
    assert history[1]['actor_user_id'] == cast.approver.id
    assert client.get('/repairs/999999/history', headers=cast.reporter_headers).status_code == 404


def test_delete_is_audited(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('aud4')
    repair = create_repair(client, cast)
    assert client.delete(f"/repairs/{repair['id']}", headers=cast.reporter_headers).status_code == 200
    row = get_db().query(AuditLog).filter_by(action='RPR.REPAIR.DELETE', entity_id=str(repair['id'])).one()
    assert row.actor_user_id == cast.reporter.id
