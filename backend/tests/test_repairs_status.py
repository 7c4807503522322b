from datetime import datetime, timezone
from flask import Flask
from whs import get_db
from whs.models.notification import RepairNotification
from tests.test_lifecycle_helpers import seed_cast, create_repair, approved_repair, assign, error_code


def _items_status(client, cast, repair_id, changes, repair_status=None):
    payload = {'items': [{'id': i, 'status': s} for i, s in changes]}
    if repair_status:
        payload['repair_status'] = repair_status
    return client.patch(f'/repairs/{repair_id}/items/status', json=payload, headers=cast.technician_headers)


def test_item_status_progression_records_repair(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('st1')
    repair = approved_repair(client, cast)
    item_id = repair['items'][0]['id']
    assign(client, cast, repair['id'], {'default_assignee': cast.technician.id})

    resp = _items_status(client, cast, repair['id'], [(item_id, 'in_progress')], repair_status='in_progress')
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['status'] == 'in_progress'
    assert body['items'][0]['status'] == 'in_progress'
    assert body['items'][0]['repaired'] is False

    resp = _items_status(client, cast, repair['id'], [(item_id, 'completed')], repair_status='completed')
    body = resp.get_json()
    assert resp.status_code == 200
    item = body['items'][0]
    assert item['repaired'] is True
    assert item['repaired_by'] == cast.technician.id
    assert item['repaired_at'] is not None
    assert body['status'] == 'completed'
    assert body['actual_completion_date'] == datetime.now(timezone.utc).date().isoformat()

    events = get_db().query(RepairNotification).filter_by(repair_id=repair['id'], event='repair.status_changed').all()
    assert len(events) == 2
    assert {n.recipient_user_id for n in events} == {cast.reporter.id}


def test_item_status_no_changes_is_validation_error(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('st2')
    repair = approved_repair(client, cast)
    item_id = repair['items'][0]['id']
    resp = _items_status(client, cast, repair['id'], [(item_id, 'pending')])
    assert resp.status_code == 400
    assert resp.get_json()['error']['fields'] == {'items': 'No changes detected'}


def test_item_status_requires_approval(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('st3')
    repair = create_repair(client, cast)
    resp = _items_status(client, cast, repair['id'], [(repair['items'][0]['id'], 'in_progress')])
    assert resp.status_code == 412
    assert error_code(resp) == 'forbidden_transition'


def test_item_status_transitions_are_enforced(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('st4')
    repair = approved_repair(client, cast)
    item_id = repair['items'][0]['id']
    # assigned_repair is only reachable through assignment
    resp = _items_status(client, cast, repair['id'], [(item_id, 'assigned_repair')])
    assert resp.status_code == 412
    assert _items_status(client, cast, repair['id'], [(item_id, 'failed')]).status_code == 200
    resp = _items_status(client, cast, repair['id'], [(item_id, 'in_progress')])
    assert resp.status_code == 412
    resp = _items_status(client, cast, repair['id'], [(item_id, 'failed')], repair_status='pending')
    assert resp.status_code == 412
    assert 'repair status' in resp.get_json()['error']['detail']


def test_item_status_unknown_item(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('st5')
    repair = approved_repair(client, cast)
    resp = _items_status(client, cast, repair['id'], [(999999, 'in_progress')])
    assert resp.status_code == 404


def test_item_status_rejects_unknown_status(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('st6')
    repair = approved_repair(client, cast)
    resp = _items_status(client, cast, repair['id'], [(repair['items'][0]['id'], 'fixed')])
    assert resp.status_code == 400
    assert 'items[0].status' in resp.get_json()['error']['fields']


def test_progress_update_and_terminal_status(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('st7')
    repair = approved_repair(client, cast)
    url = f"/repairs/{repair['id']}/status"
    resp = client.patch(url, json={'status': 'completed', 'cost_cents': 1500, 'actual_completion_date': '2026-01-15',
                                   'repair_notes': 'Replaced motor'}, headers=cast.technician_headers)
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['status'] == 'completed'
    assert body['cost_cents'] == 1500
    assert body['actual_completion_date'] == '2026-01-15'
    assert body['repair_notes'] == 'Replaced motor'

    resp = client.patch(url, json={'status': 'completed'}, headers=cast.technician_headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['fields'] == {'status': 'No changes detected'}

    resp = client.patch(url, json={'status': 'in_progress'}, headers=cast.technician_headers)
    assert resp.status_code == 412


def test_progress_update_validates_fields(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('st8')
    repair = approved_repair(client, cast)
    resp = client.patch(f"/repairs/{repair['id']}/status", json={'cost_cents': -5, 'priority': 'asap'},
                        headers=cast.technician_headers)
    assert resp.status_code == 400
    assert set(resp.get_json()['error']['fields']) == {'cost_cents', 'priority'}
