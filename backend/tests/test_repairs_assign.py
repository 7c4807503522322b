from flask import Flask
from whs import get_db
from whs.models.notification import RepairNotification
from tests.test_lifecycle_helpers import seed_cast, create_repair, approve, assign, approved_repair, error_code
from tests.test_utils_seed import ensure_user


def test_assign_then_reassign_is_forbidden(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('asg1', available=[1])
    repair = approved_repair(client, cast)
    item_id = repair['items'][0]['id']
    body = assign(client, cast, repair['id'], {'assignments': [{'item_id': item_id, 'assigned_to': cast.technician.id}]})
    item = body['items'][0]
    assert item['status'] == 'assigned_repair'
    assert item['assigned_to'] == {'id': cast.technician.id, 'display_name': 'asg1 Tech'}
    assert item['assigned_at'] is not None
    assert body['actions']['assign'] is False

    resp = client.post(f"/repairs/{repair['id']}/assign-items",
                       json={'assignments': [{'item_id': item_id, 'assigned_to': cast.manager.id}]},
                       headers=cast.manager_headers)
    assert resp.status_code == 412
    assert error_code(resp) == 'forbidden_transition'


def test_assign_requires_approval(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('asg2')
    repair = create_repair(client, cast)
    resp = client.post(f"/repairs/{repair['id']}/assign-items", json={'default_assignee': cast.technician.id},
                       headers=cast.manager_headers)
    assert resp.status_code == 412


def test_assign_non_repairable_item_fails(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('asg3', available=[1, 1])
    repair = approved_repair(client, cast, items=[
        {'source_item_id': cast.sources[0], 'quantity': 1, 'is_repairable': False},
        {'source_item_id': cast.sources[1], 'quantity': 1},
    ])
    broken_id = repair['items'][0]['id']
    resp = client.post(f"/repairs/{repair['id']}/assign-items",
                       json={'assignments': [{'item_id': broken_id, 'assigned_to': cast.technician.id}]},
                       headers=cast.manager_headers)
    assert resp.status_code == 412
    assert 'not repairable' in resp.get_json()['error']['detail']


def test_default_assignee_with_override(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('asg4', available=[1, 1])
    repair = approved_repair(client, cast, items=[
        {'source_item_id': cast.sources[0], 'quantity': 1},
        {'source_item_id': cast.sources[1], 'quantity': 1},
    ])
    first, second = (it['id'] for it in repair['items'])
    body = assign(client, cast, repair['id'], {
        'default_assignee': cast.technician.id,
        'assignments': [{'item_id': first}, {'item_id': second, 'assigned_to': cast.manager.id}],
    })
    assignees = {it['id']: it['assigned_to']['id'] for it in body['items']}
    assert assignees == {first: cast.technician.id, second: cast.manager.id}
    rows = get_db().query(RepairNotification).filter_by(repair_id=repair['id'], event='repair.item_assigned').all()
    assert sorted(n.recipient_user_id for n in rows) == sorted([cast.technician.id, cast.manager.id])


def test_assign_without_assignee_is_validation_error(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('asg5')
    repair = approved_repair(client, cast)
    item_id = repair['items'][0]['id']
    resp = client.post(f"/repairs/{repair['id']}/assign-items", json={'assignments': [{'item_id': item_id}]},
                       headers=cast.manager_headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['fields'] == {f'items[{item_id}].assigned_to': 'Assignee is required'}


def test_assign_inactive_user_rejected(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('asg6')
    gone = ensure_user('asg6.gone@example.com', is_active=False)
    repair = approved_repair(client, cast)
    resp = client.post(f"/repairs/{repair['id']}/assign-items", json={'default_assignee': gone.id},
                       headers=cast.manager_headers)
    assert resp.status_code == 400
    detail = client.get(f"/repairs/{repair['id']}", headers=cast.manager_headers).get_json()
    assert detail['items'][0]['assigned_to'] is None


def _cancel_item(client, cast, repair_id, item_id):
    resp = client.patch(f'/repairs/{repair_id}/items/status', json={'items': [{'id': item_id, 'status': 'cancelled'}]},
                        headers=cast.technician_headers)
    assert resp.status_code == 200, resp.get_json()


def test_cancelled_item_cannot_be_assigned(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('asg7')
    repair = approved_repair(client, cast)
    item_id = repair['items'][0]['id']
    _cancel_item(client, cast, repair['id'], item_id)

    resp = client.post(f"/repairs/{repair['id']}/assign-items", json={'default_assignee': cast.technician.id},
                       headers=cast.manager_headers)
    assert resp.status_code == 412
    assert error_code(resp) == 'forbidden_transition'
    detail = client.get(f"/repairs/{repair['id']}", headers=cast.manager_headers).get_json()
    assert detail['items'][0]['status'] == 'cancelled'
    assert detail['items'][0]['assigned_to'] is None
    assert detail['actions']['assign'] is False


def test_listing_a_cancelled_item_rejects_the_whole_batch(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('asg8', available=[1, 1])
    repair = approved_repair(client, cast, items=[
        {'source_item_id': cast.sources[0], 'quantity': 1},
        {'source_item_id': cast.sources[1], 'quantity': 1},
    ])
    cancelled, open_item = (it['id'] for it in repair['items'])
    _cancel_item(client, cast, repair['id'], cancelled)

    resp = client.post(f"/repairs/{repair['id']}/assign-items", json={
        'default_assignee': cast.technician.id,
        'assignments': [{'item_id': cancelled}, {'item_id': open_item}],
    }, headers=cast.manager_headers)
    assert resp.status_code == 412
    assert 'cancelled' in resp.get_json()['error']['detail']
    detail = client.get(f"/repairs/{repair['id']}", headers=cast.manager_headers).get_json()
    assert [it['assigned_to'] for it in detail['items']] == [None, None]

    # The default path skips the cancelled line
    body = assign(client, cast, repair['id'], {'default_assignee': cast.technician.id})
    assignees = {it['id']: it['assigned_to'] for it in body['items']}
    assert assignees[cancelled] is None
    assert assignees[open_item]['id'] == cast.technician.id


def test_malformed_assignment_ids_are_validation_errors(app_context: Flask):
    client = app_context.test_client()
    cast = seed_cast('asg9')
    repair = approved_repair(client, cast)
    url = f"/repairs/{repair['id']}/assign-items"

    resp = client.post(url, json={'assignments': [{'item_id': [1], 'assigned_to': cast.technician.id}]},
                       headers=cast.manager_headers)
    assert resp.status_code == 400
    assert error_code(resp) == 'validation_error'
    assert 'assignments[0].item_id' in resp.get_json()['error']['fields']

    resp = client.post(url, json={'assignments': {'item_id': 1}}, headers=cast.manager_headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['fields'] == {'assignments': 'Assignments must be a list'}

    resp = client.post(url, json={'default_assignee': {'id': cast.technician.id}}, headers=cast.manager_headers)
    assert resp.status_code == 400
    assert 'default_assignee' in resp.get_json()['error']['fields']
    detail = client.get(f"/repairs/{repair['id']}", headers=cast.manager_headers).get_json()
    assert detail['items'][0]['assigned_to'] is None
