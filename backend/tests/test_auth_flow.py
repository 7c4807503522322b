from whs.models.authz import User
from whs import get_db
from tests.test_utils_seed import ensure_user, ensure_role, ensure_user_role_assignment
from tests.test_lifecycle_helpers import jwt_headers


def test_login_and_me(client):
    # Seed a user manually
    session = get_db()
    u = User(name='T', email='t@example.com', password_hash='')
    u.set_password('pw')
    session.add(u)
    session.commit()

    # Login
    resp = client.post('/iam/auth/login', json={'email': 't@example.com', 'password': 'pw'})
    assert resp.status_code == 200, resp.get_json()
    token = resp.get_json()['access_token']

    me = client.get('/iam/auth/me', headers={'Authorization': f'Bearer {token}'})
    assert me.status_code == 200
    body = me.get_json()
    assert body['email'] == 't@example.com'


def test_login_carries_role_permissions(app_context):
    client = app_context.test_client()
    user = ensure_user('auth.tech@example.com', password='pw')
    role = ensure_role('AuthTechnician', ['RPR.READ', 'RPR.STATUS'])
    ensure_user_role_assignment(user, role)
    token = client.post('/iam/auth/login', json={'email': 'auth.tech@example.com', 'password': 'pw'}).get_json()['access_token']
    me = client.get('/iam/auth/me', headers={'Authorization': f'Bearer {token}'}).get_json()
    assert set(me['perms']) >= {'RPR.READ', 'RPR.STATUS'}
    assert role.id in me['roles']
    # Role based token reaches the repair listing
    assert client.get('/repairs', headers={'Authorization': f'Bearer {token}'}).status_code == 200


def test_login_failures(app_context):
    client = app_context.test_client()
    ensure_user('auth.off@example.com', password='pw', is_active=False)
    assert client.post('/iam/auth/login', json={'email': 'auth.off@example.com'}).status_code == 400
    assert client.post('/iam/auth/login', json=['auth.off@example.com', 'pw']).status_code == 400
    assert client.post('/iam/auth/login', json={'email': 'auth.off@example.com', 'password': 'bad'}).status_code == 401
    assert client.post('/iam/auth/login', json={'email': 'auth.off@example.com', 'password': 'pw'}).status_code == 403


def test_user_directory_lists_active_users(app_context):
    client = app_context.test_client()
    active = ensure_user('dir.active@example.com', name='Dir Active')
    ensure_user('dir.gone@example.com', name='Dir Gone', is_active=False)
    resp = client.get('/iam/users?q=dir', headers=jwt_headers(active.id, ['RPR.ASSIGN']))
    assert resp.status_code == 200
    assert resp.get_json()['data'] == [{'id': active.id, 'display_name': 'Dir Active', 'email': 'dir.active@example.com'}]
    assert client.get('/iam/users', headers=jwt_headers(active.id, ['RPR.READ'])).status_code == 403
