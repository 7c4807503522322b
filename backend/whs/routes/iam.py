from flask import Blueprint, request, abort
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity
from whs.models.authz import User
from sqlalchemy import select
from whs import get_db
from whs.services.policy import compute_effective_permissions
from whs.services.directory import SqlUserDirectory
from whs.decorators.auth import require_any_permission
from whs.constants.permissions import ADMIN_USER_READ, RPR_CREATE, RPR_ASSIGN

iam_bp = Blueprint('iam', __name__)


@iam_bp.post('/auth/login')
def login():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    email = data.get('email'); password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    session = get_db()
    user = session.execute(select(User).where(User.email==email)).scalar_one_or_none()
    if not user or not user.verify_password(password):
        abort(401, description='invalid credentials')
    if not user.is_active:
        abort(403, description='account disabled')
    eff = compute_effective_permissions(user.id)
    claims = {
        'roles': eff['roles'],
        'perms': eff['perms'],
    }
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    token = create_access_token(identity=str(user.id), additional_claims=claims)
    return {'access_token': token}


@iam_bp.get('/auth/me')
@jwt_required()
def me():
    user_id = int(get_jwt_identity())
    session = get_db()
    user = session.execute(select(User).where(User.id==user_id)).scalar_one_or_none()
    if not user:
        abort(404)
    eff = compute_effective_permissions(user.id)
    return {
        'id': user.id,
        'name': user.name,
        'email': user.email,
        'roles': eff['roles'],
        'perms': eff['perms'],
    }


@iam_bp.get('/users')
@require_any_permission(ADMIN_USER_READ, RPR_CREATE, RPR_ASSIGN)
def list_users():
    """Active users for approver and assignee pickers."""
    users = SqlUserDirectory(get_db()).list_active_users()
    term = (request.args.get('q') or '').strip().lower()
    if term:
        users = [u for u in users if term in u.display_name.lower() or term in (u.email or '').lower()]
    return {'data': [{**u.to_json(), 'email': u.email} for u in users]}
