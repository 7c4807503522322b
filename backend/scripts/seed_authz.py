#!/usr/bin/env python
"""Idempotent seed script for repair permissions & role presets.

Usage:
    python backend/scripts/seed_authz.py               # seed normally
    python backend/scripts/seed_authz.py --show-roles  # print role -> permission counts (after ensuring seed)
    python backend/scripts/seed_authz.py --dry-run     # run logic then rollback (no DB changes)
    python backend/scripts/seed_authz.py --validate    # exit 2 when stored codes drift from constants
"""
from __future__ import annotations
import os, sys, argparse, difflib
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from whs import create_app, get_db  # type: ignore
from whs.models.authz import Base, Permission, Role, RolePermission, User, UserRole
from whs.constants.permissions import SERVICE_ACTIONS, ROLE_PRESETS, build_all_permission_codes


def ensure_permissions(session) -> int:
    existing = {p.code for p in session.execute(select(Permission)).scalars().all()}
    created = 0
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            code = f"{svc}.{act}"
            if code not in existing:
                session.add(Permission(code=code, service=svc, action=act, description_i18n={"en": code.replace('.', ' - ')}))
                created += 1
    session.flush()
    return created


def ensure_roles(session) -> int:
    roles = {r.name: r for r in session.execute(select(Role)).scalars().all()}
    created = 0
    for role_name in ROLE_PRESETS:
        if role_name not in roles:
            roles[role_name] = Role(name=role_name, is_system=True, description_i18n={"en": role_name})
            session.add(roles[role_name])
            created += 1
    session.flush()

    all_codes = set(build_all_permission_codes())
    perms_map = {p.code: p for p in session.execute(select(Permission)).scalars()}
    for role_name, raw_codes in ROLE_PRESETS.items():
        role = roles[role_name]
        desired = all_codes if '*' in raw_codes else set(raw_codes)
        current = {rp.permission.code for rp in role.permissions}
        for code in sorted(desired - current):
            if code not in perms_map:
                print(f"[WARN] Missing permission referenced by role {role_name}: {code}")
                continue
            session.add(RolePermission(role=role, permission=perms_map[code]))
    return created


def ensure_initial_admin(session):
    owner_role = session.execute(select(Role).where(Role.name=='Owner')).scalar_one_or_none()
    if not owner_role:
        print('[WARN] Owner role missing; skipping admin user creation')
        return None
    admin_email = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com')
    user = session.execute(select(User).where(User.email==admin_email)).scalar_one_or_none()
    if not user:
        user = User(name='Owner', email=admin_email, password_hash='')
        user.set_password(os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'))
        session.add(user)
        session.flush()
        session.add(UserRole(user_id=user.id, role_id=owner_role.id))
        print(f"[INFO] Created initial admin user {admin_email} with temporary password.")
    return user


def build_role_permission_map(session):
    return {
        role.name: sorted({rp.permission.code for rp in role.permissions})
        for role in session.execute(select(Role)).scalars().all()
    }


def validate(session):
    """Return a list of problems: stored codes unknown to SERVICE_ACTIONS."""
    problems = []
    for code in session.execute(select(Permission.code)).scalars().all():
        svc, _, action = code.partition('.')
        if svc not in SERVICE_ACTIONS:
            problems.append(f"Unknown service '{svc}' in code: {code}")
        elif action not in SERVICE_ACTIONS[svc]:
            suggestion = difflib.get_close_matches(action, SERVICE_ACTIONS[svc], n=1)
            hint = f" (did you mean {suggestion[0]})" if suggestion else ''
            problems.append(f"Unknown action '{action}' for service '{svc}' in code: {code}{hint}")
    return problems


def print_role_summary(role_map):
    if not role_map:
        print("[INFO] No roles present.")
        return
    name_w = max(len(n) for n in role_map)
    print(f"{'Role'.ljust(name_w)} | Count | Sample (up to 8)")
    print('-' * (name_w + 40))
    for name, perms in sorted(role_map.items()):
        print(f"{name.ljust(name_w)} | {str(len(perms)).rjust(5)} | {', '.join(perms[:8])}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Seed repair RBAC permissions & roles")
    p.add_argument('--show-roles', action='store_true', help='Print role permission counts after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--validate', action='store_true', help='Exit non-zero when stored permission codes are unknown')
    return p.parse_args(argv)


def run(session, dry_run: bool = False):
    """Seed everything in one transaction; returns (permissions created, roles created)."""
    created_p = ensure_permissions(session)
    created_r = ensure_roles(session)
    ensure_initial_admin(session)
    if dry_run:
        session.rollback()
    else:
        session.commit()
    return created_p, created_r


def main(argv=None):
    args = parse_args(argv)
    app = create_app()
    with app.app_context():
        session = get_db()
        try:
            session.execute(select(Permission.id).limit(1))
        except OperationalError:
            # Bootstrap for a fresh database; real environments run `alembic upgrade head`
            session.rollback()
            Base.metadata.create_all(session.get_bind())
        try:
            created_p, created_r = run(session, dry_run=args.dry_run)
            label = '[DRY-RUN] (rolled back)' if args.dry_run else '[DONE]'
            print(f"{label} Permissions created: {created_p}, Roles created: {created_r}")
            if args.validate:
                problems = validate(session)
                if problems:
                    print('\n[VALIDATION] FAIL:')
                    for prob in problems:
                        print(' -', prob)
                    sys.exit(2)
                print('[VALIDATION] OK: All permission codes valid.')
            if args.show_roles:
                print('\nRole Permission Summary:')
                print_role_summary(build_role_permission_map(session))
        finally:
            session.close()

if __name__ == '__main__':
    main()
