from __future__ import annotations
from dataclasses import dataclass, field
from typing import FrozenSet, Set
from flask_jwt_extended import get_jwt, get_jwt_identity
from sqlalchemy import select
from whs.models.authz import UserRole, RolePermission, Permission, Role
from whs import get_db


@dataclass(frozen=True)
class Actor:
    """Who is acting and which permission codes they carry."""
    user_id: int
    perms: FrozenSet[str] = field(default_factory=frozenset)

    def can(self, code: str) -> bool:
        return '*' in self.perms or code in self.perms


def current_permissions() -> Set[str]:
    claims = get_jwt()
    return set(claims.get('perms', []))


def has_permissions(*codes: str) -> bool:
    perms = current_permissions()
    return all(c in perms for c in codes)


def has_any_permission(*codes: str) -> bool:
    perms = current_permissions()
    return any(c in perms for c in codes)


def current_actor() -> Actor:
    # JWT identity is stored as a string
    return Actor(user_id=int(get_jwt_identity()), perms=frozenset(current_permissions()))


def compute_effective_permissions(user_id: int):
    session = get_db()
    role_ids = {r.role_id for r in session.execute(select(UserRole).where(UserRole.user_id==user_id)).scalars()}
    perm_codes = set()
    if role_ids:
        role_perms = session.execute(select(RolePermission).where(RolePermission.role_id.in_(role_ids))).scalars().all()
        perm_ids = [rp.permission_id for rp in role_perms]
        if perm_ids:
            for p in session.execute(select(Permission).where(Permission.id.in_(perm_ids))).scalars():
                perm_codes.add(p.code)
    # Owner wildcard support (if role named Owner present)
    owner_role = session.execute(select(Role).where(Role.name=='Owner')).scalar_one_or_none()
    if owner_role and owner_role.id in role_ids:
        # Expand to all permissions dynamically (wildcard semantics)
        for p in session.execute(select(Permission)).scalars():
            perm_codes.add(p.code)
    return {
        'roles': sorted(role_ids),
        'perms': sorted(perm_codes),
    }
