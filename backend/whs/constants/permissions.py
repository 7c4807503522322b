"""Central enum-like definitions to avoid typos in permission/service strings.
Extend cautiously; never rename codes silently; create new ones and deprecate old via migration if needed.
"""
from __future__ import annotations
from typing import List, Dict

SERVICES = ['RPR', 'ADMIN']

SERVICE_ACTIONS = {
    # ADMIN on RPR widens the assignable item source to the whole inventory
    'RPR': ['READ', 'CREATE', 'UPDATE', 'DELETE', 'APPROVE', 'ASSIGN', 'STATUS', 'ADMIN'],
    'ADMIN': ['USER.READ', 'USER.MANAGE', 'ROLE.MANAGE'],
}

RPR_READ = 'RPR.READ'
RPR_CREATE = 'RPR.CREATE'
RPR_UPDATE = 'RPR.UPDATE'
RPR_DELETE = 'RPR.DELETE'
RPR_APPROVE = 'RPR.APPROVE'
RPR_ASSIGN = 'RPR.ASSIGN'
RPR_STATUS = 'RPR.STATUS'
RPR_ADMIN = 'RPR.ADMIN'
ADMIN_USER_READ = 'ADMIN.USER.READ'


def build_all_permission_codes() -> List[str]:
    codes: List[str] = []
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            codes.append(f"{svc}.{act}")
    return codes

ALL_PERMISSION_CODES = build_all_permission_codes()

ROLE_PRESETS: Dict[str, List[str]] = {
    # Head of department reporting damaged items they received
    'Reporter': [RPR_READ, RPR_CREATE, RPR_UPDATE, RPR_DELETE],
    'Approver': [RPR_READ, RPR_APPROVE, ADMIN_USER_READ],
    'Technician': [RPR_READ, RPR_STATUS],
    'Manager': [
        RPR_READ, RPR_CREATE, RPR_UPDATE, RPR_DELETE,
        RPR_APPROVE, RPR_ASSIGN, RPR_STATUS, RPR_ADMIN,
        ADMIN_USER_READ,
    ],
    'Owner': ['*']
}
