"""Reusable test helpers for the repair lifecycle.

Patterns unified:
 - Auth header creation using direct JWT claims (bypassing /login).
 - A per-test cast of actors (reporter, approver, technician, manager) with
   a dispatch line the reporter can report against.
 - Create / approve / assign drivers with status assertions.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from flask_jwt_extended import create_access_token
from tests.test_utils_seed import ensure_user, ensure_product, create_dispatch_item

REPORTER_PERMS = ['RPR.READ', 'RPR.CREATE', 'RPR.UPDATE', 'RPR.DELETE']
APPROVER_PERMS = ['RPR.READ', 'RPR.APPROVE']
TECHNICIAN_PERMS = ['RPR.READ', 'RPR.STATUS']
MANAGER_PERMS = ['RPR.READ', 'RPR.UPDATE', 'RPR.APPROVE', 'RPR.ASSIGN', 'RPR.STATUS']

# ---------- Generic Auth Helpers ---------- #

def jwt_headers(user_id: int, perms: List[str], **extra):
    token = create_access_token(identity=str(user_id), additional_claims={
        'perms': perms,
        'roles': [],
    })
    headers = {'Authorization': f'Bearer {token}'}
    headers.update(extra)
    return headers


@dataclass
class RepairCast:
    reporter: object
    approver: object
    technician: object
    manager: object
    sources: List[str] = field(default_factory=list)

    @property
    def reporter_headers(self):
        return jwt_headers(self.reporter.id, REPORTER_PERMS)

    @property
    def approver_headers(self):
        return jwt_headers(self.approver.id, APPROVER_PERMS)

    @property
    def technician_headers(self):
        return jwt_headers(self.technician.id, TECHNICIAN_PERMS)

    @property
    def manager_headers(self):
        return jwt_headers(self.manager.id, MANAGER_PERMS)


def seed_cast(tag: str, available: List[int] = (2,)) -> RepairCast:
    """Users for one test plus one dispatch line per entry in `available`."""
    reporter = ensure_user(f'{tag}.reporter@example.com', name=f'{tag} Reporter')
    approver = ensure_user(f'{tag}.approver@example.com', name=f'{tag} Approver')
    technician = ensure_user(f'{tag}.tech@example.com', name=f'{tag} Tech')
    manager = ensure_user(f'{tag}.manager@example.com', name=f'{tag} Manager')
    product = ensure_product(f'SKU-{tag}', name=f'Drill {tag}')
    sources = []
    for n, qty in enumerate(available):
        d = create_dispatch_item(reporter, product, received=qty, dispatch_number=f'DSP-{tag}-{n}')
        sources.append(f'dispatch:{d.id}')
    return RepairCast(reporter, approver, technician, manager, sources)

# ---------- Lifecycle Drivers ---------- #

def create_repair(client, cast: RepairCast, items: Optional[List[Dict]] = None, expected_status: int = 201, **extra):
    payload = {
        'approver_id': cast.approver.id,
        'description': 'Damaged on arrival',
        'items': items if items is not None else [{'source_item_id': cast.sources[0], 'quantity': 1}],
    }
    payload.update(extra)
    resp = client.post('/repairs', json=payload, headers=cast.reporter_headers)
    assert resp.status_code == expected_status, resp.get_json()
    return resp.get_json()


def approve(client, cast: RepairCast, repair_id: int, decision: str = 'approved', expected_status: int = 200, **extra):
    payload = {'approval_status': decision, 'notes': 'Checked by approver'}
    payload.update(extra)
    resp = client.patch(f'/repairs/{repair_id}/approve', json=payload, headers=cast.approver_headers)
    assert resp.status_code == expected_status, resp.get_json()
    return resp.get_json()


def assign(client, cast: RepairCast, repair_id: int, payload: Dict, expected_status: int = 200):
    resp = client.post(f'/repairs/{repair_id}/assign-items', json=payload, headers=cast.manager_headers)
    assert resp.status_code == expected_status, resp.get_json()
    return resp.get_json()


def approved_repair(client, cast: RepairCast, items: Optional[List[Dict]] = None):
    body = create_repair(client, cast, items=items)
    return approve(client, cast, body['id'])


def error_code(resp) -> str:
    return resp.get_json()['error'].get('code')


__all__ = [
    'REPORTER_PERMS', 'APPROVER_PERMS', 'TECHNICIAN_PERMS', 'MANAGER_PERMS',
    'jwt_headers', 'RepairCast', 'seed_cast', 'create_repair', 'approve', 'assign',
    'approved_repair', 'error_code',
]
