from __future__ import annotations
from typing import Any, Dict, List, Optional
from flask_jwt_extended import get_jwt_identity, get_jwt
from sqlalchemy import select
from whs import get_db
from whs.models.audit import AuditLog


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
    """Persist an audit log entry within the current DB session.

    Parameters:
      action: short action code e.g. RPR.REPAIR.CREATE, RPR.REPAIR.APPROVE
      entity: optional entity name (Repair)
      entity_id: optional primary key string
      meta: additional JSON-safe dictionary (will be shallow copied)
    """
    session = get_db()
    claims = {}
    try:
        claims = get_jwt() or {}
    except RuntimeError:
        pass  # no JWT context (e.g., direct service calls in tests) – keep empty
    actor = None
    try:
        ident = get_jwt_identity()
        actor = int(ident) if ident is not None else None
    except RuntimeError:
        actor = None
    log = AuditLog(
        actor_user_id=actor or 0,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        perms_snapshot={'perms': claims.get('perms', [])},
        meta=dict(meta or {}),
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log


def entity_history(entity: str, entity_id: Any) -> List[Dict[str, Any]]:
    """Chronological audit trail for one entity."""
    session = get_db()
    rows = session.execute(
        select(AuditLog)
        .where(AuditLog.entity == entity, AuditLog.entity_id == str(entity_id))
        .order_by(AuditLog.id.asc())
    ).scalars().all()
    return [
        {
            'id': r.id,
            'action': r.action,
            'actor_user_id': r.actor_user_id,
            'meta': r.meta or {},
            'created_at': r.created_at.isoformat() if r.created_at else None,
        }
        for r in rows
    ]
