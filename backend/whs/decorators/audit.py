"""Audit logging decorator for repair write routes.

Usage examples:

@audit_log('RPR.REPAIR.CREATE', entity='Repair', entity_id_key='id', meta_keys=['repair_number'])
def create_repair():
    ... return _repair_json(repair), 201

@audit_log('RPR.REPAIR.APPROVE', entity='Repair', entity_id_key='id',
           diff_keys=['approval_status'], pre_fetch=lambda a, kw: _prefetch_repair(kw.get('repair_id')))
def approve_repair(repair_id): ...

Parameters:
  action: required audit action code (e.g. RPR.REPAIR.APPROVE)
  entity: optional entity label (Repair)
  entity_id_key: key in the returned JSON object whose value becomes entity_id.
  entity_id_arg: name of the view argument to use for entity_id (fallback if entity_id_key absent).
  meta_keys: list of keys to project from returned JSON into meta dict (shallow copy).
  meta_builder: callable returning a meta dict; receives (data, original_return_value, args, kwargs). Overrides meta_keys.
  diff_keys / pre_fetch: snapshot taken before the view runs; changed keys land in meta['changes'].

Only successful views are audited: a raised WorkflowError or HTTPException
propagates untouched and nothing is recorded.
"""
from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, Iterable, Optional, Dict

from flask import Response
from sqlalchemy.exc import SQLAlchemyError

from whs.services.audit import add_audit
from whs import get_db

logger = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    """Return (data, original_rv) where data is the JSON body for inspection."""
    body = rv[0] if isinstance(rv, tuple) and rv else rv
    if isinstance(body, Response):
        body = body.get_json(silent=True)
    return body, rv


def _diff(before: Dict[str, Any], after: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    changes = {}
    for k in keys:
        if k in before and k in after and before.get(k) != after.get(k):
            changes[k] = {'before': before.get(k), 'after': after.get(k)}
    return changes


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before_snapshot = pre_fetch(args, kwargs) if (diff_keys and pre_fetch) else None
            rv = fn(*args, **kwargs)
            data, _ = _extract_payload(rv)
            if not isinstance(data, dict):  # nothing to inspect
                data = {}
            entity_id = None
            if entity_id_key and entity_id_key in data:
                entity_id = data.get(entity_id_key)
            elif entity_id_arg and entity_id_arg in kwargs:
                entity_id = kwargs.get(entity_id_arg)
            if meta_builder:
                meta = meta_builder(data, rv, args, kwargs) or {}
            else:
                meta = {k: data.get(k) for k in (meta_keys or ()) if k in data}
            if diff_keys and before_snapshot:
                changes = _diff(before_snapshot, data, diff_keys)
                if changes:
                    meta['changes'] = changes
            session = get_db()
            try:
                add_audit(action, entity, entity_id, meta)
                session.commit()
            except SQLAlchemyError:
                # The intent already committed; a lost audit row must not turn it into an error
                session.rollback()
                logger.exception('audit write failed action=%s entity_id=%s', action, entity_id)
            return rv
        return wrapper
    return outer
