"""Pagination and HTTP caching validators for list and detail endpoints.

List responses carry an ETag derived from the page ids, totals and the most
recent `updated_at`, plus Last-Modified. Detail responses use a per-row ETag
built from the repair's version counter (`"<id>-<version>"`) which is also
what clients echo back in If-Match on writes.
"""
from __future__ import annotations
from typing import Iterable, Optional, Tuple
import hashlib
from datetime import datetime, timezone, timedelta
from email.utils import parsedate_to_datetime, format_datetime

from flask import request, abort, make_response
from sqlalchemy.orm import Query

from whs.config.pagination import normalize_pagination

TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def canonicalize_timestamp(dt: datetime) -> datetime:
    """Return UTC tz-aware timestamp truncated to whole seconds."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0)


def _iso(dt: datetime) -> str:
    return dt.isoformat().replace('+00:00', 'Z')


def _http_date(dt: datetime) -> str:
    return format_datetime(dt, usegmt=True)


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    total = q.order_by(None).count()
    return q.offset(offset).limit(limit), total, limit, offset


def compute_etag(ids: Iterable[int], total: int, limit: int, offset: int, latest_ts: Optional[str] = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{latest_ts or ''}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows),
        },
    }


def _stamp_validators(resp, etag: str, latest_ts: Optional[datetime]):
    resp.headers['ETag'] = f'"{etag}"'
    if latest_ts is not None:
        latest_c = canonicalize_timestamp(latest_ts)
        resp.headers['Last-Modified'] = _http_date(latest_c)
        resp.headers['X-Last-Modified-ISO'] = _iso(latest_c)
    return resp


def make_cached_list_response(rows: list, total: int, limit: int, offset: int, latest_ts: Optional[datetime] = None):
    ids = [r.get('id') for r in rows]
    latest_iso = _iso(canonicalize_timestamp(latest_ts)) if latest_ts else ''
    etag = compute_etag(ids, total, limit, offset, latest_iso)
    resp = make_response(build_list_payload(rows, total, limit, offset))
    return _stamp_validators(resp, etag, latest_ts), etag


def _parse_if_modified_since(header_val: str) -> Optional[datetime]:
    if not header_val:
        return None
    try:
        dt = datetime.fromisoformat(header_val.replace('Z', '+00:00'))
    except ValueError:
        try:
            dt = parsedate_to_datetime(header_val)
        except (TypeError, ValueError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def handle_conditional(etag_value: str, latest_ts: Optional[datetime]):
    """Return a 304 response when the client's validators still match, else None.

    If-None-Match takes precedence over If-Modified-Since.
    """
    inm = request.headers.get('If-None-Match')
    if inm:
        if inm.strip().strip('"') == etag_value:
            return _stamp_validators(make_response('', 304), etag_value, latest_ts)
        return None
    ims_dt = _parse_if_modified_since(request.headers.get('If-Modified-Since', ''))
    if ims_dt and latest_ts:
        if canonicalize_timestamp(latest_ts) <= canonicalize_timestamp(ims_dt) + TIMESTAMP_TOLERANCE:
            return _stamp_validators(make_response('', 304), etag_value, latest_ts)
    return None


def row_etag(row_id: int, version: int) -> str:
    return f'{row_id}-{version}'


def parse_if_match() -> Optional[str]:
    """Return the bare If-Match value, or None when absent or '*'."""
    raw = request.headers.get('If-Match')
    if not raw:
        return None
    raw = raw.strip()
    if raw == '*':
        return None
    if raw.startswith('W/'):
        raw = raw[2:]
    return raw.strip('"')
