"""Error taxonomy for the repair workflow.

Every error is terminal for the current call: nothing here is retried.
The Flask error handler in `whs/__init__.py` renders them with the same
envelope used for werkzeug HTTP errors plus a machine readable `code`.
"""
from __future__ import annotations
from typing import Dict, Optional


class WorkflowError(Exception):
    status_code = 500
    code = 'workflow_error'
    title = 'Workflow Error'

    def __init__(self, detail: str = ''):
        super().__init__(detail)
        self.detail = detail

    def to_payload(self) -> dict:
        return {
            'error': {
                'status': self.status_code,
                'title': self.title,
                'detail': self.detail,
                'code': self.code,
            }
        }


class ValidationError(WorkflowError):
    """Field level input problems; the caller fixes the input and resubmits."""
    status_code = 400
    code = 'validation_error'
    title = 'Validation Failed'

    def __init__(self, fields: Dict[str, str]):
        super().__init__('; '.join(f'{k}: {v}' for k, v in fields.items()))
        self.fields = dict(fields)

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload['error']['fields'] = self.fields
        return payload


class ForbiddenTransition(WorkflowError):
    """The repair's current state does not allow the requested intent."""
    status_code = 412
    code = 'forbidden_transition'
    title = 'Forbidden Transition'


class NotFound(WorkflowError):
    status_code = 404
    code = 'not_found'
    title = 'Not Found'

    def __init__(self, entity: str, entity_id: Optional[object] = None):
        detail = f'{entity} not found' if entity_id is None else f'{entity} {entity_id} not found'
        super().__init__(detail)
        self.entity = entity
        self.entity_id = entity_id


class Conflict(WorkflowError):
    """Another actor changed the aggregate between read and commit."""
    status_code = 409
    code = 'conflict'
    title = 'Conflict'


__all__ = ['WorkflowError', 'ValidationError', 'ForbiddenTransition', 'NotFound', 'Conflict']
