"""Domain error types rendered by the unified error handler in `create_app`.

Three caller-facing categories must stay distinguishable:
  denied              actor lacks the capability (403)
  invalid_transition  target status not reachable from the current one (400)
  not_found           code or record id does not resolve (404)
"""
from __future__ import annotations
from typing import Optional


class DomainError(Exception):
    status_code = 400
    title = 'Bad Request'
    error_type = 'bad_request'

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.title)
        self.detail = detail or self.title

    def to_payload(self):
        return {
            'error': {
                'status': self.status_code,
                'title': self.title,
                'detail': self.detail,
                'type': self.error_type,
            }
        }


class PermissionDenied(DomainError):
    status_code = 403
    title = 'Forbidden'
    error_type = 'denied'

    def __init__(self, detail: Optional[str] = None, decision=None):
        super().__init__(detail or 'Missing permission')
        self.decision = decision


class TransitionDenied(PermissionDenied):
    """A lifecycle transition refused by the access gate."""


class InvalidTransition(DomainError):
    status_code = 400
    title = 'Bad Request'
    error_type = 'invalid_transition'

    def __init__(self, current: str, target: str, detail: Optional[str] = None):
        super().__init__(detail or f'Invalid status transition {current} -> {target}')
        self.current = current
        self.target = target


class RecordNotFound(DomainError):
    status_code = 404
    title = 'Not Found'
    error_type = 'not_found'

    def __init__(self, detail: Optional[str] = None):
        # never say whether the record existed once
        super().__init__(detail or 'Not found')


class GrantPayloadError(DomainError, ValueError):
    pass


class CodeAlreadyBound(DomainError):
    status_code = 409
    title = 'Conflict'
    error_type = 'conflict'

__all__ = [
    'DomainError', 'PermissionDenied', 'TransitionDenied', 'InvalidTransition',
    'RecordNotFound', 'GrantPayloadError', 'CodeAlreadyBound',
]
