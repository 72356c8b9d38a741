"""
Exceptions for Toolman.

All errors are ToolmanError with a structured code for programmatic handling.
State-changing operations convert them into a Result at their boundary.
"""

from datetime import datetime
from typing import Any


class ToolmanError(Exception):
    """
    Structured exception for asset and reservation operations.

    Usage:
        try:
            store.update('assets', 'tool-001', patch)
        except ToolmanError as e:
            if e.code == 'PERSISTENCE_ERROR':
                ...

    Attributes:
        code: Error code for programmatic handling
        message: Human-readable message
        data: Additional context data
    """

    _default_messages = {
        'NOT_FOUND': 'Record not found',
        'CONFLICT': 'Operation conflicts with the current state',
        'FORBIDDEN': 'Actor is not allowed to perform this operation',
        'PERSISTENCE_ERROR': 'Persistence store call failed',
        'RETRY_EXHAUSTED': 'Operation dropped after maximum retries',
        'INVALID_WINDOW': 'Reservation window must end after it starts',
        'INVALID_OPERATION': 'Invalid queued operation',
    }

    def __init__(self, code: str, message: str | None = None, **data):
        self.code = code
        self.message = message or self._default_messages.get(code, code)
        self.data = data
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code!r}, {self.message!r})"

    def as_dict(self) -> dict[str, Any]:
        """Serialize to dict (useful for APIs)."""
        return {
            'code': self.code,
            'message': self.message,
            'data': {
                k: v.isoformat() if isinstance(v, datetime) else v
                for k, v in self.data.items()
            }
        }


class PersistenceError(ToolmanError):
    """
    Raised by store adapters when a call fails.

    retryable=True means the store could not be reached and the same call
    may succeed later (the offline queue keys on this).
    """

    def __init__(self, message: str | None = None, *, retryable: bool = False, **data):
        super().__init__('PERSISTENCE_ERROR', message, retryable=retryable, **data)
        self.retryable = retryable
