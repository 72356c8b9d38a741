"""
Operation results.

State-changing operations return a Result instead of raising: rejections
such as "already checked out" are routine for an operator-facing tool and
callers branch on them.

Usage:
    result = toolman.assets.checkout('tool-001', 'user-1')
    if not result:
        print(result.code, result.message)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from toolman.exceptions import ToolmanError


@dataclass(frozen=True)
class Result:
    """Outcome of a state-changing operation."""

    success: bool
    message: str
    code: str | None = None  # None on success, error code otherwise
    data: dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, message: str, **data) -> Result:
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, code: str, message: str, **data) -> Result:
        return cls(success=False, message=message, code=code, data=data)

    @classmethod
    def from_error(cls, error: ToolmanError) -> Result:
        return cls(success=False, message=error.message, code=error.code, data=dict(error.data))
