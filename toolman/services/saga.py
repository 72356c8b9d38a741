"""
Saga — multi-step writes with compensating undo.

The persistence store has no cross-record transactions, so an operation that
writes several records runs as a saga: steps execute in order, and when one
fails the undo of every completed step runs in reverse order.

Usage:
    saga = Saga('asset.checkout')
    saga.step('update_asset', write_asset, undo=restore_asset)
    saga.step('record_movement', insert_movement)
    results = saga.run()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from toolman.exceptions import ToolmanError

logger = logging.getLogger('toolman')


@dataclass
class SagaStep:
    name: str
    action: Callable[[], Any]
    undo: Callable[[Any], None] | None = None


class Saga:
    """Ordered steps with compensation."""

    def __init__(self, name: str):
        self.name = name
        self.steps: list[SagaStep] = []

    def step(self, name: str, action: Callable[[], Any],
             undo: Callable[[Any], None] | None = None) -> Saga:
        """
        Append a step.

        Args:
            action: Called with no arguments; its return value is kept
            undo: Called with the action's return value on compensation
        """
        self.steps.append(SagaStep(name, action, undo))
        return self

    def run(self) -> dict[str, Any]:
        """
        Execute all steps.

        Returns:
            Dict of step name -> action result

        Raises:
            ToolmanError: The failing step's error (same code), with
                ``step`` and ``compensated`` added to its data. The first
                step failing leaves nothing to compensate.
            Exception: Any other error from a step, re-raised unchanged
                after compensation
        """
        done: list[tuple[SagaStep, Any]] = []
        for step in self.steps:
            try:
                result = step.action()
            except Exception as e:
                compensated = self._compensate(done)
                if not isinstance(e, ToolmanError):
                    logger.exception(
                        "toolman.saga.crashed",
                        extra={"saga": self.name, "step": step.name, "compensated": compensated},
                    )
                    raise
                logger.warning(
                    "toolman.saga.failed",
                    extra={
                        "saga": self.name,
                        "step": step.name,
                        "code": e.code,
                        "compensated": compensated,
                    },
                )
                message = e.message
                if done:
                    undone = ', '.join(s.name for s, _ in done)
                    message = (
                        f"{e.message} ({step.name} failed; {undone} rolled back)"
                        if compensated else
                        f"{e.message} ({step.name} failed; rollback of {undone} incomplete)"
                    )
                raise ToolmanError(
                    e.code,
                    message,
                    **{**e.data, 'step': step.name, 'compensated': compensated},
                ) from e
            done.append((step, result))
        return {step.name: result for step, result in done}

    def _compensate(self, done: list[tuple[SagaStep, Any]]) -> bool:
        """Undo completed steps in reverse; False if any undo failed."""
        ok = True
        for step, result in reversed(done):
            if step.undo is None:
                continue
            try:
                step.undo(result)
            except ToolmanError:
                ok = False
                logger.exception(
                    "toolman.saga.undo_failed",
                    extra={"saga": self.name, "step": step.name},
                )
        return ok
