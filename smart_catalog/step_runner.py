from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, List

logger = logging.getLogger(__name__)


@dataclass
class TurnStep:
    """One named stage of a chat turn."""
    name: str
    fn: Callable[[object], None]


class StepRunner:
    """Runs turn steps in order over a shared mutable context."""

    def __init__(self, steps: List[TurnStep]) -> None:
        """Purpose: Initialize the runner with an ordered list of steps.
        Inputs/Outputs: Input is a list of TurnStep; no return value.
        Side Effects / State: Stores the step list for later execution.
        Dependencies: None beyond TurnStep definitions.
        Failure Modes: Duplicate step names raise ValueError.
        If Removed: Chat turns have no execution order.
        Testing Notes: Provide a minimal step list and ensure order is preserved.
        """
        names = [step.name for step in steps]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate step names: {names}")
        self._steps = steps

    def run(self, context: object) -> None:
        """Purpose: Execute steps in order.
        Inputs/Outputs: Input is a mutable context object; no return value.
        Side Effects / State: Invokes step functions that may mutate context; logs timing.
        Dependencies: Depends on TurnStep.fn.
        Failure Modes: Exceptions in step functions propagate to the caller after
            the failing step is logged.
        If Removed: The orchestrator cannot run a turn.
        Testing Notes: Verify ordering and exception propagation with simple steps.
        """
        for step in self._steps:
            start = time.perf_counter()
            try:
                step.fn(context)
            except Exception:
                logger.error("step=%s failed", step.name)
                raise
            logger.debug("step=%s took=%.1fms", step.name, (time.perf_counter() - start) * 1000)
