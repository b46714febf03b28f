from __future__ import annotations

import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from comprehension_gate.core.errors import DoubleInvocationError
from comprehension_gate.core.models import Continuation, GateVerdict

logger = logging.getLogger(__name__)

DegradedPathHook = Callable[[GateVerdict], Union[None, Awaitable[Any]]]


class ResumeOutcome(str, Enum):
    CONTINUED = "continued"
    DEGRADED_OFFERED = "degraded_offered"
    HELD = "held"


async def _call(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class ActionResumer:
    """
    Applies a terminal verdict to the caller's pending action.

    The continuation runs only for passed or bypassed verdicts. A failed verdict
    never grants the gated action, but the optional degraded-path hook lets the
    product offer a clearly labeled lesser one (e.g. a "spontaneous" comment).

    One resumer serves one workflow.
    """

    def __init__(self, *, degraded_path: Optional[DegradedPathHook] = None) -> None:
        self._degraded_path = degraded_path
        self._resumed = False

    @property
    def resumed(self) -> bool:
        return self._resumed

    async def resume(self, verdict: GateVerdict, continuation: Continuation) -> ResumeOutcome:
        if self._resumed:
            raise DoubleInvocationError("Workflow verdict was already applied.")
        self._resumed = True

        if verdict.outcome in ("passed", "bypassed"):
            logger.info("gate.resume outcome=%s reason=%s", verdict.outcome, verdict.reason)
            await _call(continuation)
            return ResumeOutcome.CONTINUED

        if verdict.outcome == "failed" and self._degraded_path is not None:
            logger.info("gate.degraded_path_offered score=%s total=%s", verdict.score, verdict.total)
            await _call(self._degraded_path, verdict)
            return ResumeOutcome.DEGRADED_OFFERED

        logger.info("gate.action_held outcome=%s reason=%s", verdict.outcome, verdict.reason)
        return ResumeOutcome.HELD
