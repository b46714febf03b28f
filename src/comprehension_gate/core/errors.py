from __future__ import annotations

from typing import Optional


class GateError(RuntimeError):
    """Base class for gate failures. `user_message` is safe to show in the UI."""

    user_message = "We could not verify this content. Please try again."
    retryable = False

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        if user_message is not None:
            self.user_message = user_message


class CollaboratorError(GateError):
    """A backend call failed at the transport level (connection, status, timeout)."""

    retryable = True


class RequiredSourceMissing(GateError):
    user_message = "The source of this content could not be retrieved."


class ReadingNotFinished(GateError):
    """complete_reading arrived before the minimum reading time elapsed or the end was reached."""

    user_message = "Keep reading, or scroll to the end."
    retryable = True


class GenerationTimeout(GateError):
    user_message = "Preparing the questions took too long."


class GenerationError(GateError):
    retryable = True

    def __init__(self, message: str, *, kind: str = "unknown", user_message: Optional[str] = None) -> None:
        super().__init__(message, user_message=user_message)
        self.kind = kind


class ValidationTransportError(GateError):
    user_message = "Your answers could not be checked. Please try again."
    retryable = True


class WorkflowBusy(GateError):
    pass


class DoubleInvocationError(RuntimeError):
    pass
