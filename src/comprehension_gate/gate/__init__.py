"""Comprehension gate: source resolution, gating policy, quiz lifecycle and verdicts."""

from comprehension_gate.gate.controller import QuizLifecycleController
from comprehension_gate.gate.orchestrator import GateOrchestrator
from comprehension_gate.gate.policy import GateParameterPolicy
from comprehension_gate.gate.resolver import SourceResolver
from comprehension_gate.gate.resumer import ActionResumer, ResumeOutcome
from comprehension_gate.gate.validator import MAX_ALLOWED_WRONG_ANSWERS, AnswerValidator

__all__ = [
    "ActionResumer",
    "AnswerValidator",
    "GateOrchestrator",
    "GateParameterPolicy",
    "MAX_ALLOWED_WRONG_ANSWERS",
    "QuizLifecycleController",
    "ResumeOutcome",
    "SourceResolver",
]
