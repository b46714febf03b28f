from __future__ import annotations

import logging
import time
from typing import Mapping

from comprehension_gate.core.errors import CollaboratorError, ValidationTransportError
from comprehension_gate.core.models import GateVerdict
from comprehension_gate.services.interfaces import AnswerScorer, ScoreReport

logger = logging.getLogger(__name__)

# Pass threshold applied when the scorer does not return its own pass flag.
# Capped at total - 1, so a single-question quiz must be answered correctly.
MAX_ALLOWED_WRONG_ANSWERS = 1


def passes_threshold(*, score: int, total: int) -> bool:
    if total <= 0:
        return False
    wrong = total - score
    return wrong <= min(MAX_ALLOWED_WRONG_ANSWERS, total - 1)


class AnswerValidator:
    """
    Submits answers for scoring and turns the report into a verdict.

    Only the qa id and the chosen choice ids leave the client. Stems and answer keys
    never do, and correctness is never recomputed locally.
    """

    def __init__(self, scorer: AnswerScorer) -> None:
        self._scorer = scorer

    async def validate(self, qa_id: str, answers: Mapping[str, str]) -> GateVerdict:
        if not qa_id:
            raise ValueError("qa_id is required for validation.")
        if not answers:
            raise ValueError("At least one answer is required for validation.")

        started = time.perf_counter()
        try:
            report = await self._scorer.validate_answers(qa_id=qa_id, answers=dict(answers))
        except CollaboratorError as exc:
            raise ValidationTransportError(f"Answer validation failed. qa_id={qa_id}") from exc
        finally:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.info("gate.validate_call qa_id=%s answers=%s latency_ms=%s", qa_id, len(answers), elapsed_ms)

        return self._to_verdict(report)

    def _to_verdict(self, report: ScoreReport) -> GateVerdict:
        passed = report.passed
        if passed is None:
            passed = passes_threshold(score=report.score, total=report.total)
        return GateVerdict(
            outcome="passed" if passed else "failed",
            score=report.score,
            total=report.total,
            wrong_indexes=tuple(report.wrong_indexes),
        )
