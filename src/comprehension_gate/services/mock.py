from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Sequence

from comprehension_gate.core.models import QuizChoice, QuizQuestion
from comprehension_gate.services.interfaces import (
    EditorialContent,
    GeneratedQuiz,
    GenerationRequest,
    GenerationResult,
    InsufficientContextResult,
    PreviewResult,
    ReferencedAction,
    ScoreReport,
)


def _qa_id_for(request: GenerationRequest) -> str:
    raw = json.dumps(
        [request.source_ref, request.summary_text, request.user_text, request.question_count, request.test_mode],
        sort_keys=True,
    )
    return "qa_" + hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


@dataclass
class MockBackend:
    """
    A deterministic in-memory backend for end-to-end runs without network access.

    Generated quizzes always have choice "a" as the correct answer. The answer key
    stays inside the backend; callers only ever see qa ids, stems and choices.
    """

    posts: Dict[str, ReferencedAction] = field(default_factory=dict)
    previews: Dict[str, PreviewResult] = field(default_factory=dict)
    editorials: Dict[str, EditorialContent] = field(default_factory=dict)
    min_context_chars: int = 40
    _answer_keys: Dict[str, Dict[str, str]] = field(default_factory=dict, init=False, repr=False)

    async def fetch_preview(self, url: str) -> Optional[PreviewResult]:
        return self.previews.get(url)

    async def get_referenced_action(self, reference_id: str) -> Optional[ReferencedAction]:
        return self.posts.get(reference_id)

    async def get_editorial(self, editorial_id: str) -> Optional[EditorialContent]:
        return self.editorials.get(editorial_id)

    async def generate_questions(self, request: GenerationRequest) -> GenerationResult:
        context = " ".join(part for part in (request.summary_text, request.user_text) if part)
        if not request.source_ref and len(context.strip()) < self.min_context_chars:
            return InsufficientContextResult()

        qa_id = _qa_id_for(request)
        questions = tuple(
            QuizQuestion(
                id=f"q{i}",
                stem=f"Question {i} about the content",
                choices=(
                    QuizChoice(id="a", text="The option supported by the content"),
                    QuizChoice(id="b", text="A plausible distractor"),
                    QuizChoice(id="c", text="An unrelated statement"),
                ),
            )
            for i in range(1, request.question_count + 1)
        )
        self._answer_keys[qa_id] = {q.id: "a" for q in questions}
        return GeneratedQuiz(qa_id=qa_id, questions=questions)

    async def validate_answers(self, *, qa_id: str, answers: Mapping[str, str]) -> ScoreReport:
        key = self._answer_keys.get(qa_id)
        if key is None:
            raise KeyError(f"Unknown qa id: {qa_id}")
        wrong: Sequence[str] = tuple(qid for qid, correct in key.items() if answers.get(qid) != correct)
        total = len(key)
        max_errors = 0 if total == 1 else 1
        return ScoreReport(
            score=total - len(wrong),
            total=total,
            passed=len(wrong) <= max_errors,
            wrong_indexes=wrong,
        )
