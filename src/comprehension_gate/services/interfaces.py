from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Mapping, Optional, Protocol, Sequence, Union

from comprehension_gate.core.models import QuizQuestion, TestMode

GenerationErrorKind = Literal["transcript_unavailable", "credits_exhausted", "rate_limited", "transport", "unknown"]


@dataclass(frozen=True, slots=True)
class PreviewResult:
    title: Optional[str] = None
    image: Optional[str] = None
    content: Optional[str] = None
    summary: Optional[str] = None
    excerpt: Optional[str] = None
    platform: Optional[str] = None
    source_ref: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ReferencedAction:
    id: str
    direct_source_url: Optional[str] = None
    quoted_reference_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class EditorialContent:
    id: str
    title: str
    body: str


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    source_ref: Optional[str]
    summary_text: Optional[str]
    user_text: str
    question_count: int
    test_mode: TestMode
    title: Optional[str] = None


@dataclass(frozen=True, slots=True)
class GeneratedQuiz:
    qa_id: str
    questions: Sequence[QuizQuestion]


@dataclass(frozen=True, slots=True)
class InsufficientContextResult:
    pass


@dataclass(frozen=True, slots=True)
class GenerationFailure:
    message: str
    kind: GenerationErrorKind = "unknown"


GenerationResult = Union[GeneratedQuiz, InsufficientContextResult, GenerationFailure]


@dataclass(frozen=True, slots=True)
class ScoreReport:
    score: int
    total: int
    passed: Optional[bool] = None
    wrong_indexes: Sequence[str] = field(default_factory=tuple)


class PreviewFetcher(Protocol):
    async def fetch_preview(self, url: str) -> Optional[PreviewResult]:
        """Return preview metadata for a URL, or None when there is no preview."""


class ReferenceLookup(Protocol):
    async def get_referenced_action(self, reference_id: str) -> Optional[ReferencedAction]:
        """Return the quoted action with its own source fields, or None if missing."""


class EditorialLookup(Protocol):
    async def get_editorial(self, editorial_id: str) -> Optional[EditorialContent]:
        """Return editorial copy for an editorial address, or None if missing."""


class QuestionGenerator(Protocol):
    async def generate_questions(self, request: GenerationRequest) -> GenerationResult:
        """Generate a question set bound to a server-issued qa id."""


class AnswerScorer(Protocol):
    async def validate_answers(self, *, qa_id: str, answers: Mapping[str, str]) -> ScoreReport:
        """
        Score answers against the answer key stored server-side for `qa_id`.

        Must be idempotent per qa id: the same answers always yield the same report.
        """
