"""Pydantic models for backend payloads, converted to core dataclasses at the edge."""

from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from comprehension_gate.core.models import QuizChoice, QuizQuestion
from comprehension_gate.services.interfaces import (
    EditorialContent,
    GeneratedQuiz,
    GenerationErrorKind,
    GenerationFailure,
    GenerationResult,
    InsufficientContextResult,
    PreviewResult,
    ReferencedAction,
    ScoreReport,
)

_KNOWN_ERROR_KINDS = {"transcript_unavailable", "credits_exhausted", "rate_limited"}


class PreviewPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: Optional[bool] = None
    error: Optional[str] = None
    title: Optional[str] = None
    image: Optional[str] = None
    content: Optional[str] = None
    summary: Optional[str] = None
    excerpt: Optional[str] = None
    platform: Optional[str] = None
    source_ref: Optional[str] = Field(default=None, alias="sourceRef")

    def to_result(self) -> Optional[PreviewResult]:
        if self.success is False or self.error:
            return None
        return PreviewResult(
            title=self.title,
            image=self.image,
            content=self.content,
            summary=self.summary,
            excerpt=self.excerpt,
            platform=self.platform,
            source_ref=self.source_ref,
        )


class ChoicePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    text: str


class QuestionPayload(BaseModel):
    # extra="ignore" drops any answer key (correctId) a misbehaving backend might include.
    model_config = ConfigDict(extra="ignore")

    id: str
    stem: str
    choices: List[ChoicePayload]


class GenerationPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    qa_id: Optional[str] = Field(default=None, alias="qaId")
    questions: Optional[List[QuestionPayload]] = None
    insufficient_context: bool = False
    error: Optional[str] = None
    error_kind: Optional[str] = Field(default=None, alias="errorKind")

    def to_result(self) -> GenerationResult:
        if self.insufficient_context:
            return InsufficientContextResult()
        if self.error:
            return GenerationFailure(message=self.error, kind=_error_kind(self.error_kind))
        if not self.qa_id or not self.questions:
            return GenerationFailure(message="Generation returned no questions.", kind="unknown")
        return GeneratedQuiz(
            qa_id=self.qa_id,
            questions=tuple(
                QuizQuestion(
                    id=q.id,
                    stem=q.stem,
                    choices=tuple(QuizChoice(id=c.id, text=c.text) for c in q.choices),
                )
                for q in self.questions
            ),
        )


def _error_kind(raw: Optional[str]) -> GenerationErrorKind:
    if raw in _KNOWN_ERROR_KINDS:
        return raw  # type: ignore[return-value]
    return "unknown"


class ScorePayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    passed: Optional[bool] = None
    score: int
    total: int
    wrong_indexes: List[Union[int, str]] = Field(default_factory=list, alias="wrongIndexes")

    def to_report(self) -> ScoreReport:
        return ScoreReport(
            score=self.score,
            total=self.total,
            passed=self.passed,
            wrong_indexes=tuple(str(index) for index in self.wrong_indexes),
        )


class PostRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    shared_url: Optional[str] = None
    quoted_post_id: Optional[str] = None

    def to_action(self) -> ReferencedAction:
        return ReferencedAction(
            id=self.id,
            direct_source_url=self.shared_url or None,
            quoted_reference_id=self.quoted_post_id or None,
        )


class EditorialRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str = ""
    summary: Optional[str] = None
    deep_content: Optional[str] = None

    def to_content(self) -> EditorialContent:
        return EditorialContent(id=self.id, title=self.title, body=self.deep_content or self.summary or "")
