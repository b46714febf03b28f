from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Literal, Optional, Sequence, Union

SourceKind = Literal["none", "url", "editorial", "media-ocr", "self-text"]
TestMode = Literal["SOURCE_ONLY", "MIXED", "USER_ONLY", "NONE"]
CallerIntent = Literal["publish", "comment", "share"]
ExtractionStatus = Literal["idle", "pending", "done", "failed"]
VerdictOutcome = Literal["passed", "failed", "bypassed", "insufficient_context", "error", "abandoned"]

Continuation = Callable[[], Union[None, Awaitable[Any]]]


@dataclass(frozen=True, slots=True)
class MediaText:
    id: str
    text: str
    confidence_status: ExtractionStatus


@dataclass(frozen=True, slots=True)
class ActionDescriptor:
    """
    One candidate user action (publish, comment, reshare) waiting behind the gate.

    Created fresh per user action and owned by a single workflow.
    """

    actor_user_id: str
    user_text: str
    continuation: Continuation
    direct_source_url: Optional[str] = None
    quoted_reference_id: Optional[str] = None
    attached_media: Optional[MediaText] = None
    is_author_of_quoted_content: bool = False


@dataclass(frozen=True, slots=True)
class NoSource:
    kind: Literal["none"] = "none"


@dataclass(frozen=True, slots=True)
class UrlSource:
    url: str
    title: Optional[str] = None
    image: Optional[str] = None
    platform: Optional[str] = None
    content: Optional[str] = None
    kind: Literal["url"] = "url"


@dataclass(frozen=True, slots=True)
class EditorialSource:
    id: str
    title: str
    body: str
    kind: Literal["editorial"] = "editorial"


@dataclass(frozen=True, slots=True)
class MediaOcrSource:
    media_id: str
    text: str
    kind: Literal["media-ocr"] = "media-ocr"


@dataclass(frozen=True, slots=True)
class SelfTextSource:
    text: str
    kind: Literal["self-text"] = "self-text"


EffectiveSource = Union[NoSource, UrlSource, EditorialSource, MediaOcrSource, SelfTextSource]


def is_presentable(source: EffectiveSource) -> bool:
    """Whether the reader surface has something to show for this source."""
    if isinstance(source, UrlSource):
        return bool(source.url)
    if isinstance(source, EditorialSource):
        return bool(source.body.strip())
    if isinstance(source, (MediaOcrSource, SelfTextSource)):
        return bool(source.text.strip())
    return False


@dataclass(frozen=True, slots=True)
class GateRequirement:
    required: bool
    question_count: Literal[0, 1, 3]
    test_mode: TestMode


NOT_REQUIRED = GateRequirement(required=False, question_count=0, test_mode="NONE")


@dataclass(frozen=True, slots=True)
class QuizChoice:
    id: str
    text: str


@dataclass(frozen=True, slots=True)
class QuizQuestion:
    id: str
    stem: str
    choices: Sequence[QuizChoice]


@dataclass(frozen=True, slots=True)
class QuizSession:
    qa_id: str
    questions: Sequence[QuizQuestion]
    source_ref: EffectiveSource


@dataclass(frozen=True, slots=True)
class GateVerdict:
    outcome: VerdictOutcome
    score: Optional[int] = None
    total: Optional[int] = None
    wrong_indexes: Sequence[str] = field(default_factory=tuple)
    reason: Optional[str] = None


class GateState(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    READING = "reading"
    GENERATING = "generating"
    QUIZ_ACTIVE = "quiz_active"
    VALIDATING = "validating"
    RESOLVED = "resolved"
    TERMINATED = "terminated"
