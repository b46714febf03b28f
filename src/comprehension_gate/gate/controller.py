from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Callable, Mapping, Optional

from comprehension_gate.config.models import GateSettings
from comprehension_gate.core.errors import (
    CollaboratorError,
    GateError,
    GenerationError,
    GenerationTimeout,
    ReadingNotFinished,
    RequiredSourceMissing,
    ValidationTransportError,
    WorkflowBusy,
)
from comprehension_gate.core.models import (
    ActionDescriptor,
    CallerIntent,
    EditorialSource,
    EffectiveSource,
    GateRequirement,
    GateState,
    GateVerdict,
    MediaOcrSource,
    QuizSession,
    UrlSource,
    is_presentable,
)
from comprehension_gate.gate.policy import GateParameterPolicy, word_count
from comprehension_gate.gate.resolver import SourceResolver
from comprehension_gate.gate.resumer import ActionResumer, ResumeOutcome
from comprehension_gate.gate.ui import GateUI, MountedSurface
from comprehension_gate.gate.validator import AnswerValidator
from comprehension_gate.services.interfaces import (
    GeneratedQuiz,
    GenerationFailure,
    GenerationRequest,
    GenerationResult,
    InsufficientContextResult,
    QuestionGenerator,
)

logger = logging.getLogger(__name__)

_CLOSABLE_STATES = frozenset({GateState.READING, GateState.GENERATING, GateState.QUIZ_ACTIVE})


def build_generation_request(
    source: EffectiveSource, requirement: GateRequirement, user_text: str
) -> GenerationRequest:
    source_ref: Optional[str] = None
    summary_text: Optional[str] = None
    title: Optional[str] = None
    if isinstance(source, UrlSource):
        source_ref = source.url
        summary_text = source.content
        title = source.title
    elif isinstance(source, EditorialSource):
        source_ref = f"editorial://{source.id}"
        summary_text = source.body
        title = source.title
    elif isinstance(source, MediaOcrSource):
        summary_text = source.text
    return GenerationRequest(
        source_ref=source_ref,
        summary_text=summary_text,
        user_text=user_text,
        question_count=requirement.question_count,
        test_mode=requirement.test_mode,
        title=title,
    )


class QuizLifecycleController:
    """
    State machine for one gated action.

    idle -> resolving -> reading -> generating -> quiz_active -> validating -> resolved -> terminated,
    with resolved also reachable from resolving, reading and generating (bypass, error,
    abandonment). The caller's continuation is invoked only on the single
    resolved -> terminated transition.

    UI events (report_reached_end, complete_reading, submit_answers, close) may arrive at any
    time; events that do not apply to the current state are ignored. complete_reading is held
    back until min_read_seconds have passed since the reader mounted or the end was reached.
    A surface is always torn down by first stopping its live resources, and the quiz
    surface is mounted before the reader is removed.
    """

    def __init__(
        self,
        *,
        descriptor: ActionDescriptor,
        caller_intent: CallerIntent,
        resolver: SourceResolver,
        policy: GateParameterPolicy,
        generator: QuestionGenerator,
        validator: AnswerValidator,
        resumer: ActionResumer,
        ui: GateUI,
        settings: GateSettings,
        require_source: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._descriptor = descriptor
        self._caller_intent = caller_intent
        self._resolver = resolver
        self._policy = policy
        self._generator = generator
        self._validator = validator
        self._resumer = resumer
        self._ui = ui
        self._settings = settings
        self._require_source = require_source

        self._state = GateState.IDLE
        self._source: Optional[EffectiveSource] = None
        self._requirement: Optional[GateRequirement] = None
        self._session: Optional[QuizSession] = None
        self._reader: Optional[MountedSurface] = None
        self._quiz: Optional[MountedSurface] = None
        self._stage_task: Optional[asyncio.Task[GenerationResult]] = None
        self._abandoning = False
        self._verdict: Optional[GateVerdict] = None
        self._resume_outcome: Optional[ResumeOutcome] = None
        self._terminated = asyncio.Event()
        self._clock = clock
        self._reader_mounted_at: Optional[float] = None
        self._reached_end = False

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def source(self) -> Optional[EffectiveSource]:
        return self._source

    @property
    def requirement(self) -> Optional[GateRequirement]:
        return self._requirement

    @property
    def session(self) -> Optional[QuizSession]:
        return self._session

    @property
    def verdict(self) -> Optional[GateVerdict]:
        return self._verdict

    @property
    def resume_outcome(self) -> Optional[ResumeOutcome]:
        return self._resume_outcome

    async def wait_terminated(self) -> GateVerdict:
        await self._terminated.wait()
        if self._verdict is None:
            raise RuntimeError("Gate workflow terminated without a verdict.")
        return self._verdict

    @property
    def reading_released(self) -> bool:
        """Whether complete_reading would be accepted now."""
        if self._state is not GateState.READING or self._reader_mounted_at is None:
            return False
        if self._reached_end:
            return True
        return self._clock() - self._reader_mounted_at >= self._settings.min_read_seconds

    def report_reached_end(self) -> None:
        """The reader surface reports that the user scrolled to the end of the content."""
        if self._state is not GateState.READING or self._abandoning:
            self._ignore("report_reached_end")
            return
        self._reached_end = True
        logger.info("gate.reader_reached_end actor_user_id=%s", self._descriptor.actor_user_id)

    async def start(self) -> GateState:
        if self._state is not GateState.IDLE:
            raise WorkflowBusy(f"Gate workflow already running. state={self._state.value}")
        self._transition(GateState.RESOLVING)

        try:
            source = await self._resolver.resolve(self._descriptor, require_source=self._require_source)
        except RequiredSourceMissing as exc:
            await self._ui.show_error(exc)
            await self._finish(GateVerdict(outcome="error", reason="required_source_missing"))
            return self._state

        requirement = self._policy.compute(
            source,
            self._descriptor.user_text,
            self._caller_intent,
            is_author=self._descriptor.is_author_of_quoted_content,
        )
        self._source = source
        self._requirement = requirement
        logger.info(
            "gate.requirement required=%s question_count=%s test_mode=%s source_kind=%s intent=%s",
            requirement.required,
            requirement.question_count,
            requirement.test_mode,
            source.kind,
            self._caller_intent,
        )

        if not requirement.required:
            reason = "author" if self._descriptor.is_author_of_quoted_content else "not_required"
            await self._finish(GateVerdict(outcome="bypassed", reason=reason))
            return self._state
        if not is_presentable(source):
            await self._finish(GateVerdict(outcome="bypassed", reason="source_not_presentable"))
            return self._state

        self._reader = await self._ui.mount_reader(source, requirement)
        self._reader_mounted_at = self._clock()
        self._transition(GateState.READING)
        return self._state

    async def complete_reading(self) -> GateState:
        if self._state is not GateState.READING or self._abandoning:
            self._ignore("complete_reading")
            return self._state
        if not self.reading_released:
            await self._reject_early_completion()
            return self._state

        # Snapshot before generation: the reader may be torn down while the call is in flight.
        source = self._source
        requirement = self._requirement
        if source is None or requirement is None:
            raise RuntimeError("Reader is mounted without a resolved source and requirement.")
        request = build_generation_request(source, requirement, self._descriptor.user_text)

        self._transition(GateState.GENERATING)
        started = time.perf_counter()
        self._stage_task = asyncio.create_task(self._generate(request))
        try:
            result = await self._stage_task
        except asyncio.CancelledError:
            if self._abandoning:
                return self._state
            raise
        except asyncio.TimeoutError:
            if self._generation_is_stale("timeout"):
                return self._state
            await self._fail_terminal(
                GenerationTimeout(
                    f"Question generation exceeded {self._settings.generation_timeout_seconds}s."
                ),
                reason="generation_timeout",
            )
            return self._state
        except CollaboratorError as exc:
            if self._generation_is_stale("transport_error"):
                return self._state
            await self._back_to_reading(GenerationError(str(exc), kind="transport"))
            return self._state
        except Exception as exc:
            logger.exception("gate.generation_error actor_user_id=%s", self._descriptor.actor_user_id)
            if self._generation_is_stale("error"):
                return self._state
            await self._back_to_reading(GenerationError(f"Unexpected generation error: {type(exc).__name__}"))
            return self._state
        finally:
            self._stage_task = None
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.info(
                "gate.generate_call actor_user_id=%s question_count=%s test_mode=%s latency_ms=%s",
                self._descriptor.actor_user_id,
                request.question_count,
                request.test_mode,
                elapsed_ms,
            )

        if self._generation_is_stale("result"):
            return self._state

        if isinstance(result, InsufficientContextResult):
            await self._teardown_reader()
            await self._finish(GateVerdict(outcome="bypassed", reason="insufficient_context"))
        elif isinstance(result, GenerationFailure):
            await self._handle_generation_failure(result)
        elif isinstance(result, GeneratedQuiz):
            await self._swap_to_quiz(QuizSession(qa_id=result.qa_id, questions=result.questions, source_ref=source))
        return self._state

    async def submit_answers(self, answers: Mapping[str, str]) -> Optional[GateVerdict]:
        if self._state is GateState.VALIDATING:
            logger.info("gate.duplicate_submission_ignored qa_id=%s", self._session.qa_id if self._session else None)
            return None
        if self._state is not GateState.QUIZ_ACTIVE or self._abandoning:
            self._ignore("submit_answers")
            return None
        if not answers:
            raise ValueError("At least one answer is required.")

        session = self._session
        if session is None:
            raise RuntimeError("Quiz is active without a session.")
        self._transition(GateState.VALIDATING)
        try:
            verdict = await asyncio.wait_for(
                self._validator.validate(session.qa_id, answers),
                timeout=self._settings.validation_timeout_seconds,
            )
        except asyncio.TimeoutError:
            await self._back_to_quiz(
                ValidationTransportError(
                    f"Answer validation exceeded {self._settings.validation_timeout_seconds}s. qa_id={session.qa_id}"
                )
            )
            return None
        except ValidationTransportError as exc:
            await self._back_to_quiz(exc)
            return None
        except Exception as exc:
            logger.exception("gate.validation_error qa_id=%s", session.qa_id)
            await self._back_to_quiz(
                ValidationTransportError(f"Unexpected validation error: {type(exc).__name__}. qa_id={session.qa_id}")
            )
            return None

        logger.info(
            "gate.validated qa_id=%s outcome=%s score=%s total=%s",
            session.qa_id,
            verdict.outcome,
            verdict.score,
            verdict.total,
        )
        await self._teardown_quiz()
        await self._ui.show_verdict(verdict)
        await self._finish(verdict)
        return verdict

    async def close(self) -> bool:
        """Abandon the workflow from a reader or quiz surface. The continuation is not invoked."""
        if self._state not in _CLOSABLE_STATES or self._abandoning:
            self._ignore("close")
            return False
        self._abandoning = True
        logger.info("gate.close_requested state=%s actor_user_id=%s", self._state.value, self._descriptor.actor_user_id)

        task = self._stage_task
        if task is not None and not task.done():
            task.cancel()
            # Surfaces stay up until the in-flight call has settled.
            await asyncio.wait({task})

        await self._teardown_quiz()
        await self._teardown_reader()
        await self._finish(GateVerdict(outcome="abandoned", reason="closed_by_user"))
        return True

    async def _generate(self, request: GenerationRequest) -> GenerationResult:
        return await asyncio.wait_for(
            self._generator.generate_questions(request),
            timeout=self._settings.generation_timeout_seconds,
        )

    def _generation_is_stale(self, outcome: str) -> bool:
        if self._abandoning or self._state is not GateState.GENERATING:
            logger.info("gate.late_generation_outcome_discarded outcome=%s state=%s", outcome, self._state.value)
            return True
        return False

    async def _reject_early_completion(self) -> None:
        mounted_at = self._reader_mounted_at if self._reader_mounted_at is not None else self._clock()
        remaining = max(0.0, self._settings.min_read_seconds - (self._clock() - mounted_at))
        seconds = int(math.ceil(remaining))
        logger.info("gate.reading_not_finished remaining_seconds=%s", seconds)
        await self._ui.show_error(
            ReadingNotFinished(
                f"Reading completed {remaining:.1f}s early.",
                user_message=f"Keep reading for {seconds} more second(s), or scroll to the end.",
            )
        )

    async def _handle_generation_failure(self, failure: GenerationFailure) -> None:
        if failure.kind == "transcript_unavailable":
            words = word_count(self._descriptor.user_text)
            if words >= self._settings.intent_min_words:
                logger.info("gate.intent_fallback words=%s", words)
                await self._teardown_reader()
                await self._finish(GateVerdict(outcome="bypassed", reason="intent_fallback"))
                return
            await self._back_to_reading(
                GenerationError(
                    failure.message,
                    kind=failure.kind,
                    user_message=(
                        "This content has no transcript. Add your own take of at least "
                        f"{self._settings.intent_min_words} words to share it."
                    ),
                )
            )
            return
        await self._back_to_reading(GenerationError(failure.message, kind=failure.kind))

    async def _swap_to_quiz(self, session: QuizSession) -> None:
        quiz = await self._ui.mount_quiz(session)
        if self._abandoning:
            await self._teardown(quiz)
            return
        self._session = session
        self._quiz = quiz
        await self._teardown_reader()
        if self._abandoning:
            return
        self._transition(GateState.QUIZ_ACTIVE)

    async def _back_to_reading(self, error: GenerationError) -> None:
        logger.warning("gate.generation_failed kind=%s error=%s", error.kind, error)
        self._transition(GateState.READING)
        await self._ui.show_error(error)

    async def _back_to_quiz(self, error: ValidationTransportError) -> None:
        logger.warning("gate.validation_failed error=%s", error)
        self._transition(GateState.QUIZ_ACTIVE)
        await self._ui.show_error(error)

    async def _fail_terminal(self, error: GateError, *, reason: str) -> None:
        logger.warning("gate.terminal_error reason=%s error=%s", reason, error)
        await self._teardown_reader()
        await self._ui.show_error(error)
        await self._finish(GateVerdict(outcome="error", reason=reason))

    async def _teardown_reader(self) -> None:
        reader, self._reader = self._reader, None
        if reader is not None:
            await self._teardown(reader)

    async def _teardown_quiz(self) -> None:
        quiz, self._quiz = self._quiz, None
        if quiz is not None:
            await self._teardown(quiz)

    async def _teardown(self, surface: MountedSurface) -> None:
        try:
            await surface.stop_live_resources()
        except Exception:
            logger.exception("gate.stop_live_resources_failed")
        try:
            await surface.unmount()
        except Exception:
            logger.exception("gate.unmount_failed")

    async def _finish(self, verdict: GateVerdict) -> None:
        if self._verdict is not None:
            logger.warning(
                "gate.second_verdict_dropped first=%s second=%s", self._verdict.outcome, verdict.outcome
            )
            return
        self._verdict = verdict
        self._transition(GateState.RESOLVED, outcome=verdict.outcome, reason=verdict.reason)
        try:
            self._resume_outcome = await self._resumer.resume(verdict, self._descriptor.continuation)
        finally:
            self._transition(GateState.TERMINATED)
            self._terminated.set()

    def _transition(self, target: GateState, **details: object) -> None:
        extra = " ".join(f"{key}={value}" for key, value in details.items())
        logger.info(
            "gate.transition from=%s to=%s actor_user_id=%s %s",
            self._state.value,
            target.value,
            self._descriptor.actor_user_id,
            extra,
        )
        self._state = target

    def _ignore(self, event: str) -> None:
        logger.info("gate.event_ignored event=%s state=%s", event, self._state.value)
