from __future__ import annotations

import asyncio
import logging
import textwrap
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TextIO

from comprehension_gate.core.errors import GateError
from comprehension_gate.core.models import (
    EditorialSource,
    EffectiveSource,
    GateRequirement,
    GateState,
    GateVerdict,
    MediaOcrSource,
    QuizSession,
    SelfTextSource,
    UrlSource,
)
from comprehension_gate.gate.controller import QuizLifecycleController

logger = logging.getLogger(__name__)

Prompt = Callable[[str], Awaitable[str]]

_READER_PREVIEW_CHARS = 1200


async def stdin_prompt(message: str) -> str:
    return await asyncio.to_thread(input, message)


@dataclass
class _ConsoleSurface:
    name: str
    out: TextIO
    live: bool = True
    mounted: bool = True

    async def stop_live_resources(self) -> None:
        self.live = False

    async def unmount(self) -> None:
        self.mounted = False
        self.out.write(f"--- {self.name} closed ---\n")


def _source_body(source: EffectiveSource) -> str:
    if isinstance(source, UrlSource):
        header = source.title or source.url
        parts = [header, source.url]
        if source.platform:
            parts.append(f"[{source.platform}]")
        if source.content:
            parts.append(source.content)
        return "\n".join(parts)
    if isinstance(source, EditorialSource):
        return f"{source.title}\n{source.body}"
    if isinstance(source, (MediaOcrSource, SelfTextSource)):
        return source.text
    return ""


class ConsoleGateUI:
    """Terminal rendering of the reader and quiz surfaces."""

    def __init__(self, out: TextIO) -> None:
        self._out = out

    async def mount_reader(self, source: EffectiveSource, requirement: GateRequirement) -> _ConsoleSurface:
        body = _source_body(source)
        if len(body) > _READER_PREVIEW_CHARS:
            body = body[:_READER_PREVIEW_CHARS].rstrip() + "..."
        self._out.write("=== Read before continuing ===\n")
        self._out.write(textwrap.fill(body, width=88, replace_whitespace=False) + "\n")
        self._out.write(
            f"({requirement.question_count} question(s), mode {requirement.test_mode})\n"
        )
        return _ConsoleSurface(name="reader", out=self._out)

    async def mount_quiz(self, session: QuizSession) -> _ConsoleSurface:
        self._out.write(f"=== Quiz ({len(session.questions)} question(s)) ===\n")
        return _ConsoleSurface(name="quiz", out=self._out)

    async def show_error(self, error: GateError) -> None:
        self._out.write(f"! {error.user_message}\n")

    async def show_verdict(self, verdict: GateVerdict) -> None:
        if verdict.outcome == "passed":
            self._out.write(f"Passed ({verdict.score}/{verdict.total}).\n")
        else:
            self._out.write(f"Not passed ({verdict.score}/{verdict.total}).\n")


async def _ask_questions(session: QuizSession, *, prompt: Prompt, out: TextIO) -> Optional[dict[str, str]]:
    answers: dict[str, str] = {}
    for index, question in enumerate(session.questions, 1):
        out.write(f"{index}. {question.stem}\n")
        valid = {choice.id for choice in question.choices}
        for choice in question.choices:
            out.write(f"   {choice.id}) {choice.text}\n")
        while True:
            raw = (await prompt("Answer (or q to close): ")).strip()
            if raw.lower() == "q":
                return None
            if raw in valid:
                answers[question.id] = raw
                break
            out.write(f"   Choose one of: {', '.join(sorted(valid))}\n")
    return answers


async def drive_console_gate(
    controller: QuizLifecycleController,
    *,
    prompt: Prompt = stdin_prompt,
    out: TextIO,
) -> GateVerdict:
    """Feed terminal input into a started workflow until it terminates."""
    while controller.state is not GateState.TERMINATED:
        state = controller.state
        if state is GateState.READING:
            raw = (await prompt("Press Enter when you have read it (or q to close): ")).strip()
            if raw.lower() == "q":
                await controller.close()
            else:
                await controller.complete_reading()
        elif state is GateState.QUIZ_ACTIVE:
            session = controller.session
            if session is None:
                raise RuntimeError("Quiz is active without a session.")
            answers = await _ask_questions(session, prompt=prompt, out=out)
            if answers is None:
                await controller.close()
            else:
                await controller.submit_answers(answers)
        else:
            logger.debug("console.waiting state=%s", state.value)
            await controller.wait_terminated()
    return await controller.wait_terminated()
