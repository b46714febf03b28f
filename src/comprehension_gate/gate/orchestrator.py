from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

from comprehension_gate.config.models import AppConfig, GateSettings
from comprehension_gate.core.errors import WorkflowBusy
from comprehension_gate.core.models import ActionDescriptor, CallerIntent, GateState
from comprehension_gate.gate.controller import QuizLifecycleController
from comprehension_gate.gate.policy import GateParameterPolicy
from comprehension_gate.gate.resolver import SourceResolver
from comprehension_gate.gate.resumer import ActionResumer, DegradedPathHook
from comprehension_gate.gate.ui import GateUI
from comprehension_gate.gate.validator import AnswerValidator
from comprehension_gate.services.interfaces import (
    AnswerScorer,
    EditorialLookup,
    PreviewFetcher,
    QuestionGenerator,
    ReferenceLookup,
)

logger = logging.getLogger(__name__)


class GatedBackend(PreviewFetcher, ReferenceLookup, EditorialLookup, QuestionGenerator, AnswerScorer, Protocol):
    """A single object implementing every collaborator (e.g. BackendClient, MockBackend)."""


class GateOrchestrator:
    """
    Entry point for composers, comment boxes and share buttons.

    Each call to begin() runs a fresh workflow for one action descriptor. While that
    workflow is running, beginning it again is rejected.
    """

    def __init__(
        self,
        *,
        resolver: SourceResolver,
        policy: GateParameterPolicy,
        generator: QuestionGenerator,
        validator: AnswerValidator,
        ui: GateUI,
        settings: GateSettings,
        degraded_path: Optional[DegradedPathHook] = None,
    ) -> None:
        self._resolver = resolver
        self._policy = policy
        self._generator = generator
        self._validator = validator
        self._ui = ui
        self._settings = settings
        self._degraded_path = degraded_path
        self._active: Dict[int, QuizLifecycleController] = {}

    @classmethod
    def from_backend(
        cls,
        backend: GatedBackend,
        *,
        ui: GateUI,
        config: AppConfig,
        degraded_path: Optional[DegradedPathHook] = None,
    ) -> "GateOrchestrator":
        return cls(
            resolver=SourceResolver(
                previews=backend,
                references=backend,
                editorials=backend,
                settings=config.gate,
            ),
            policy=GateParameterPolicy(config.policy),
            generator=backend,
            validator=AnswerValidator(backend),
            ui=ui,
            settings=config.gate,
            degraded_path=degraded_path,
        )

    @property
    def policy(self) -> GateParameterPolicy:
        return self._policy

    async def begin(
        self,
        descriptor: ActionDescriptor,
        caller_intent: CallerIntent,
        *,
        require_source: bool = False,
    ) -> QuizLifecycleController:
        self._prune()
        key = id(descriptor)
        if key in self._active:
            logger.info("gate.begin_rejected actor_user_id=%s reason=processing", descriptor.actor_user_id)
            raise WorkflowBusy("A gate workflow for this action is already running.")

        controller = QuizLifecycleController(
            descriptor=descriptor,
            caller_intent=caller_intent,
            resolver=self._resolver,
            policy=self._policy,
            generator=self._generator,
            validator=self._validator,
            resumer=ActionResumer(degraded_path=self._degraded_path),
            ui=self._ui,
            settings=self._settings,
            require_source=require_source,
        )
        self._active[key] = controller
        try:
            await controller.start()
        except BaseException:
            self._active.pop(key, None)
            raise
        return controller

    def _prune(self) -> None:
        for key, controller in list(self._active.items()):
            if controller.state is GateState.TERMINATED:
                del self._active[key]
