from __future__ import annotations

from typing import Protocol

from comprehension_gate.core.errors import GateError
from comprehension_gate.core.models import EffectiveSource, GateRequirement, GateVerdict, QuizSession


class MountedSurface(Protocol):
    """A reader or quiz surface that is currently on screen."""

    async def stop_live_resources(self) -> None:
        """Stop embedded playback and similar live resources. Called before unmount."""

    async def unmount(self) -> None:
        """Remove the surface."""


class GateUI(Protocol):
    """
    Presentation layer driven by the lifecycle controller.

    Mount calls return only once the surface has finished rendering; the controller
    relies on that to unmount the previous surface without leaving a gap.
    """

    async def mount_reader(self, source: EffectiveSource, requirement: GateRequirement) -> MountedSurface:
        ...

    async def mount_quiz(self, session: QuizSession) -> MountedSurface:
        ...

    async def show_error(self, error: GateError) -> None:
        ...

    async def show_verdict(self, verdict: GateVerdict) -> None:
        ...
