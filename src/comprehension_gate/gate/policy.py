from __future__ import annotations

from comprehension_gate.config.models import PolicySettings
from comprehension_gate.core.models import (
    NOT_REQUIRED,
    CallerIntent,
    EffectiveSource,
    GateRequirement,
    TestMode,
    UrlSource,
)

# Short-form social posts carry too little text for three source questions.
SHORT_FORM_PLATFORMS = frozenset({"twitter", "threads"})


def word_count(text: str) -> int:
    if not text:
        return 0
    return len(text.split())


class GateParameterPolicy:
    """
    Maps a resolved source and the user's own text to a gate requirement.

    Pure and synchronous: the same (source, word count, intent, authorship) always
    yields the same requirement.
    """

    def __init__(self, settings: PolicySettings = PolicySettings()) -> None:
        self._settings = settings

    def compute(
        self,
        source: EffectiveSource,
        user_text: str,
        caller_intent: CallerIntent,
        *,
        is_author: bool = False,
    ) -> GateRequirement:
        if is_author:
            return NOT_REQUIRED

        words = word_count(user_text)
        if source.kind in ("none", "self-text"):
            return self._without_source(words, caller_intent)

        mode = self._mode_with_source(words)
        if isinstance(source, UrlSource) and mode == "SOURCE_ONLY" and source.platform in SHORT_FORM_PLATFORMS:
            return GateRequirement(required=True, question_count=1, test_mode=mode)
        return GateRequirement(required=True, question_count=3, test_mode=mode)

    def floor_for(self, caller_intent: CallerIntent) -> int:
        if caller_intent == "comment":
            return self._settings.comment_floor_words
        if caller_intent == "share":
            return self._settings.share_floor_words
        return self._settings.publish_floor_words

    def _without_source(self, words: int, caller_intent: CallerIntent) -> GateRequirement:
        if words <= self.floor_for(caller_intent):
            return NOT_REQUIRED
        if words <= self._settings.light_gate_max_words:
            return GateRequirement(required=True, question_count=1, test_mode="USER_ONLY")
        return GateRequirement(required=True, question_count=3, test_mode="USER_ONLY")

    def _mode_with_source(self, words: int) -> TestMode:
        if words <= self._settings.source_only_max_words:
            return "SOURCE_ONLY"
        if words <= self._settings.mixed_max_words:
            return "MIXED"
        return "USER_ONLY"
