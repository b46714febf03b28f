import itertools
import unittest

from gate_fakes import words

from comprehension_gate.config.models import PolicySettings
from comprehension_gate.core.models import (
    NOT_REQUIRED,
    EditorialSource,
    GateRequirement,
    MediaOcrSource,
    NoSource,
    SelfTextSource,
    UrlSource,
)
from comprehension_gate.gate.policy import GateParameterPolicy, word_count

_SOURCES = (
    NoSource(),
    SelfTextSource(text="mine"),
    UrlSource(url="https://example.com/a"),
    UrlSource(url="https://x.com/a/status/1", platform="twitter"),
    EditorialSource(id="e1", title="T", body="B" * 80),
    MediaOcrSource(media_id="m1", text="T" * 200),
)


class GateParameterPolicyTests(unittest.TestCase):
    def setUp(self) -> None:
        self.policy = GateParameterPolicy()

    def test_word_count_splits_on_whitespace(self) -> None:
        self.assertEqual(word_count(""), 0)
        self.assertEqual(word_count("  one\ttwo\nthree  "), 3)

    def test_compute_is_deterministic(self) -> None:
        for source, count, is_author, intent in itertools.product(
            _SOURCES, (0, 10, 30, 31, 120, 121, 400), (False, True), ("publish", "comment", "share")
        ):
            first = self.policy.compute(source, words(count), intent, is_author=is_author)
            for _ in range(3):
                self.assertEqual(
                    GateParameterPolicy().compute(source, words(count), intent, is_author=is_author), first
                )

    def test_author_is_never_gated(self) -> None:
        for source, count in itertools.product(_SOURCES, (0, 15, 45, 200)):
            requirement = self.policy.compute(source, words(count), "share", is_author=True)
            self.assertFalse(requirement.required)
            self.assertEqual(requirement, NOT_REQUIRED)

    def test_url_source_with_forty_word_caption_is_mixed(self) -> None:
        requirement = self.policy.compute(UrlSource(url="https://example.com/a"), words(40), "publish")
        self.assertEqual(requirement, GateRequirement(required=True, question_count=3, test_mode="MIXED"))

    def test_source_modes_follow_user_word_count(self) -> None:
        source = EditorialSource(id="e1", title="T", body="B" * 80)
        self.assertEqual(self.policy.compute(source, words(0), "publish").test_mode, "SOURCE_ONLY")
        self.assertEqual(self.policy.compute(source, words(30), "publish").test_mode, "SOURCE_ONLY")
        self.assertEqual(self.policy.compute(source, words(31), "publish").test_mode, "MIXED")
        self.assertEqual(self.policy.compute(source, words(120), "publish").test_mode, "MIXED")
        self.assertEqual(self.policy.compute(source, words(121), "publish").test_mode, "USER_ONLY")

    def test_editorial_and_ocr_always_ask_three(self) -> None:
        for source in (EditorialSource(id="e1", title="T", body="B" * 80), MediaOcrSource(media_id="m", text="x")):
            for count in (0, 50, 300):
                self.assertEqual(self.policy.compute(source, words(count), "publish").question_count, 3)

    def test_short_form_url_asks_one_question_in_source_only_mode(self) -> None:
        tweet = UrlSource(url="https://x.com/a/status/1", platform="twitter")
        self.assertEqual(
            self.policy.compute(tweet, words(5), "share"),
            GateRequirement(required=True, question_count=1, test_mode="SOURCE_ONLY"),
        )
        self.assertEqual(self.policy.compute(tweet, words(60), "share").question_count, 3)

    def test_no_source_below_floor_is_not_gated(self) -> None:
        self.assertEqual(self.policy.compute(NoSource(), words(10), "publish"), NOT_REQUIRED)
        self.assertEqual(self.policy.compute(SelfTextSource(text="x"), words(30), "publish"), NOT_REQUIRED)

    def test_no_source_above_floor_uses_step_function(self) -> None:
        self.assertEqual(
            self.policy.compute(NoSource(), words(31), "publish"),
            GateRequirement(required=True, question_count=1, test_mode="USER_ONLY"),
        )
        self.assertEqual(
            self.policy.compute(SelfTextSource(text="x"), words(121), "publish"),
            GateRequirement(required=True, question_count=3, test_mode="USER_ONLY"),
        )

    def test_comment_floor_is_lower(self) -> None:
        self.assertEqual(self.policy.floor_for("comment"), 15)
        self.assertEqual(self.policy.floor_for("publish"), 30)
        self.assertTrue(self.policy.compute(NoSource(), words(20), "comment").required)
        self.assertFalse(self.policy.compute(NoSource(), words(20), "share").required)

    def test_thresholds_come_from_settings(self) -> None:
        policy = GateParameterPolicy(PolicySettings(source_only_max_words=5, mixed_max_words=10))
        source = UrlSource(url="https://example.com/a")
        self.assertEqual(policy.compute(source, words(6), "publish").test_mode, "MIXED")
        self.assertEqual(policy.compute(source, words(11), "publish").test_mode, "USER_ONLY")


if __name__ == "__main__":
    unittest.main()
