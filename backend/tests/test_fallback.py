"""Tests for canned fallback replies."""

import pytest

from recoveryline.services.fallback import FALLBACK_RULES, FallbackContext, fallback_reply, select_rule


class TestSelectRule:
    @pytest.mark.parametrize(
        "text,rule",
        [
            ("How should I prepare for surgery?", "prepare"),
            ("My knee hurts a lot", "pain"),
            ("When can I eat?", "fasting"),
            ("What time should I arrive?", "arrival"),
            ("Which exercise is next?", "exercise"),
            ("What task is left?", "tasks"),
            ("hello", "default"),
        ],
    )
    def test_keyword_routing(self, text, rule):
        assert select_rule(text).name == rule

    def test_rules_are_checked_in_order(self):
        # mentions both pain and surgery; pain comes first
        assert select_rule("Is this pain normal after surgery?").name == "pain"

    def test_matches_word_prefixes_only(self):
        assert select_rule("I'm eating well").name == "fasting"
        assert select_rule("feeling great today").name == "default"

    def test_punctuation_only_falls_back_to_default(self):
        assert select_rule("?!").name == "default"

    def test_default_is_last(self):
        assert FALLBACK_RULES[-1].name == "default"
        assert FALLBACK_RULES[-1].keywords == ()


class TestFallbackReply:
    def test_preparation_reply_lists_steps(self):
        reply = fallback_reply("How should I prepare for surgery?")
        assert "preparation steps" in reply
        assert "Stop eating and drinking after midnight" in reply

    def test_pain_reply_mentions_recovery_day(self):
        reply = fallback_reply("my leg is sore", FallbackContext(recovery_day=4))
        assert "on day 4 of recovery" in reply

    def test_pain_reply_without_day(self):
        reply = fallback_reply("my leg is sore")
        assert "normal." in reply
        assert "{day_phrase}" not in reply

    def test_task_count_pluralisation(self):
        assert "1 task remaining" in fallback_reply("any task left?", FallbackContext(remaining_tasks=1))
        assert "3 tasks remaining" in fallback_reply("any task left?", FallbackContext(remaining_tasks=3))

    @pytest.mark.parametrize("text", ["", "   ", "ok", "🙂", "asdfgh"])
    def test_never_empty(self, text):
        assert fallback_reply(text).strip()
