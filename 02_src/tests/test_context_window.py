"""Tests for ContextWindowManager."""

from agent_core.context import ContextWindowManager, estimate_text_tokens, make_char_estimator
from agent_core.models import ChatMessage, ContentPart


def msg(text: str, role: str = "user") -> ChatMessage:
    return ChatMessage(role=role, content=text)


class TestEstimate:
    """Tests for token estimation."""

    def test_estimate_text_tokens_rounds_up(self):
        """Test that estimation is ceil(len / 4)."""
        assert estimate_text_tokens("") == 0
        assert estimate_text_tokens("abcd") == 1
        assert estimate_text_tokens("abcde") == 2

    def test_custom_chars_per_token(self):
        """Test a non-default characters-per-token ratio."""
        assert estimate_text_tokens("abcdef", chars_per_token=2) == 3

    def test_non_text_content_is_serialized(self):
        """Test that content parts are estimated from their JSON form."""
        estimator = make_char_estimator()
        message = ChatMessage(role="user", content=(ContentPart(type="text", text="hi"),))

        assert estimator(message) > estimate_text_tokens("hi")

    def test_estimate_sums_messages(self):
        """Test that estimate() sums per-message costs."""
        manager = ContextWindowManager()

        assert manager.estimate([msg("a" * 8), msg("b" * 4)]) == 3


class TestManage:
    """Tests for manage()."""

    def test_fitting_input_returned_unchanged(self):
        """Test that input within budget comes back as a new equal list."""
        manager = ContextWindowManager(context_limit=100, reserved_tokens=10)
        messages = [msg("hello"), msg("world", "assistant")]

        result = manager.manage(messages)

        assert result == messages
        assert result is not messages

    def test_keeps_newest_within_budget(self):
        """Test truncation keeps the newest messages in chronological order."""
        manager = ContextWindowManager(context_limit=30, reserved_tokens=10)
        messages = [msg("a" * 40), msg("b" * 40), msg("c" * 40)]  # 10 tokens each, budget 20

        result = manager.manage(messages)

        assert [m.text[0] for m in result] == ["b", "c"]

    def test_stops_at_first_message_that_does_not_fit(self):
        """Test that an older small message is dropped after a large one does not fit."""
        manager = ContextWindowManager(context_limit=30, reserved_tokens=10)
        messages = [msg("a" * 4), msg("b" * 80), msg("c" * 40)]  # 1, 20, 10 tokens

        result = manager.manage(messages)

        assert [m.text[0] for m in result] == ["c"]

    def test_single_oversized_message_is_kept(self):
        """Test that the newest message is kept even when it alone exceeds the budget."""
        manager = ContextWindowManager(context_limit=20, reserved_tokens=10)
        messages = [msg("a" * 4), msg("z" * 400)]

        result = manager.manage(messages)

        assert len(result) == 1
        assert result[0].text.startswith("z")

    def test_max_tokens_overrides_limit(self):
        """Test that an explicit max_tokens replaces the context limit."""
        manager = ContextWindowManager(context_limit=10_000, reserved_tokens=10)
        messages = [msg("a" * 40), msg("b" * 40)]

        assert len(manager.manage(messages)) == 2
        assert len(manager.manage(messages, max_tokens=20)) == 1

    def test_manage_is_idempotent(self):
        """Test that managing a managed list changes nothing."""
        manager = ContextWindowManager(context_limit=30, reserved_tokens=10)
        messages = [msg(c * 40) for c in "abcde"]

        once = manager.manage(messages)

        assert manager.manage(once) == once
        assert manager.estimate(once) <= manager.budget()

    def test_empty_input(self):
        """Test that empty input stays empty."""
        assert ContextWindowManager().manage([]) == []

    def test_pluggable_estimator(self):
        """Test that a custom estimator drives truncation."""
        manager = ContextWindowManager(context_limit=3, reserved_tokens=0, estimator=lambda m: 1)
        messages = [msg(str(i)) for i in range(5)]

        result = manager.manage(messages)

        assert [m.text for m in result] == ["2", "3", "4"]
