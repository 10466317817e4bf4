"""Context-window truncation over a token budget."""

import json
import math
from typing import Callable, Sequence

from ..config import DEFAULT_CONTEXT_WINDOW, DEFAULT_RESERVED_TOKENS
from ..logging_config import get_logger
from ..models import ChatMessage

logger = get_logger(__name__)


TokenEstimator = Callable[[ChatMessage], int]


def estimate_text_tokens(text: str, chars_per_token: int = 4) -> int:
    """
    Approximate token count for text.

    ceil(len / chars_per_token). A heuristic, not a tokenizer: provider-side
    counts will differ.
    """
    if not text:
        return 0
    return math.ceil(len(text) / chars_per_token)


def make_char_estimator(chars_per_token: int = 4) -> TokenEstimator:
    """Build a per-message estimator using the character heuristic."""

    def estimate(message: ChatMessage) -> int:
        if isinstance(message.content, str):
            content = message.content
        else:
            content = json.dumps([part.to_dict() for part in message.content], ensure_ascii=False)
        return estimate_text_tokens(content, chars_per_token)

    return estimate


class ContextWindowManager:
    """Keeps the most recent messages that fit into the token budget."""

    def __init__(
        self,
        context_limit: int = DEFAULT_CONTEXT_WINDOW,
        reserved_tokens: int = DEFAULT_RESERVED_TOKENS,
        estimator: TokenEstimator | None = None,
    ):
        self._context_limit = context_limit
        self._reserved_tokens = reserved_tokens
        self._estimator = estimator or make_char_estimator()

    @property
    def reserved_tokens(self) -> int:
        return self._reserved_tokens

    def budget(self, max_tokens: int | None = None) -> int:
        """Tokens available for context after reserving completion headroom."""
        return (max_tokens or self._context_limit) - self._reserved_tokens

    def estimate(self, messages: Sequence[ChatMessage]) -> int:
        """Estimated total tokens of messages."""
        return sum(self._estimator(m) for m in messages)

    def manage(
        self, messages: Sequence[ChatMessage], max_tokens: int | None = None
    ) -> list[ChatMessage]:
        """Truncate messages to the budget, newest first.

        The newest message is always kept, even when it alone exceeds the
        budget.
        """
        available = self.budget(max_tokens)

        if self.estimate(messages) <= available:
            return list(messages)

        kept: list[ChatMessage] = []
        used = 0
        for message in reversed(messages):
            cost = self._estimator(message)
            if used + cost > available:
                break
            kept.append(message)
            used += cost

        if not kept and messages:
            kept.append(messages[-1])

        kept.reverse()

        logger.debug(
            "Context window truncated: %s -> %s messages (%s tokens, budget %s)",
            len(messages),
            len(kept),
            used,
            available,
        )
        return kept
