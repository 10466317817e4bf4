"""Context window module."""

from .window import (
    ContextWindowManager,
    TokenEstimator,
    estimate_text_tokens,
    make_char_estimator,
)

__all__ = [
    "ContextWindowManager",
    "TokenEstimator",
    "estimate_text_tokens",
    "make_char_estimator",
]
