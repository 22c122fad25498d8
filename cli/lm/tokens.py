"""Token estimation and the context-window budget check."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Protocol

import tiktoken

from .errors import OverBudgetError, TokenizationError
from .query import Message, Query, TextBlock
from .registry import ModelDescriptor, ModelRegistry

logger = logging.getLogger(__name__)

# Estimates are inflated by 10% to cover message framing and special tokens
# the provider adds on its side.
SAFETY_NUMERATOR = 11
SAFETY_DENOMINATOR = 10


class Encoding(Protocol):
    def encode(self, text: str, *args: Any, **kwargs: Any) -> list[int]:  # pragma: no cover - protocol
        ...


EncodingLoader = Callable[[str], Encoding]


class TokenCounter:
    def __init__(self, encoding_loader: EncodingLoader = tiktoken.get_encoding) -> None:
        self._load = encoding_loader
        self._encodings: dict[str, Encoding] = {}

    def count_text(self, text: str, tokenizer: str) -> int:
        encoding = self._encoding(tokenizer)
        try:
            # Special-token markers in user text are counted as plain text.
            return len(encoding.encode(text, disallowed_special=()))
        except Exception as exc:
            raise TokenizationError(f"Tokenizer '{tokenizer}' could not encode text: {exc}") from exc

    def estimate(self, messages: Iterable[Message], tokenizer: str) -> int:
        raw = 0
        for message in messages:
            for block in message.content:
                if isinstance(block, TextBlock):
                    raw += self.count_text(block.text, tokenizer)
        return raw * SAFETY_NUMERATOR // SAFETY_DENOMINATOR

    def _encoding(self, tokenizer: str) -> Encoding:
        cached = self._encodings.get(tokenizer)
        if cached is not None:
            return cached
        try:
            encoding = self._load(tokenizer)
        except Exception as exc:
            raise TokenizationError(f"Could not load tokenizer '{tokenizer}': {exc}") from exc
        self._encodings[tokenizer] = encoding
        return encoding


class BudgetChecker:
    def __init__(self, registry: ModelRegistry, counter: TokenCounter | None = None) -> None:
        self._registry = registry
        self._counter = counter or TokenCounter()

    def check(self, estimated: int, model: ModelDescriptor) -> None:
        """Raise ``OverBudgetError`` unless ``estimated`` fits ``model``'s window.

        A query exactly the size of the window passes.
        """
        if estimated <= model.context_window:
            return
        largest = self._registry.largest_by_context_window()
        if largest.context_window < estimated:
            suggestion = f" The largest model, {largest.name}, supports {largest.context_window} tokens."
        else:
            candidates = [
                candidate.name
                for candidate in sorted(self._registry.all(), key=lambda m: m.name)
                if candidate.context_window >= estimated
            ]
            suggestion = f" Try one of these models instead: {', '.join(candidates)}."
        raise OverBudgetError(estimated, model, suggestion)

    def check_query(self, query: Query) -> int:
        estimated = self._counter.estimate(query.messages, query.model.tokenizer)
        logger.debug(
            "Estimated %d tokens for %s (window %d)", estimated, query.model.name, query.model.context_window
        )
        self.check(estimated, query.model)
        return estimated
