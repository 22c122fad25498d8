"""Shared fixtures: a synthetic model catalogue, a word-count tokenizer and images."""

from __future__ import annotations

import io

import pytest
from PIL import Image

from cli.lm.config import Settings
from cli.lm.registry import ModelDescriptor, ModelRegistry
from cli.lm.tokens import BudgetChecker, TokenCounter


class WordEncoding:
    """One token per whitespace-separated word."""

    def encode(self, text, *args, **kwargs):
        return list(range(len(text.split())))


def load_word_encoding(name: str) -> WordEncoding:
    if name != "words":
        raise ValueError(f"Unknown encoding {name}")
    return WordEncoding()


SYNTHETIC_MODELS = (
    ModelDescriptor("tiny", "openai", "tiny-1", 10, "words"),
    ModelDescriptor("vision", "openai", "vision-1", 100, "words", supports_image=True),
    ModelDescriptor("json", "openai", "json-1", 100, "words", True, True, False),
    ModelDescriptor("schema", "openai", "schema-1", 1000, "words", True, True, True),
    ModelDescriptor("nova", "aws", "nova-1", 1000, "words", supports_image=True),
    ModelDescriptor("local", "local", "local-1", 50, "words"),
)


@pytest.fixture
def registry() -> ModelRegistry:
    return ModelRegistry(SYNTHETIC_MODELS)


@pytest.fixture
def counter() -> TokenCounter:
    return TokenCounter(encoding_loader=load_word_encoding)


@pytest.fixture
def budget(registry, counter) -> BudgetChecker:
    return BudgetChecker(registry, counter)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        cache_dir=tmp_path / "cache",
        openai_endpoint="https://llm.test/v1/chat/completions",
        local_endpoint="http://localhost:8080/v1/chat/completions",
    )


def image_bytes(fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (2, 2), color=(200, 30, 30)).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return image_bytes("PNG")


@pytest.fixture
def make_image():
    return image_bytes
