"""Catalogue of known models and their capability flags."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Literal

from .errors import ModelNotFoundError

ProviderName = Literal["openai", "local", "aws"]


@dataclass(frozen=True, slots=True)
class ModelDescriptor:
    name: str
    provider: ProviderName
    model_id: str
    context_window: int
    tokenizer: str
    supports_image: bool = False
    supports_unstructured_json: bool = False
    supports_structured_json: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


DEFAULT_MODELS: tuple[ModelDescriptor, ...] = (
    ModelDescriptor("gpt-3.5-turbo", "openai", "gpt-3.5-turbo", 4096, "cl100k_base"),
    ModelDescriptor("gpt-4", "openai", "gpt-4", 8192, "cl100k_base"),
    ModelDescriptor("gpt-4o", "openai", "gpt-4o", 128000, "cl100k_base", True, True, False),
    ModelDescriptor("gpt-4-turbo", "openai", "gpt-4-turbo", 128000, "cl100k_base", True, True, False),
    ModelDescriptor("gpt-4o-mini", "openai", "gpt-4o-mini", 128000, "cl100k_base", True, True, True),
    ModelDescriptor("local-deepseek-7b", "local", "deepseek-7b", 8192, "cl100k_base"),
    ModelDescriptor("aws-nova-lite", "aws", "us.amazon.nova-lite-v1:0", 300000, "cl100k_base", True, False, False),
    ModelDescriptor("aws-nova-pro", "aws", "us.amazon.nova-pro-v1:0", 300000, "cl100k_base", True, False, False),
)


class ModelRegistry:
    """Read-only lookup table over a fixed set of models.

    Build one explicitly and hand it to the components that need it; tests
    construct their own synthetic catalogue the same way.
    """

    def __init__(self, models: Iterable[ModelDescriptor]) -> None:
        by_name: dict[str, ModelDescriptor] = {}
        for model in models:
            if model.name in by_name:
                raise ValueError(f"Duplicate model name '{model.name}' in registry.")
            by_name[model.name] = model
        if not by_name:
            raise ValueError("A model registry needs at least one model.")
        self._models = by_name

    def __contains__(self, name: object) -> bool:
        return name in self._models

    def __len__(self) -> int:
        return len(self._models)

    def lookup(self, name: str) -> ModelDescriptor:
        try:
            return self._models[name]
        except KeyError:
            raise ModelNotFoundError(name, self._models) from None

    def all(self) -> frozenset[ModelDescriptor]:
        return frozenset(self._models.values())

    def names(self) -> list[str]:
        return sorted(self._models)

    def largest_by_context_window(self) -> ModelDescriptor:
        # Ties go to the lexically first name.
        return min(self._models.values(), key=lambda m: (-m.context_window, m.name))

    def models_supporting(
        self,
        needs_image: bool = False,
        needs_unstructured_json: bool = False,
        needs_structured_json: bool = False,
    ) -> list[str]:
        return [
            model.name
            for model in self._sorted()
            if (not needs_image or model.supports_image)
            and (not needs_unstructured_json or model.supports_unstructured_json)
            and (not needs_structured_json or model.supports_structured_json)
        ]

    def model_info(self) -> dict[str, dict[str, Any]]:
        return {model.name: model.to_dict() for model in self._sorted()}

    def model_info_json(self, *, indent: int | None = None) -> str:
        return json.dumps(self.model_info(), indent=indent)

    def _sorted(self) -> list[ModelDescriptor]:
        return [self._models[name] for name in sorted(self._models)]


def default_registry() -> ModelRegistry:
    return ModelRegistry(DEFAULT_MODELS)
