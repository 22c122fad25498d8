"""Provider-agnostic query objects and the builder that assembles them.

A query is a fixed sequence of messages plus an optional response-format
directive. Building validates the model's capabilities first, so nothing
reaches a provider unless the selected model can actually serve it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, Literal, Sequence, Union

from .errors import CapabilityError
from .registry import ModelDescriptor, ModelRegistry

Role = Literal["system", "user"]

PLAIN_SYSTEM_PROMPT = "You are a friendly assistant."
JSON_DIRECTIVE = "JSON output only."
DEFAULT_SCHEMA_NAME = "json_schema"


@dataclass(frozen=True, slots=True)
class TextBlock:
    text: str


@dataclass(frozen=True, slots=True)
class ImageBlock:
    url: str | None = None
    data: bytes | None = None

    def __post_init__(self) -> None:
        if (self.url is None) == (self.data is None):
            raise ValueError("An image block needs exactly one of 'url' or 'data'.")


ContentBlock = Union[TextBlock, ImageBlock]


@dataclass(frozen=True, slots=True)
class Message:
    role: Role
    content: tuple[ContentBlock, ...]

    def __post_init__(self) -> None:
        if not self.content:
            raise ValueError("A message needs at least one content block.")
        if self.role != "user" and any(isinstance(block, ImageBlock) for block in self.content):
            raise ValueError("Only user messages may carry images.")

    @property
    def text(self) -> str:
        return "".join(block.text for block in self.content if isinstance(block, TextBlock))


@dataclass(frozen=True, slots=True)
class PlainText:
    def to_wire(self) -> None:
        return None


@dataclass(frozen=True, slots=True)
class JSONObject:
    def to_wire(self) -> dict[str, Any]:
        return {"type": "json_object"}


@dataclass(frozen=True, slots=True)
class JSONSchema:
    name: str
    schema: bytes
    strict: bool = True

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": "json_schema",
            "json_schema": {"name": self.name, "schema": json.loads(self.schema), "strict": self.strict},
        }


ResponseFormat = Union[PlainText, JSONObject, JSONSchema]


@dataclass(frozen=True, slots=True)
class Query:
    model: ModelDescriptor
    messages: tuple[Message, ...]
    response_format: ResponseFormat = PlainText()

    def __post_init__(self) -> None:
        if any(message.role == "system" for message in self.messages[1:]):
            raise ValueError("A system message may only appear at the head of a query.")

    @property
    def needs_image(self) -> bool:
        return any(isinstance(block, ImageBlock) for message in self.messages for block in message.content)

    @property
    def wants_json(self) -> bool:
        return not isinstance(self.response_format, PlainText)


def system_message(text: str) -> Message:
    return Message("system", (TextBlock(text),))


def user_message(text: str, images: Sequence[ImageBlock] = ()) -> Message:
    return Message("user", (TextBlock(text), *images))


class QueryBuilder:
    def __init__(self, registry: ModelRegistry) -> None:
        self._registry = registry

    def build_plain_query(
        self, model: ModelDescriptor, prompt: str, images: Iterable[ImageBlock] = ()
    ) -> Query:
        images = tuple(images)
        self._require_images(model, images)
        return Query(
            model=model,
            messages=(system_message(PLAIN_SYSTEM_PROMPT), user_message(prompt, images)),
        )

    def build_json_query(
        self,
        model: ModelDescriptor,
        prompt: str,
        schema: JSONSchema | None = None,
        images: Iterable[ImageBlock] = (),
    ) -> Query:
        images = tuple(images)
        self._require_images(model, images)

        response_format: ResponseFormat
        if schema is None:
            if not model.supports_unstructured_json:
                supported = self._registry.models_supporting(needs_unstructured_json=True)
                raise CapabilityError(
                    f"Model {model.name} does not support unstructured JSON output. "
                    f"Models that might: {', '.join(supported)}",
                    model=model.name,
                    capability="unstructured_json",
                    supported=supported,
                )
            response_format = JSONObject()
        else:
            if not model.supports_structured_json:
                supported = self._registry.models_supporting(needs_structured_json=True)
                raise CapabilityError(
                    f"Model {model.name} does not support structured JSON output. "
                    f"Models that might: {', '.join(supported)}",
                    model=model.name,
                    capability="structured_json",
                    supported=supported,
                )
            response_format = schema

        return Query(
            model=model,
            messages=(
                system_message(""),
                user_message(JSON_DIRECTIVE),
                user_message(prompt, images),
            ),
            response_format=response_format,
        )

    def _require_images(self, model: ModelDescriptor, images: tuple[ImageBlock, ...]) -> None:
        if images and not model.supports_image:
            supported = self._registry.models_supporting(needs_image=True)
            raise CapabilityError(
                f"Model {model.name} does not support images. Models that do: {', '.join(supported)}",
                model=model.name,
                capability="image",
                supported=supported,
            )
