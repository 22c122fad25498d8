"""Chat-completions wire schema.

See https://platform.openai.com/docs/api-reference/chat/create for the
contract these models mirror.
"""

from __future__ import annotations

import json
from typing import Any, Literal, Union

from pydantic import BaseModel, Field, ValidationError

from .errors import MalformedResponseError, SerializationError
from .images import to_data_url
from .query import ImageBlock, Message, Query, TextBlock


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageURL(BaseModel):
    url: str


class ImagePart(BaseModel):
    type: Literal["image_url"] = "image_url"
    image_url: ImageURL


class RequestMessage(BaseModel):
    role: str
    content: list[Union[TextPart, ImagePart]]


class ChatRequest(BaseModel):
    # required
    model: str
    messages: list[RequestMessage]

    # optional
    response_format: dict[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ResponseMessage(BaseModel):
    role: str | None = None
    content: str | None = None


class Choice(BaseModel):
    index: int = 0
    message: ResponseMessage


class ErrorBody(BaseModel):
    message: str | None = None
    type: str | None = None


class ChatResponse(BaseModel):
    id: str | None = None
    created: int | None = None
    model: str | None = None
    choices: list[Choice] = Field(default_factory=list)
    error: ErrorBody | None = None

    @property
    def error_message(self) -> str:
        if self.error is None:
            return ""
        return self.error.message or ""


def _part(block: TextBlock | ImageBlock) -> TextPart | ImagePart:
    if isinstance(block, TextBlock):
        return TextPart(text=block.text)
    if isinstance(block, ImageBlock):
        if block.url is not None:
            return ImagePart(image_url=ImageURL(url=block.url))
        assert block.data is not None
        return ImagePart(image_url=ImageURL(url=to_data_url(block.data)))
    raise TypeError(f"Unknown content block {block!r}")


def _message(message: Message) -> RequestMessage:
    return RequestMessage(role=message.role, content=[_part(block) for block in message.content])


def to_chat_request(query: Query) -> ChatRequest:
    try:
        response_format = query.response_format.to_wire()
    except json.JSONDecodeError as exc:
        raise SerializationError(f"JSON schema is not valid JSON: {exc}") from exc
    return ChatRequest(
        model=query.model.model_id,
        messages=[_message(message) for message in query.messages],
        response_format=response_format,
    )


def parse_chat_response(body: bytes) -> ChatResponse:
    try:
        return ChatResponse.model_validate_json(body)
    except ValidationError as exc:
        raise MalformedResponseError(f"Could not decode provider response: {exc}") from exc
