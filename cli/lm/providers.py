from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Protocol

import boto3
import httpx

from .config import Settings
from .errors import (
    ConfigurationError,
    EmptyResponseError,
    MalformedResponseError,
    MissingCredentialError,
    ProviderError,
    SerializationError,
    TransportError,
    UnsupportedFormatError,
)
from .images import sniff_image_format
from .query import ImageBlock, Message, Query, TextBlock
from .registry import ModelDescriptor
from .tokens import BudgetChecker
from .wire import parse_chat_response, to_chat_request

logger = logging.getLogger(__name__)


class Provider(Protocol):
    name: str

    def execute(self, query: Query) -> str:  # pragma: no cover - runtime wiring
        ...


class ChatCompletionsProvider:
    """REST chat-completions endpoint (OpenAI and OpenAI-compatible local servers).

    Every execution runs the token budget check before anything is sent.
    """

    def __init__(
        self,
        *,
        name: str,
        endpoint: str,
        budget: BudgetChecker,
        api_key_env: str | None = None,
        timeout: float = 120.0,
        client: httpx.Client | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.name = name
        self._endpoint = endpoint
        self._budget = budget
        self._api_key_env = api_key_env
        self._timeout = timeout
        self._client = client
        self._environ = environ

    def execute(self, query: Query) -> str:
        api_key = self._api_key()
        self._budget.check_query(query)
        payload = to_chat_request(query).to_payload()
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        logger.debug("POST %s (model %s)", self._endpoint, query.model.model_id)
        response = self._send(payload, headers)
        return self._parse(response)

    def _api_key(self) -> str | None:
        if self._api_key_env is None:
            return None
        env = os.environ if self._environ is None else self._environ
        api_key = env.get(self._api_key_env)
        if not api_key:
            raise MissingCredentialError(self.name, self._api_key_env)
        return api_key

    def _send(self, payload: dict[str, Any], headers: dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return self._client.post(self._endpoint, json=payload, headers=headers)
        with httpx.Client(timeout=self._timeout) as client:
            return client.post(self._endpoint, json=payload, headers=headers)

    def _parse(self, response: httpx.Response) -> str:
        try:
            parsed = parse_chat_response(response.content)
        except MalformedResponseError as exc:
            if not response.is_success:
                raise TransportError(
                    f"Provider returned HTTP {response.status_code}: {response.text[:200]}"
                ) from exc
            raise
        if parsed.error_message:
            raise ProviderError(parsed.error_message, status_code=response.status_code)
        if not response.is_success:
            raise TransportError(f"Provider returned HTTP {response.status_code}.")
        if not parsed.choices:
            raise EmptyResponseError("Provider returned no choices.")
        return parsed.choices[0].message.content or ""


class BedrockProvider:
    """AWS Bedrock through the Converse API.

    No local budget check runs: Bedrock enforces the context limit on its
    side. Converse has no ``system`` role in the message list, so the head
    system message is dropped and any other system message is sent as
    ``assistant``.
    """

    name = "aws"

    def __init__(self, *, region: str, client: Any | None = None) -> None:
        self._region = region
        self._client = client

    def execute(self, query: Query) -> str:
        request = self.to_converse_request(query)
        client = self._client or boto3.client("bedrock-runtime", region_name=self._region)
        logger.debug("Converse %s in %s", query.model.model_id, self._region)
        response = client.converse(**request)
        return self._parse(response)

    def to_converse_request(self, query: Query) -> dict[str, Any]:
        messages = list(query.messages)
        if messages and messages[0].role == "system":
            messages = messages[1:]
        return {
            "modelId": query.model.model_id,
            "messages": [self._message(message) for message in messages],
        }

    def _message(self, message: Message) -> dict[str, Any]:
        role = "assistant" if message.role == "system" else message.role
        return {"role": role, "content": [self._block(block) for block in message.content]}

    def _block(self, block: TextBlock | ImageBlock) -> dict[str, Any]:
        if isinstance(block, TextBlock):
            if not block.text:
                raise SerializationError("Message text cannot be empty.")
            return {"text": block.text}
        if isinstance(block, ImageBlock):
            if block.data is None:
                raise UnsupportedFormatError(
                    f"Unsupported file format: Bedrock needs inline image bytes, got URL {block.url}."
                )
            fmt = sniff_image_format(block.data)
            return {"image": {"format": fmt, "source": {"bytes": block.data}}}
        raise TypeError(f"Unknown content block {block!r}")

    def _parse(self, response: Mapping[str, Any]) -> str:
        message = response.get("output", {}).get("message")
        if not isinstance(message, Mapping):
            raise MalformedResponseError("Unexpected Converse output: no message returned.")
        return "".join(block["text"] for block in message.get("content", []) if "text" in block)


def build_provider(
    model: ModelDescriptor,
    settings: Settings,
    budget: BudgetChecker,
    *,
    environ: Mapping[str, str] | None = None,
) -> Provider:
    if model.provider == "openai":
        return ChatCompletionsProvider(
            name="openai",
            endpoint=settings.openai_endpoint,
            budget=budget,
            api_key_env="OPENAI_API_KEY",
            timeout=settings.http_timeout,
            environ=environ,
        )
    if model.provider == "local":
        return ChatCompletionsProvider(
            name="local",
            endpoint=settings.local_endpoint,
            budget=budget,
            timeout=settings.http_timeout,
            environ=environ,
        )
    if model.provider == "aws":
        return BedrockProvider(region=settings.aws_region)
    raise ConfigurationError(f"Provider not found: {model.provider}")
