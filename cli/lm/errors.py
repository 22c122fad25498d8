"""Typed failures raised by the lm client."""

from __future__ import annotations

from typing import Iterable, TYPE_CHECKING

if TYPE_CHECKING:
    from .registry import ModelDescriptor


class LmError(Exception):
    """Base class for every failure the client reports."""


class ConfigurationError(LmError):
    """Unknown model, missing credential or unusable provider setup."""


class ModelNotFoundError(ConfigurationError):
    def __init__(self, name: str, valid_names: Iterable[str]) -> None:
        self.name = name
        self.valid_names = sorted(valid_names)
        super().__init__(f"Model {name} not found. Valid models are: {', '.join(self.valid_names)}")


class MissingCredentialError(ConfigurationError):
    def __init__(self, provider: str, env_var: str) -> None:
        self.provider = provider
        self.env_var = env_var
        super().__init__(f"{env_var} not set (required by provider '{provider}').")


class PromptNotFoundError(ConfigurationError):
    def __init__(self, name: str, valid_names: Iterable[str]) -> None:
        self.name = name
        self.valid_names = sorted(valid_names)
        super().__init__(f"Prompt {name} not found. Valid prompts are: {', '.join(self.valid_names)}")


class CapabilityError(LmError):
    """The selected model lacks a feature the query needs."""

    def __init__(self, message: str, *, model: str | None = None, capability: str | None = None,
                 supported: Iterable[str] = ()) -> None:
        self.model = model
        self.capability = capability
        self.supported = list(supported)
        super().__init__(message)


class NoCandidateError(CapabilityError):
    def __init__(self, capabilities: Iterable[str]) -> None:
        wanted = ", ".join(capabilities) or "no particular capability"
        super().__init__(f"Could not find a model supporting: {wanted}.")


class BudgetError(LmError):
    """Token budget could not be established or was exceeded."""


class TokenizationError(BudgetError):
    pass


class OverBudgetError(BudgetError):
    def __init__(self, estimated: int, model: ModelDescriptor, suggestion: str) -> None:
        self.estimated = estimated
        self.model = model
        self.suggestion = suggestion
        super().__init__(f"Your query has too many tokens ({estimated}).{suggestion}")


class TransportError(LmError):
    """The provider call failed or returned something unusable."""


class ProviderError(TransportError):
    """The provider reported an error inside the response body."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class MalformedResponseError(TransportError):
    pass


class EmptyResponseError(TransportError):
    pass


class SerializationError(TransportError):
    pass


class CacheError(LmError):
    """The response cache could not be opened."""


class UnsupportedFormatError(LmError):
    pass


class ScreenshotError(LmError):
    pass


class StdinTimeoutError(LmError, TimeoutError):
    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Hit timeout ({timeout:g} secs) reading stdin")
