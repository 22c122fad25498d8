from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from .errors import ConfigurationError

DEFAULT_MODEL = "gpt-4o"
DEFAULT_STDIN_TIMEOUT = 60.0
DEFAULT_HTTP_TIMEOUT = 120.0
OPENAI_ENDPOINT = "https://api.openai.com/v1/chat/completions"
LOCAL_ENDPOINT = "http://localhost:8080/v1/chat/completions"
AWS_REGION = "us-east-1"


def _truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _float(value: str | None, default: float, name: str) -> float:
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}.") from exc


@dataclass(frozen=True, slots=True)
class Settings:
    """Environment-aware defaults for the client."""

    default_model: str = DEFAULT_MODEL
    stdin_timeout: float = DEFAULT_STDIN_TIMEOUT
    cache_dir: Path = field(default_factory=lambda: Path.home() / ".cache" / "lm")
    openai_endpoint: str = OPENAI_ENDPOINT
    local_endpoint: str = LOCAL_ENDPOINT
    aws_region: str = AWS_REGION
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    debug: bool = False

    @property
    def cache_path(self) -> Path:
        return self.cache_dir / "responses.sqlite3"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        cache_dir = env.get("LM_CACHE_DIR")
        return cls(
            default_model=env.get("LM_DEFAULT_MODEL") or DEFAULT_MODEL,
            stdin_timeout=_float(env.get("LM_STDIN_TIMEOUT"), DEFAULT_STDIN_TIMEOUT, "LM_STDIN_TIMEOUT"),
            cache_dir=Path(cache_dir).expanduser() if cache_dir else Path.home() / ".cache" / "lm",
            openai_endpoint=env.get("LM_OPENAI_ENDPOINT") or OPENAI_ENDPOINT,
            local_endpoint=env.get("LM_LOCAL_ENDPOINT") or LOCAL_ENDPOINT,
            aws_region=env.get("LM_AWS_REGION") or AWS_REGION,
            http_timeout=_float(env.get("LM_HTTP_TIMEOUT"), DEFAULT_HTTP_TIMEOUT, "LM_HTTP_TIMEOUT"),
            debug=_truthy(env.get("LM_DEBUG")),
        )


@dataclass(slots=True)
class ScreenshotConfig:
    monitor: int | None = None
    output_dir: Path | None = None


@dataclass(slots=True)
class InputConfig:
    prompt_suffix: str = ""
    image_urls: list[str] = field(default_factory=list)
    image_files: list[Path] = field(default_factory=list)
    sites: list[str] = field(default_factory=list)
    screenshot: bool = False
    template: str | None = None


@dataclass(slots=True)
class OutputConfig:
    json_output: bool = False
    schema_path: Path | None = None


@dataclass(slots=True)
class RunConfig:
    model: str | None
    input: InputConfig
    output: OutputConfig
    screenshot: ScreenshotConfig = field(default_factory=ScreenshotConfig)
    timeout: float | None = None
    use_cache: bool = False
    fallback: bool = False
    verbose: bool = False
