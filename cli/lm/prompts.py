"""Reusable prompt templates bundled with the client.

Each template lives in its own directory under ``prompt_files/``: a Jinja2
``prompt`` file rendered with ``text`` (the stdin input) and ``image_urls``,
plus a ``schema.json`` when the template asks for structured output.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Iterable, Sequence

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateNotFound

from .errors import ConfigurationError, PromptNotFoundError
from .query import DEFAULT_SCHEMA_NAME, JSONSchema

PROMPT_DIR = Path(__file__).resolve().parent / "prompt_files"


@dataclass(frozen=True, slots=True)
class PromptTemplate:
    name: str
    description: str
    path: str
    json_unstructured: bool = False
    json_structured: bool = False
    model: str = "gpt-4o-mini"

    @property
    def forces_json(self) -> bool:
        return self.json_unstructured or self.json_structured

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


BUNDLED_PROMPTS: tuple[PromptTemplate, ...] = (
    PromptTemplate(
        "json-sample-to-schema",
        "Turn a JSON sample into a formal schema OpenAI can understand and coerce results to",
        "json-sample-to-schema",
        json_unstructured=True,
    ),
    PromptTemplate(
        "pdf-to-text",
        "Convert page(s) of a PDF, passed in as images, to text",
        "pdf-to-text",
        json_unstructured=True,
        json_structured=True,
    ),
)


class PromptLibrary:
    def __init__(self, templates: Iterable[PromptTemplate] = BUNDLED_PROMPTS, root: Path = PROMPT_DIR) -> None:
        self._templates = {template.name: template for template in templates}
        self._root = root
        self._env = Environment(
            loader=FileSystemLoader(str(root)),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )

    def get(self, name: str) -> PromptTemplate:
        try:
            return self._templates[name]
        except KeyError:
            raise PromptNotFoundError(name, self._templates) from None

    def names(self) -> list[str]:
        return sorted(self._templates)

    def render(self, template: PromptTemplate, text: str, image_urls: Sequence[str] = ()) -> str:
        try:
            jinja_template = self._env.get_template(f"{template.path}/prompt")
        except TemplateNotFound as exc:
            raise ConfigurationError(f"Prompt file for '{template.name}' not found under {self._root}.") from exc
        return jinja_template.render(text=text, image_urls=list(image_urls))

    def schema(self, template: PromptTemplate) -> JSONSchema | None:
        if not template.json_structured:
            return None
        schema_path = self._root / template.path / "schema.json"
        try:
            data = schema_path.read_bytes()
        except FileNotFoundError as exc:
            raise ConfigurationError(f"Schema for prompt '{template.name}' not found at {schema_path}.") from exc
        return JSONSchema(name=DEFAULT_SCHEMA_NAME, schema=data, strict=True)

    def listing(self) -> dict[str, dict[str, Any]]:
        return {name: self._templates[name].to_dict() for name in self.names()}

    def listing_json(self, *, indent: int | None = None) -> str:
        return json.dumps(self.listing(), indent=indent)
