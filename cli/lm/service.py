from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Callable

from .cache import ResponseCache
from .config import Settings
from .errors import CapabilityError
from .flight import CapabilityNegotiator
from .providers import Provider, build_provider
from .query import ImageBlock, JSONSchema, Query, QueryBuilder
from .registry import ModelDescriptor, ModelRegistry
from .tokens import BudgetChecker

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[ModelDescriptor, Settings, BudgetChecker], Provider]


@dataclass(slots=True)
class QueryRequest:
    prompt: str
    images: tuple[ImageBlock, ...] = ()
    json_output: bool = False
    schema: JSONSchema | None = None

    @property
    def needs_image(self) -> bool:
        return bool(self.images)

    @property
    def needs_unstructured_json(self) -> bool:
        return self.json_output and self.schema is None

    @property
    def needs_structured_json(self) -> bool:
        return self.schema is not None


@dataclass(slots=True)
class RunSummary:
    response: str
    model: ModelDescriptor
    requested_model: str
    cached: bool = False
    substitution_reason: str = ""

    @property
    def substituted(self) -> bool:
        return self.model.name != self.requested_model

    def to_dict(self) -> dict[str, object]:
        return {
            "response": self.response,
            "model": self.model.name,
            "provider": self.model.provider,
            "requested_model": self.requested_model,
            "cached": self.cached,
            "substituted": self.substituted,
            "substitution_reason": self.substitution_reason,
        }


class QueryService:
    """Negotiate capabilities, build the query and run it against one provider."""

    def __init__(
        self,
        registry: ModelRegistry,
        settings: Settings,
        *,
        budget: BudgetChecker | None = None,
        provider_factory: ProviderFactory = build_provider,
        cache: ResponseCache | None = None,
        allow_fallback: bool = False,
    ) -> None:
        self._registry = registry
        self._settings = settings
        self._budget = budget or BudgetChecker(registry)
        self._provider_factory = provider_factory
        self._cache = cache
        self._allow_fallback = allow_fallback
        self._negotiator = CapabilityNegotiator(registry)
        self._builder = QueryBuilder(registry)

    def run(self, model: ModelDescriptor, request: QueryRequest) -> RunSummary:
        cached = self._lookup(request.prompt)
        if cached is not None:
            return RunSummary(response=cached, model=model, requested_model=model.name, cached=True)

        selected, reason = self.negotiate(model, request)
        query = self.build_query(selected, request)
        provider = self._provider_factory(selected, self._settings, self._budget)
        response = provider.execute(query)
        self._store(request.prompt, response)
        return RunSummary(
            response=response,
            model=selected,
            requested_model=model.name,
            substitution_reason=reason,
        )

    def negotiate(self, model: ModelDescriptor, request: QueryRequest) -> tuple[ModelDescriptor, str]:
        """Return the model to use and, when it was substituted, why."""
        needs = (request.needs_image, request.needs_unstructured_json, request.needs_structured_json)
        ok, reason = self._negotiator.check(model, *needs)
        if ok:
            return model, ""
        if not self._allow_fallback:
            raise CapabilityError(
                f"Model {model.name} cannot be used for your query: {reason}. "
                f"Models that can: {', '.join(self._registry.models_supporting(*needs))}",
                model=model.name,
                supported=self._registry.models_supporting(*needs),
            )
        alternative = self._negotiator.suggest_alternative(*needs)
        logger.warning("Model %s cannot be used for your query (%s); using %s instead", model.name, reason,
                       alternative.name)
        return alternative, reason

    def build_query(self, model: ModelDescriptor, request: QueryRequest) -> Query:
        if request.json_output or request.schema is not None:
            return self._builder.build_json_query(model, request.prompt, request.schema, request.images)
        return self._builder.build_plain_query(model, request.prompt, request.images)

    def _lookup(self, prompt: str) -> str | None:
        if self._cache is None:
            return None
        try:
            cached = self._cache.get(prompt)
        except (sqlite3.Error, RuntimeError) as exc:
            # An unreadable cache counts as a miss.
            logger.warning("Error reading from cache: %s", exc)
            return None
        logger.debug("Cache %s for query", "miss" if cached is None else "hit")
        return cached

    def _store(self, prompt: str, response: str) -> None:
        if self._cache is None:
            return
        try:
            self._cache.set(prompt, response)
        except (sqlite3.Error, RuntimeError, OSError) as exc:
            logger.warning("Error writing to cache: %s", exc)
