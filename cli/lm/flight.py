"""Pre-flight capability checks between a query's needs and a model."""

from __future__ import annotations

from typing import Iterator, NamedTuple

from .errors import NoCandidateError
from .registry import ModelDescriptor, ModelRegistry


class FlightCheck(NamedTuple):
    ok: bool
    reason: str = ""


def flight_check(
    model: ModelDescriptor,
    needs_image: bool = False,
    needs_unstructured_json: bool = False,
    needs_structured_json: bool = False,
) -> FlightCheck:
    """Check capabilities in a fixed order: image, unstructured JSON, structured JSON.

    Only the first unmet capability is reported.
    """
    if needs_image and not model.supports_image:
        return FlightCheck(False, "model does not support image input")
    if needs_unstructured_json and not model.supports_unstructured_json:
        return FlightCheck(False, "model does not support unstructured JSON output")
    if needs_structured_json and not model.supports_structured_json:
        return FlightCheck(False, "model does not support structured JSON output")
    return FlightCheck(True)


class CapabilityNegotiator:
    def __init__(self, registry: ModelRegistry) -> None:
        self._registry = registry

    def check(
        self,
        model: ModelDescriptor,
        needs_image: bool = False,
        needs_unstructured_json: bool = False,
        needs_structured_json: bool = False,
    ) -> FlightCheck:
        return flight_check(model, needs_image, needs_unstructured_json, needs_structured_json)

    def suggest_alternative(
        self,
        needs_image: bool = False,
        needs_unstructured_json: bool = False,
        needs_structured_json: bool = False,
    ) -> ModelDescriptor:
        """Return the qualifying model with the smallest context window (ties by name)."""
        for model in self._by_window():
            if flight_check(model, needs_image, needs_unstructured_json, needs_structured_json).ok:
                return model
        raise NoCandidateError(_capability_names(needs_image, needs_unstructured_json, needs_structured_json))

    def _by_window(self) -> Iterator[ModelDescriptor]:
        yield from sorted(self._registry.all(), key=lambda m: (m.context_window, m.name))


def _capability_names(image: bool, unstructured: bool, structured: bool) -> list[str]:
    names = []
    if image:
        names.append("image input")
    if unstructured:
        names.append("unstructured JSON output")
    if structured:
        names.append("structured JSON output")
    return names
