"""Validation engine.

Looks the field up in the registry, parses the raw input with the field's
schema, runs its context rules and normalizes the result. Pure: it never
reads or writes a store. The taxonomy snapshot it checks against is handed
in by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from bizdir.domain.assets.entities import ImageLimits
from bizdir.domain.taxonomy.entities import TaxonomySnapshot

from .registry import FIELD_REGISTRY, SUBMISSION_FIELDS, FieldDescriptor
from .schemas import DEFAULT_CALLING_CODE, FieldInput, ValidationContext


@dataclass(frozen=True)
class ValidationResult:
    field: str
    ok: bool
    normalized_value: dict[str, Any] | None = None
    errors: list[str] = field(default_factory=list)
    descriptor: FieldDescriptor | None = None
    parsed: FieldInput | None = None


@dataclass(frozen=True)
class SubmissionResult:
    ok: bool
    results: list[ValidationResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def changes(self) -> dict[str, Any]:
        merged: dict[str, Any] = {}
        for result in self.results:
            merged.update(result.normalized_value or {})
        return merged


def schema_error_messages(exc: PydanticValidationError) -> list[str]:
    messages: list[str] = []
    for err in exc.errors(include_url=False):
        loc = ".".join(str(part) for part in err["loc"] if part != "value")
        msg = err["msg"]
        if err["type"] == "missing":
            msg = "is required"
        elif msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        messages.append(f"{loc} {msg}" if loc else msg)
    return messages


class ValidationEngine:
    """Validates admin-supplied values against the field registry."""

    def __init__(
        self,
        taxonomy: TaxonomySnapshot | None = None,
        *,
        limits: ImageLimits | None = None,
        calling_code: str = DEFAULT_CALLING_CODE,
    ) -> None:
        self._ctx = ValidationContext(
            taxonomy=taxonomy or TaxonomySnapshot(),
            limits=limits or ImageLimits(),
            calling_code=calling_code,
        )

    @property
    def context(self) -> ValidationContext:
        return self._ctx

    def with_taxonomy(self, taxonomy: TaxonomySnapshot) -> "ValidationEngine":
        return ValidationEngine(
            taxonomy,
            limits=self._ctx.limits,
            calling_code=self._ctx.calling_code,
        )

    def validate(self, field_name: str, raw_inputs: Any) -> ValidationResult:
        descriptor = FIELD_REGISTRY.get(field_name)
        if descriptor is None:
            return ValidationResult(field=field_name, ok=False, errors=[f"Unknown field: {field_name}"])

        if not isinstance(raw_inputs, dict):
            raw_inputs = {"value": raw_inputs}

        try:
            parsed = descriptor.input_model.model_validate(raw_inputs)
        except PydanticValidationError as exc:
            errors = [f"{field_name}: {m}" for m in schema_error_messages(exc)]
            return ValidationResult(field=field_name, ok=False, errors=errors, descriptor=descriptor)

        problems = parsed.check(self._ctx)
        if problems:
            errors = [f"{field_name}: {p}" for p in problems]
            return ValidationResult(
                field=field_name, ok=False, errors=errors, descriptor=descriptor, parsed=parsed
            )

        return ValidationResult(
            field=field_name,
            ok=True,
            normalized_value=descriptor.normalize(parsed, self._ctx),
            descriptor=descriptor,
            parsed=parsed,
        )

    def validate_submission(self, payload: dict[str, Any]) -> SubmissionResult:
        """Validate a full add-request payload keyed by storage key.

        Required fields must be present; optional ones are checked only when
        given. Results come back in registry order.
        """
        results: list[ValidationResult] = []
        errors: list[str] = []

        for entry in SUBMISSION_FIELDS:
            descriptor = FIELD_REGISTRY[entry.name]
            raw = descriptor.input_model.raw_from_payload(descriptor.storage_keys, payload)
            if raw is None:
                if entry.required:
                    errors.append(f"{entry.name}: is required")
                continue

            result = self.validate(entry.name, raw)
            if result.ok:
                results.append(result)
            else:
                errors.extend(result.errors)

        return SubmissionResult(ok=not errors, results=results, errors=errors)


def validate(field_name: str, raw_inputs: Any, taxonomy: TaxonomySnapshot | None = None) -> ValidationResult:
    return ValidationEngine(taxonomy).validate(field_name, raw_inputs)
