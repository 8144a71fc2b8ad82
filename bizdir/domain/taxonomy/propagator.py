"""Side-effect propagation for taxonomy-backed fields.

An approved value for a category, location or district that the directory
has never seen becomes a new vocabulary entry. Detection is pure; creating
the entries needs the admin's explicit confirmation and happens before the
record mutation that references them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from bizdir.core.errors import TaxonomyConfirmationRequired
from bizdir.domain.fields.registry import FieldDescriptor
from bizdir.observability.tracing import log_event, new_trace_id

from .entities import NewTaxonomyValue, TaxonomyEntry, TaxonomySnapshot, Vocabulary
from .repository import TaxonomyRepository


@dataclass(frozen=True)
class DetectionResult:
    is_new: bool
    value: str


def detect_new_taxonomy(field_name: str, candidate: str | None, known_values: Iterable[str]) -> DetectionResult:
    """Case-insensitive membership check.

    A match returns the known spelling, so "hotels" against ["Hotels"] is
    not new and normalizes to "Hotels".
    """
    value = (candidate or "").strip()
    if not value:
        return DetectionResult(is_new=False, value="")
    needle = value.lower()
    for known in known_values:
        if known.lower() == needle:
            return DetectionResult(is_new=False, value=known)
    return DetectionResult(is_new=True, value=value)


class TaxonomyPropagator:
    def __init__(self, repository: TaxonomyRepository) -> None:
        self._repository = repository

    def pending_entries(
        self,
        descriptor: FieldDescriptor,
        normalized: dict[str, Any],
        snapshot: TaxonomySnapshot,
    ) -> list[NewTaxonomyValue]:
        entries: list[NewTaxonomyValue] = []
        for key, vocabulary in descriptor.taxonomy.items():
            candidate = normalized.get(key)
            if not isinstance(candidate, str):
                continue
            detected = detect_new_taxonomy(descriptor.name, candidate, snapshot.values(vocabulary))
            if detected.is_new:
                district = normalized.get("district") if vocabulary == Vocabulary.LOCATION else None
                entries.append(NewTaxonomyValue(
                    vocabulary=vocabulary,
                    value=detected.value,
                    storage_key=key,
                    district=district if isinstance(district, str) and district else None,
                ))
        return entries

    @staticmethod
    def require_confirmation(
        entries: list[NewTaxonomyValue],
        *,
        confirmed: bool,
        request_id: str | None = None,
    ) -> None:
        if entries and not confirmed:
            raise TaxonomyConfirmationRequired(
                [e.to_dict() for e in entries],
                request_id=request_id,
                field=", ".join(sorted({e.storage_key for e in entries})),
            )

    def persist(
        self,
        entries: list[NewTaxonomyValue],
        *,
        actor: str,
        trace_id: str | None = None,
    ) -> list[TaxonomyEntry]:
        """Create the entries that are still missing. Safe to call twice."""
        trace_id = trace_id or new_trace_id()
        created: list[TaxonomyEntry] = []
        seen: set[tuple[str, str]] = set()
        for entry in entries:
            key = (entry.vocabulary.value, entry.value.lower())
            if key in seen:
                continue
            seen.add(key)
            if self._repository.find(entry.vocabulary, entry.value) is not None:
                continue
            stored = self._repository.add(
                entry.vocabulary,
                entry.value,
                created_by=actor,
                district=entry.district,
            )
            created.append(stored)
            log_event(
                'taxonomy.created',
                trace_id=trace_id,
                vocabulary=entry.vocabulary.value,
                value=entry.value,
                actor=actor,
            )
        return created
