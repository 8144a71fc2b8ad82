# ============================================================
# Taxonomy access layer
# ============================================================
from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Protocol

from bizdir.core.errors import ConflictError, ValidationError
from bizdir.infrastructure.document_store import DocumentStore

from .entities import TaxonomyEntry, TaxonomySnapshot, Vocabulary


class TaxonomyRepositoryProtocol(Protocol):
    def snapshot(self) -> TaxonomySnapshot:
        """Current values of every vocabulary"""
        ...

    def find(self, vocabulary: Vocabulary, value: str) -> TaxonomyEntry | None:
        """Case-insensitive lookup"""
        ...

    def add(
        self,
        vocabulary: Vocabulary,
        value: str,
        *,
        created_by: str,
        district: str | None = None,
    ) -> TaxonomyEntry:
        """Append a new vocabulary entry"""
        ...


class TaxonomyRepository(TaxonomyRepositoryProtocol):
    COLLECTION = "taxonomy"

    def __init__(self, store: DocumentStore):
        self.store = store

    def entries(self) -> list[TaxonomyEntry]:
        return [self._to_entry(doc) for doc in self.store.list(self.COLLECTION)]

    def snapshot(self) -> TaxonomySnapshot:
        values: dict[Vocabulary, list[str]] = {v: [] for v in Vocabulary}
        districts: dict[str, str] = {}
        for entry in self.entries():
            values[entry.vocabulary].append(entry.name)
            if entry.vocabulary == Vocabulary.LOCATION and entry.district:
                districts[entry.name.lower()] = entry.district
        return TaxonomySnapshot(
            {k: tuple(sorted(v, key=str.lower)) for k, v in values.items()},
            districts,
        )

    def find(self, vocabulary: Vocabulary, value: str) -> TaxonomyEntry | None:
        needle = value.strip().lower()
        for doc in self.store.query(self.COLLECTION, "vocabulary", vocabulary.value):
            if str(doc.get("name", "")).lower() == needle:
                return self._to_entry(doc)
        return None

    def add(
        self,
        vocabulary: Vocabulary,
        value: str,
        *,
        created_by: str,
        district: str | None = None,
    ) -> TaxonomyEntry:
        entry = TaxonomyEntry(
            vocabulary=vocabulary,
            name=value.strip(),
            created_at=datetime.now(timezone.utc),
            created_by=created_by,
            district=district.strip() if vocabulary == Vocabulary.LOCATION and district else None,
        )
        self.store.create(self.COLLECTION, {
            "vocabulary": entry.vocabulary.value,
            "name": entry.name,
            "district": entry.district,
            "created_at": entry.created_at.isoformat(),
            "created_by": entry.created_by,
        })
        return entry

    def append(
        self,
        vocabulary: Vocabulary,
        value: str,
        *,
        created_by: str,
        district: str | None = None,
    ) -> TaxonomyEntry:
        """Admin-facing add: refuses blanks and case-insensitive duplicates.

        A location must name a district that already exists; the entry stores
        that district's canonical spelling.
        """
        name = (value or "").strip()
        if not name:
            raise ValidationError([f"a {vocabulary.value} name is required"], field=vocabulary.value)

        with self.store.transaction():
            existing = self.find(vocabulary, name)
            if existing is not None:
                raise ConflictError(
                    f"{vocabulary.value.capitalize()} '{existing.name}' already exists",
                    field=vocabulary.value,
                )
            parent: str | None = None
            if vocabulary == Vocabulary.LOCATION:
                known = self.find(Vocabulary.DISTRICT, district or "") if (district or "").strip() else None
                if known is None:
                    raise ValidationError(
                        [f"location '{name}' needs an existing district"],
                        field="district",
                    )
                parent = known.name
            return self.add(vocabulary, name, created_by=created_by, district=parent)

    def seed(self, values: dict[Vocabulary, Iterable[str]], *, created_by: str = "system") -> None:
        with self.store.transaction():
            for vocabulary, names in values.items():
                for name in names:
                    if self.find(vocabulary, name) is None:
                        self.add(vocabulary, name, created_by=created_by)

    @staticmethod
    def _to_entry(doc: dict) -> TaxonomyEntry:
        created_at = doc.get("created_at")
        return TaxonomyEntry(
            vocabulary=Vocabulary(doc["vocabulary"]),
            name=doc["name"],
            created_at=datetime.fromisoformat(created_at) if created_at else None,
            created_by=doc.get("created_by"),
            district=doc.get("district"),
        )
