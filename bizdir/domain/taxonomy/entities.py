from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Mapping


class Vocabulary(str, Enum):
    CATEGORY = "category"
    LOCATION = "location"
    DISTRICT = "district"


@dataclass(frozen=True)
class TaxonomyEntry:
    vocabulary: Vocabulary
    name: str
    created_at: datetime | None = None
    created_by: str | None = None
    # locations only: the district the location sits in
    district: str | None = None


@dataclass(frozen=True)
class NewTaxonomyValue:
    vocabulary: Vocabulary
    value: str
    storage_key: str
    district: str | None = None

    def to_dict(self) -> dict[str, str]:
        data = {
            "vocabulary": self.vocabulary.value,
            "value": self.value,
            "storage_key": self.storage_key,
        }
        if self.district:
            data["district"] = self.district
        return data


@dataclass(frozen=True)
class TaxonomySnapshot:
    """Known vocabulary values at one point in time.

    Passed explicitly to validation and propagation instead of living in a
    module-level cache. ``location_districts`` maps a lower-cased location to
    the district it was recorded under; locations without one pair with any
    district.
    """
    values_by_vocabulary: Mapping[Vocabulary, tuple[str, ...]] = field(default_factory=dict)
    location_districts: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_values(
        cls,
        values: Mapping[Vocabulary | str, Iterable[str]],
        location_districts: Mapping[str, str] | None = None,
    ) -> "TaxonomySnapshot":
        return cls(
            {Vocabulary(k): tuple(v) for k, v in values.items()},
            {k.lower(): d for k, d in (location_districts or {}).items()},
        )

    def values(self, vocabulary: Vocabulary) -> tuple[str, ...]:
        return self.values_by_vocabulary.get(vocabulary, ())

    def find(self, vocabulary: Vocabulary, value: str) -> str | None:
        """Case-insensitive lookup returning the canonical spelling."""
        needle = value.strip().lower()
        for known in self.values(vocabulary):
            if known.lower() == needle:
                return known
        return None

    def district_of(self, location: str) -> str | None:
        return self.location_districts.get(location.strip().lower())

    def with_value(self, vocabulary: Vocabulary, value: str) -> "TaxonomySnapshot":
        merged = dict(self.values_by_vocabulary)
        merged[vocabulary] = (*self.values(vocabulary), value)
        return TaxonomySnapshot(merged, self.location_districts)
