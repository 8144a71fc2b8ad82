"""Input schemas for admin-supplied field values.

Pydantic handles the shape of each input (types, required keys, trimming).
Rules that need the validation context (taxonomy membership, image limits) or
that can produce several messages at once live in ``check``.

Each schema also knows how to turn itself into the values written to the
record, in the order of the descriptor's storage keys.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Annotated, Any, ClassVar

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, EmailStr, Field, field_validator

from bizdir.domain.assets.entities import ImageAsset, ImageFile, ImageLimits, image_file_errors
from bizdir.domain.records.entities import WEEKDAYS, derive_discount
from bizdir.domain.taxonomy.entities import TaxonomySnapshot, Vocabulary

OTHER = "other"
DEFAULT_CALLING_CODE = "+94"

_PHONE = re.compile(r"^\d{9}$")
_URL = re.compile(r"^https?://.+")
_TIME = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


Trimmed = Annotated[str, BeforeValidator(_strip)]


@dataclass(frozen=True)
class ValidationContext:
    taxonomy: TaxonomySnapshot = field(default_factory=TaxonomySnapshot)
    limits: ImageLimits = field(default_factory=ImageLimits)
    calling_code: str = DEFAULT_CALLING_CODE


class FieldInput(BaseModel):
    """Base class for one field's raw admin input."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    def check(self, ctx: ValidationContext) -> list[str]:
        return []

    def storage_values(self, ctx: ValidationContext) -> tuple[Any, ...]:
        raise NotImplementedError

    @classmethod
    def raw_from_payload(cls, keys: tuple[str, ...], payload: dict[str, Any]) -> dict[str, Any] | None:
        """Pull this field's raw input out of a full submission payload."""
        value = payload.get(keys[0])
        if value in (None, ""):
            return None
        return {"value": value}


class RequiredTextInput(FieldInput):
    value: Trimmed

    @field_validator("value")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v:
            raise ValueError("is required")
        return v

    def storage_values(self, ctx: ValidationContext) -> tuple[Any, ...]:
        return (self.value,)


class NameInput(RequiredTextInput):
    @field_validator("value")
    @classmethod
    def _length(cls, v: str) -> str:
        if not 2 <= len(v) <= 100:
            raise ValueError("must be between 2 and 100 characters")
        return v


class AboutInput(RequiredTextInput):
    max_words: ClassVar[int] = 200

    @field_validator("value")
    @classmethod
    def _word_count(cls, v: str) -> str:
        words = len(v.split())
        if words > cls.max_words:
            raise ValueError(f"must be at most {cls.max_words} words (got {words})")
        return v


class PhoneInput(FieldInput):
    """Nine local digits. The calling code is added here, never by the submitter."""

    value: Trimmed

    @field_validator("value")
    @classmethod
    def _digits(cls, v: str) -> str:
        if not v:
            raise ValueError("is required")
        if not _PHONE.match(v):
            raise ValueError("must be exactly 9 digits, without the country code")
        return v

    def storage_values(self, ctx: ValidationContext) -> tuple[Any, ...]:
        return (f"{ctx.calling_code}{self.value}",)


class EmailInput(FieldInput):
    value: Annotated[EmailStr, BeforeValidator(_strip)]

    def storage_values(self, ctx: ValidationContext) -> tuple[Any, ...]:
        return (str(self.value).lower(),)


class UrlInput(FieldInput):
    value: Trimmed

    @field_validator("value")
    @classmethod
    def _scheme(cls, v: str) -> str:
        if not v:
            raise ValueError("is required")
        if not _URL.match(v):
            raise ValueError("must start with http:// or https://")
        return v

    def storage_values(self, ctx: ValidationContext) -> tuple[Any, ...]:
        return (self.value,)


class TaxonomyChoiceInput(FieldInput):
    """A value from the current vocabulary, or ``other`` with a custom value."""

    vocabulary: ClassVar[Vocabulary] = Vocabulary.CATEGORY

    value: Trimmed
    custom: Trimmed | None = None

    @field_validator("value")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v:
            raise ValueError("is required")
        return v

    @property
    def resolved(self) -> str:
        if self.value.lower() == OTHER:
            return self.custom or ""
        return self.value

    def check(self, ctx: ValidationContext) -> list[str]:
        if self.value.lower() == OTHER:
            if not self.custom:
                return [f"a custom {self.vocabulary.value} is required when '{OTHER}' is selected"]
            return []
        if ctx.taxonomy.find(self.vocabulary, self.value) is None:
            return [
                f"'{self.value}' is not a known {self.vocabulary.value}; "
                f"choose one from the list or select '{OTHER}'"
            ]
        return []

    def storage_values(self, ctx: ValidationContext) -> tuple[Any, ...]:
        known = ctx.taxonomy.find(self.vocabulary, self.resolved)
        return (known or self.resolved,)

    @classmethod
    def raw_from_payload(cls, keys: tuple[str, ...], payload: dict[str, Any]) -> dict[str, Any] | None:
        raw = super().raw_from_payload(keys, payload)
        if raw is not None and payload.get(f"custom_{keys[0]}"):
            raw["custom"] = payload[f"custom_{keys[0]}"]
        return raw


class CategoryInput(TaxonomyChoiceInput):
    vocabulary: ClassVar[Vocabulary] = Vocabulary.CATEGORY


class LocationInput(TaxonomyChoiceInput):
    """Location plus the district it belongs to; written as two keys."""

    vocabulary: ClassVar[Vocabulary] = Vocabulary.LOCATION

    district: Trimmed

    @field_validator("district")
    @classmethod
    def _district(cls, v: str) -> str:
        if not v:
            raise ValueError("is required")
        return v

    def check(self, ctx: ValidationContext) -> list[str]:
        errors = super().check(ctx)
        if errors or not self.resolved:
            return errors
        location = ctx.taxonomy.find(Vocabulary.LOCATION, self.resolved)
        recorded = ctx.taxonomy.district_of(self.resolved)
        if location is not None and recorded is not None and recorded.lower() != self.district.lower():
            errors.append(f"'{location}' is in district '{recorded}', not '{self.district}'")
        return errors

    def storage_values(self, ctx: ValidationContext) -> tuple[Any, ...]:
        location = ctx.taxonomy.find(Vocabulary.LOCATION, self.resolved) or self.resolved
        district = ctx.taxonomy.find(Vocabulary.DISTRICT, self.district) or self.district
        return location, district

    @classmethod
    def raw_from_payload(cls, keys: tuple[str, ...], payload: dict[str, Any]) -> dict[str, Any] | None:
        raw = super().raw_from_payload(keys, payload)
        if raw is None:
            return None
        raw["district"] = payload.get("district")
        return raw


class DistrictInput(RequiredTextInput):
    def storage_values(self, ctx: ValidationContext) -> tuple[Any, ...]:
        return (ctx.taxonomy.find(Vocabulary.DISTRICT, self.value) or self.value,)


class OperatingHoursInput(FieldInput):
    """Either always open, or per-weekday open/close times.

    Per-day data is only inspected when ``always_open`` is false, so an
    always-open submission passes whatever the day entries contain.
    """

    always_open: bool = Field(default=False, validation_alias=AliasChoices("always_open", "alwaysOpen"))
    operating_times: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("operating_times", "operatingTimes", "operating_hours", "operatingHours"),
    )

    def check(self, ctx: ValidationContext) -> list[str]:
        if self.always_open:
            return []

        days = self._days()
        errors: list[str] = []
        unknown = [d for d in (self.operating_times or {}) if d.lower() not in WEEKDAYS]
        if unknown:
            errors.append(f"unknown weekday(s): {', '.join(sorted(unknown))}")

        open_days = {d: t for d, t in days.items() if t["is_open"]}
        if not open_days:
            errors.append("select at least one operating day or mark as always open")

        for day, times in open_days.items():
            open_time, close_time = times["open_time"], times["close_time"]
            if not open_time or not close_time:
                errors.append(f"set both open and close times for {day}")
                continue
            if not _TIME.match(open_time) or not _TIME.match(close_time):
                errors.append(f"times for {day} must use HH:MM (24h)")
                continue
            # zero-padded HH:MM compares correctly as text
            if close_time <= open_time:
                errors.append(f"close time must be after open time for {day}")
        return errors

    def storage_values(self, ctx: ValidationContext) -> tuple[Any, ...]:
        if self.always_open:
            return True, None
        return False, self._days()

    def _days(self) -> dict[str, dict[str, Any]]:
        days: dict[str, dict[str, Any]] = {}
        raw = {str(k).lower(): v for k, v in (self.operating_times or {}).items()}
        for day in WEEKDAYS:
            entry = raw.get(day) or {}
            if not isinstance(entry, dict):
                entry = {}
            days[day] = {
                "is_open": bool(entry.get("is_open", entry.get("isOpen", False))),
                "open_time": _strip(entry.get("open_time", entry.get("openTime"))) or None,
                "close_time": _strip(entry.get("close_time", entry.get("closeTime"))) or None,
            }
        return days

    @classmethod
    def raw_from_payload(cls, keys: tuple[str, ...], payload: dict[str, Any]) -> dict[str, Any] | None:
        if "always_open" not in payload and "operating_times" not in payload:
            return None
        return {
            "always_open": payload.get("always_open", False),
            "operating_times": payload.get("operating_times"),
        }


class ImagesInput(FieldInput):
    files: list[ImageFile] = Field(default_factory=list)
    existing_count: int = Field(default=0, ge=0)

    def check(self, ctx: ValidationContext) -> list[str]:
        if not self.files:
            return ["at least one image is required"]
        errors: list[str] = []
        total = self.existing_count + len(self.files)
        if total > ctx.limits.max_business_images:
            errors.append(
                f"maximum {ctx.limits.max_business_images} images allowed "
                f"({self.existing_count} existing + {len(self.files)} new)"
            )
        for image in self.files:
            errors.extend(image_file_errors(image, ctx.limits))
        return errors

    def storage_values(self, ctx: ValidationContext) -> tuple[Any, ...]:
        return (list(self.files),)

    @classmethod
    def raw_from_payload(cls, keys: tuple[str, ...], payload: dict[str, Any]) -> dict[str, Any] | None:
        return None


class ProductInput(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: Trimmed
    item_code: Trimmed | None = Field(default=None, validation_alias=AliasChoices("item_code", "itemCode"))
    old_price: float | None = Field(default=None, ge=0, validation_alias=AliasChoices("old_price", "oldPrice"))
    new_price: float | None = Field(default=None, ge=0, validation_alias=AliasChoices("new_price", "newPrice"))
    in_stock: bool = Field(default=True, validation_alias=AliasChoices("in_stock", "inStock"))
    image: ImageFile | ImageAsset | None = None

    @property
    def discount(self) -> int | None:
        return derive_discount(self.old_price, self.new_price)


class ProductsInput(FieldInput):
    products: list[ProductInput] = Field(default_factory=list)
    existing_count: int = Field(default=0, ge=0)

    def check(self, ctx: ValidationContext) -> list[str]:
        if not self.products:
            return ["at least one product is required"]
        errors: list[str] = []
        total = self.existing_count + len(self.products)
        if total > ctx.limits.max_products:
            errors.append(f"maximum {ctx.limits.max_products} products allowed")

        for index, product in enumerate(self.products, start=1):
            label = f"product {index}"
            if not 2 <= len(product.name) <= 100:
                errors.append(f"{label}: name must be between 2 and 100 characters")
            if (
                product.old_price is not None
                and product.new_price is not None
                and product.old_price <= product.new_price
            ):
                errors.append(f"{label}: old price must be greater than new price")
            if product.image is None:
                errors.append(f"{label}: product image is required")
            elif isinstance(product.image, ImageFile):
                # staged assets were checked when they were uploaded
                errors.extend(f"{label}: {e}" for e in image_file_errors(product.image, ctx.limits))
        return errors

    def storage_values(self, ctx: ValidationContext) -> tuple[Any, ...]:
        return (list(self.products),)

    @classmethod
    def raw_from_payload(cls, keys: tuple[str, ...], payload: dict[str, Any]) -> dict[str, Any] | None:
        return None
