"""
A canonical field registry.

Maps the human-facing field name an end user picks when asking for a change
to everything needed to validate, normalize and store it. Adding a field
means adding one entry here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from bizdir.domain.taxonomy.entities import Vocabulary

from .schemas import (
    AboutInput,
    CategoryInput,
    DistrictInput,
    EmailInput,
    FieldInput,
    ImagesInput,
    LocationInput,
    NameInput,
    OperatingHoursInput,
    PhoneInput,
    ProductsInput,
    RequiredTextInput,
    UrlInput,
    ValidationContext,
)


class FieldKind(str, Enum):
    TEXT = "text"
    LONG_TEXT = "long_text"
    PHONE = "phone"
    EMAIL = "email"
    TAXONOMY = "taxonomy"
    LOCATION = "location"
    URL = "url"
    HOURS = "hours"
    IMAGES = "images"
    PRODUCTS = "products"


# Kinds whose normalized value is a batch of files that must be uploaded
# before anything is written to the record.
ASSET_KINDS = frozenset({FieldKind.IMAGES, FieldKind.PRODUCTS})


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    kind: FieldKind
    input_model: type[FieldInput]
    storage_keys: tuple[str, ...]
    renderer: str
    taxonomy: dict[str, Vocabulary] = field(default_factory=dict)

    def normalize(self, model: FieldInput, ctx: ValidationContext) -> dict[str, Any]:
        return dict(zip(self.storage_keys, model.storage_values(ctx)))

    def current_value(self, document: dict[str, Any]) -> Any:
        """The stored value(s) this field governs, shaped like an audit value."""
        if len(self.storage_keys) == 1:
            return document.get(self.storage_keys[0])
        return {key: document.get(key) for key in self.storage_keys}

    def audit_value(self, changes: dict[str, Any]) -> Any:
        if len(self.storage_keys) == 1:
            return changes.get(self.storage_keys[0])
        return {key: changes.get(key) for key in self.storage_keys}

    @property
    def carries_assets(self) -> bool:
        return self.kind in ASSET_KINDS

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "storage_keys": list(self.storage_keys),
            "renderer": self.renderer,
            "taxonomy": {k: v.value for k, v in self.taxonomy.items()},
        }


def _entry(
    name: str,
    kind: FieldKind,
    input_model: type[FieldInput],
    storage_keys: tuple[str, ...],
    renderer: str,
    taxonomy: dict[str, Vocabulary] | None = None,
) -> tuple[str, FieldDescriptor]:
    return name, FieldDescriptor(
        name=name,
        kind=kind,
        input_model=input_model,
        storage_keys=storage_keys,
        renderer=renderer,
        taxonomy=taxonomy or {},
    )


FIELD_REGISTRY: dict[str, FieldDescriptor] = dict([
    _entry("Business Name", FieldKind.TEXT, NameInput, ("name",), "text"),
    _entry("About/Description", FieldKind.LONG_TEXT, AboutInput, ("about",), "textarea"),
    _entry("Address", FieldKind.TEXT, RequiredTextInput, ("address",), "text"),
    _entry("Contact Number", FieldKind.PHONE, PhoneInput, ("contact",), "phone"),
    _entry("WhatsApp Number", FieldKind.PHONE, PhoneInput, ("whatsapp",), "phone"),
    _entry("Email", FieldKind.EMAIL, EmailInput, ("email",), "email"),
    _entry(
        "Category", FieldKind.TAXONOMY, CategoryInput, ("category",), "select",
        {"category": Vocabulary.CATEGORY},
    ),
    _entry(
        "Location", FieldKind.LOCATION, LocationInput, ("location", "district"), "location-select",
        {"location": Vocabulary.LOCATION, "district": Vocabulary.DISTRICT},
    ),
    _entry(
        "District", FieldKind.TAXONOMY, DistrictInput, ("district",), "select",
        {"district": Vocabulary.DISTRICT},
    ),
    _entry("Facebook Page", FieldKind.URL, UrlInput, ("facebook",), "url"),
    _entry("Website", FieldKind.URL, UrlInput, ("website",), "url"),
    _entry("Location URL", FieldKind.URL, UrlInput, ("location_url",), "url"),
    _entry(
        "Operating Hours", FieldKind.HOURS, OperatingHoursInput, ("always_open", "operating_times"),
        "weekly-hours",
    ),
    _entry("Business Images", FieldKind.IMAGES, ImagesInput, ("images",), "image-upload"),
    _entry("Products", FieldKind.PRODUCTS, ProductsInput, ("products",), "product-list"),
])


@dataclass(frozen=True)
class SubmissionField:
    name: str
    required: bool


# Fields that make up a full add-request, in the order they are checked and
# audited. District travels with Location.
SUBMISSION_FIELDS: tuple[SubmissionField, ...] = (
    SubmissionField("Business Name", True),
    SubmissionField("About/Description", True),
    SubmissionField("Address", True),
    SubmissionField("Contact Number", True),
    SubmissionField("WhatsApp Number", False),
    SubmissionField("Email", False),
    SubmissionField("Category", True),
    SubmissionField("Location", True),
    SubmissionField("Facebook Page", False),
    SubmissionField("Website", False),
    SubmissionField("Location URL", False),
    SubmissionField("Operating Hours", True),
)


def get_field(name: str) -> FieldDescriptor | None:
    return FIELD_REGISTRY.get(name)
