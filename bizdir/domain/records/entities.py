# ============================================================
# Business/domain entities
# ============================================================
from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, TypeAdapter, computed_field

from bizdir.domain.assets.entities import ImageAsset

WEEKDAYS = (
    "sunday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
)


_ANY = TypeAdapter(Any)


def jsonable(value: Any) -> Any:
    """Plain JSON types for a value that may hold models (audit and storage)."""
    return _ANY.dump_python(value, mode="json")


class RecordStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def derive_discount(old_price: float | None, new_price: float | None) -> int | None:
    """Rounded percentage saved, or None when there is no real discount.

    Only ``old > new > 0`` yields a value; a discount that rounds to zero is
    reported as absent, never as 0.
    """
    if old_price is None or new_price is None:
        return None
    if not (old_price > new_price > 0):
        return None
    old = Decimal(str(old_price))
    new = Decimal(str(new_price))
    percent = ((old - new) / old * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(percent) or None


class Product(BaseModel):
    """A product owned by exactly one business record."""
    name: str
    item_code: str | None = None
    old_price: float | None = None
    new_price: float | None = None
    in_stock: bool = True
    image: ImageAsset | None = None

    @computed_field
    @property
    def discount(self) -> int | None:
        return derive_discount(self.old_price, self.new_price)


class OperatingDay(BaseModel):
    is_open: bool = False
    open_time: str | None = None
    close_time: str | None = None


class AuditEntry(BaseModel):
    field: str
    old_value: Any = None
    new_value: Any = None
    timestamp: datetime
    actor: str
    request_id: str | None = None


class BusinessRecord(BaseModel):
    id: str | None = None
    identifier: str
    name: str
    address: str = ""
    about: str = ""
    category: str = ""
    location: str = ""
    district: str = ""
    contact: str = ""
    whatsapp: str | None = None
    email: str | None = None
    facebook: str | None = None
    website: str | None = None
    location_url: str | None = None
    always_open: bool = False
    operating_times: dict[str, OperatingDay] | None = None
    images: list[ImageAsset] = Field(default_factory=list)
    products: list[Product] = Field(default_factory=list)
    status: RecordStatus = RecordStatus.APPROVED
    history: list[AuditEntry] = Field(default_factory=list)
    created_at: datetime | None = None
    approved_at: datetime | None = None
    source_request_id: str | None = None

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "BusinessRecord":
        return cls.model_validate(doc)

    def applied_request(self, request_id: str) -> bool:
        """True when an audit entry for ``request_id`` is already recorded."""
        return any(entry.request_id == request_id for entry in self.history)

    def all_assets(self) -> list[ImageAsset]:
        assets = list(self.images)
        assets.extend(p.image for p in self.products if p.image is not None)
        return assets
