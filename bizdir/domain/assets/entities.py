# ============================================================
# Asset entities
# ============================================================
from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel

ALLOWED_IMAGE_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
})
MAX_IMAGE_BYTES = 5 * 1024 * 1024
MAX_BUSINESS_IMAGES = 5
MAX_PRODUCTS = 20


@dataclass(frozen=True)
class ImageLimits:
    max_bytes: int = MAX_IMAGE_BYTES
    allowed_types: frozenset[str] = ALLOWED_IMAGE_TYPES
    max_business_images: int = MAX_BUSINESS_IMAGES
    max_products: int = MAX_PRODUCTS


@dataclass(frozen=True)
class ImageFile:
    """An image as submitted by an actor, before it reaches the object store."""
    filename: str
    content_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class StoredObject:
    """What the object store hands back for one upload."""
    handle: str
    url: str
    size_bytes: int | None = None
    width: int | None = None
    height: int | None = None
    format: str | None = None


class ImageAsset(BaseModel):
    """An uploaded image owned by exactly one record or product."""
    handle: str
    url: str
    original_filename: str | None = None
    size_bytes: int | None = None
    width: int | None = None
    height: int | None = None
    format: str | None = None


def image_file_errors(image: ImageFile, limits: ImageLimits) -> list[str]:
    """Check one file against the MIME allow-list and the byte ceiling."""
    errors: list[str] = []
    name = image.filename or "unnamed file"
    if image.content_type not in limits.allowed_types:
        allowed = ", ".join(sorted(limits.allowed_types))
        errors.append(f"{name}: file type {image.content_type or 'unknown'} is not allowed (allowed: {allowed})")
    if image.size == 0:
        errors.append(f"{name}: file is empty")
    elif image.size > limits.max_bytes:
        size_mb = image.size / 1024 / 1024
        max_mb = limits.max_bytes / 1024 / 1024
        errors.append(f"{name}: file size {size_mb:.2f}MB exceeds maximum size {max_mb:.2f}MB")
    return errors
