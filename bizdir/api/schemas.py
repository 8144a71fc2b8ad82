from typing import Any, Optional

from pydantic import BaseModel, Base64Bytes, Field

from bizdir.domain.assets.entities import ImageFile
from bizdir.domain.requests.entities import RequestKind
from bizdir.domain.taxonomy.entities import Vocabulary


class ImageUpload(BaseModel):
    """An image sent inline as base64."""

    filename: str
    content_type: str = Field(description="MIME type, e.g. image/png")
    data: Base64Bytes

    def to_file(self) -> ImageFile:
        return ImageFile(filename=self.filename, content_type=self.content_type, data=self.data)


class AddSubmission(BaseModel):
    submitted_by: str
    payload: dict[str, Any] = Field(
        description="Business details keyed by storage key (name, address, about, category, ...)"
    )
    images: list[ImageUpload] = Field(default_factory=list)


class UpdateSubmission(BaseModel):
    identifier: str
    field_name: str = Field(description="Display name from GET /v1/fields, e.g. 'Contact Number'")
    value: Any = None
    submitted_by: str
    images: list[ImageUpload] = Field(default_factory=list)


class RemoveSubmission(BaseModel):
    identifier: str
    reason: str
    submitted_by: str


class ApproveBody(BaseModel):
    actor: str
    value: Any = Field(
        default=None,
        description="Authoritative value for an update; defaults to the submitted one",
    )
    overrides: Optional[dict[str, Any]] = Field(
        default=None,
        description="Payload keys replacing the submitted ones on an add",
    )
    images: list[ImageUpload] = Field(default_factory=list)
    confirm_new_taxonomy: bool = False


class RejectBody(BaseModel):
    actor: str
    reason: str = ""


class TaxonomyAddition(BaseModel):
    actor: str
    vocabulary: Vocabulary
    value: str
    district: Optional[str] = Field(
        default=None,
        description="Existing district a new location belongs to; required for locations",
    )


class RequestFilters(BaseModel):
    kind: Optional[RequestKind] = Field(
        default=None,
        description="Only list pending requests of this kind",
    )


def decode_product_images(value: Any) -> Any:
    """Turn inline product images into ``ImageFile`` objects; other values pass through."""
    products = value.get("products") if isinstance(value, dict) else value
    if not isinstance(products, list):
        return value

    decoded = []
    for item in products:
        image = item.get("image") if isinstance(item, dict) else None
        # a dict with a handle points at an asset that is already stored
        if isinstance(image, dict) and "handle" not in image:
            item = {**item, "image": ImageUpload.model_validate(image).to_file()}
        decoded.append(item)
    return {**value, "products": decoded} if isinstance(value, dict) else decoded
