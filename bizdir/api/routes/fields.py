from fastapi import APIRouter

from bizdir.domain.fields.registry import FIELD_REGISTRY, SUBMISSION_FIELDS

router = APIRouter(prefix="/fields", tags=["Fields"])


@router.get("")
async def list_fields():
    """Every updatable field with its storage keys and renderer hint."""
    required = {f.name for f in SUBMISSION_FIELDS if f.required}
    return [
        {**descriptor.describe(), "required_on_add": name in required}
        for name, descriptor in FIELD_REGISTRY.items()
    ]
