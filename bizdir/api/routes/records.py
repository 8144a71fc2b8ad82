from fastapi import APIRouter, Depends

from bizdir.api.core.container import get_record_service
from bizdir.api.core.errors import http_error
from bizdir.core.errors import DirectoryError
from bizdir.domain.records.entities import BusinessRecord
from bizdir.domain.records.service import BusinessRecordService

router = APIRouter(prefix="/records", tags=["Records"])


@router.get("", response_model=list[BusinessRecord])
async def list_records(
    service: BusinessRecordService = Depends(get_record_service),
):
    try:
        return service.list()
    except DirectoryError as exc:
        raise http_error(exc)


@router.get("/{identifier}", response_model=BusinessRecord)
async def get_record(
    identifier: str,
    service: BusinessRecordService = Depends(get_record_service),
):
    """Get an approved business by its identifier (e.g. BIZ-01-0001)."""
    try:
        return service.get(identifier)
    except DirectoryError as exc:
        raise http_error(exc)


@router.delete("/{identifier}/images/{handle:path}", response_model=BusinessRecord)
async def remove_image(
    identifier: str,
    handle: str,
    actor: str,
    service: BusinessRecordService = Depends(get_record_service),
):
    """Delete one image; the record keeps it if the object store does not confirm."""
    try:
        return await service.remove_image(identifier, handle, actor=actor)
    except DirectoryError as exc:
        raise http_error(exc)
