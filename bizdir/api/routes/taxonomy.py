from fastapi import APIRouter, Depends

from bizdir.api.core.container import get_document_store
from bizdir.api.core.errors import http_error
from bizdir.api.schemas import TaxonomyAddition
from bizdir.core.errors import DirectoryError
from bizdir.domain.taxonomy.repository import TaxonomyRepository
from bizdir.infrastructure.document_store import DocumentStore
from bizdir.observability.tracing import log_event, new_trace_id

router = APIRouter(prefix="/taxonomy", tags=["Taxonomy"])


def get_taxonomy_repo(
    store: DocumentStore = Depends(get_document_store),
) -> TaxonomyRepository:
    return TaxonomyRepository(store)


@router.get("")
async def get_taxonomy(
    repository: TaxonomyRepository = Depends(get_taxonomy_repo),
):
    """Current categories, locations and districts."""
    try:
        snapshot = repository.snapshot()
    except DirectoryError as exc:
        raise http_error(exc)
    return {vocabulary.value: list(values) for vocabulary, values in snapshot.values_by_vocabulary.items()}


@router.post("", status_code=201)
async def add_taxonomy_value(
    body: TaxonomyAddition,
    repository: TaxonomyRepository = Depends(get_taxonomy_repo),
):
    """Append a category, location or district.

    Values are never renamed or deleted here. A case-insensitive duplicate
    answers 409; a location needs an existing district.
    """
    try:
        entry = repository.append(body.vocabulary, body.value, created_by=body.actor, district=body.district)
    except DirectoryError as exc:
        raise http_error(exc)
    log_event(
        'taxonomy.created',
        trace_id=new_trace_id(),
        vocabulary=entry.vocabulary.value,
        value=entry.name,
        actor=body.actor,
    )
    return {
        "vocabulary": entry.vocabulary.value,
        "value": entry.name,
        "district": entry.district,
        "created_by": entry.created_by,
        "created_at": entry.created_at,
    }
