from fastapi import HTTPException

from bizdir.core.errors import (
    AssetDeletionError,
    ConflictError,
    DirectoryError,
    IdentifierOverflowError,
    InvalidTransitionError,
    NotFoundError,
    StoreUnavailableError,
    TaxonomyConfirmationRequired,
    UploadError,
    ValidationError,
)

STATUS_CODES: dict[type[DirectoryError], int] = {
    ValidationError: 422,
    NotFoundError: 404,
    TaxonomyConfirmationRequired: 409,
    InvalidTransitionError: 409,
    ConflictError: 409,
    UploadError: 502,
    AssetDeletionError: 502,
    StoreUnavailableError: 503,
    IdentifierOverflowError: 409,
}


def http_error(exc: DirectoryError) -> HTTPException:
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.to_dict())
    return HTTPException(status_code=400, detail=exc.to_dict())
