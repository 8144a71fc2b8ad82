# ---------------------------------
# TYPED EXCEPTIONS
# ---------------------------------
from __future__ import annotations

from typing import Any


class DirectoryError(Exception):
    """Base error for the change-request engine.

    Carries enough context (request id, field name) for an operator to
    re-drive the same request.
    """

    def __init__(
        self,
        message: str,
        *,
        request_id: str | None = None,
        field: str | None = None,
    ) -> None:
        self.message = message
        self.request_id = request_id
        self.field = field
        super().__init__(self._format())

    def _format(self) -> str:
        context = []
        if self.request_id:
            context.append(f"request={self.request_id}")
        if self.field:
            context.append(f"field={self.field}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "request_id": self.request_id,
            "field": self.field,
        }


class ValidationError(DirectoryError):
    """Field-scoped, recoverable. The request stays pending."""

    def __init__(
        self,
        errors: list[str],
        *,
        request_id: str | None = None,
        field: str | None = None,
    ) -> None:
        self.errors = list(errors)
        super().__init__(
            "; ".join(self.errors) or "Validation failed",
            request_id=request_id,
            field=field,
        )

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "errors": self.errors}


class NotFoundError(DirectoryError):
    """Target record or request does not exist."""
    pass


class UploadError(DirectoryError):
    """Partial or full upload batch failure, raised after compensation."""

    def __init__(
        self,
        message: str,
        *,
        filename: str | None = None,
        orphaned_handles: list[str] | None = None,
        request_id: str | None = None,
        field: str | None = None,
    ) -> None:
        self.filename = filename
        self.orphaned_handles = list(orphaned_handles or [])
        super().__init__(message, request_id=request_id, field=field)

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "filename": self.filename,
            "orphaned_handles": self.orphaned_handles,
        }


class AssetDeletionError(DirectoryError):
    """The object store did not confirm a deletion; the reference is kept."""

    def __init__(self, message: str, *, handle: str, **kwargs: Any) -> None:
        self.handle = handle
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "handle": self.handle}


class StoreUnavailableError(DirectoryError):
    """Transient infrastructure failure. Callers may retry the whole operation."""
    pass


class TaxonomyConfirmationRequired(DirectoryError):
    """New taxonomy values need explicit admin confirmation before approval."""

    def __init__(self, entries: list[dict[str, str]], **kwargs: Any) -> None:
        self.entries = list(entries)
        names = ", ".join(f"{e['vocabulary']}={e['value']!r}" for e in self.entries)
        super().__init__(f"New taxonomy entries need confirmation: {names}", **kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "entries": self.entries}


class InvalidTransitionError(DirectoryError):
    """Raised when a request is moved out of a terminal state."""
    pass


class ConflictError(DirectoryError):
    """A unique constraint was violated in the record store."""
    pass


class IdentifierOverflowError(DirectoryError):
    """The identifier group component ran out of its two digits."""
    pass
