from __future__ import annotations

from datetime import datetime, timezone

from bizdir.domain.assets.coordinator import AssetLifecycleCoordinator
from bizdir.infrastructure.document_store import DocumentStore
from bizdir.observability.tracing import log_event, new_trace_id, traced

from .entities import AuditEntry, BusinessRecord, jsonable
from .repository import BusinessRecordRepository

IMAGES_FIELD = "Business Images"


class BusinessRecordService:
    """Read access to approved records and the one direct mutation: image detach."""

    def __init__(
        self,
        store: DocumentStore,
        assets: AssetLifecycleCoordinator,
        *,
        repository: BusinessRecordRepository | None = None,
    ) -> None:
        self._store = store
        self._assets = assets
        self._records = repository or BusinessRecordRepository(store)

    def get(self, identifier: str) -> BusinessRecord:
        return self._records.require(identifier)

    def list(self) -> list[BusinessRecord]:
        return self._records.list()

    async def remove_image(
        self,
        identifier: str,
        handle: str,
        *,
        actor: str,
        trace_id: str | None = None,
    ) -> BusinessRecord:
        """Delete one image from the object store, then drop its reference.

        The reference is only dropped after the store confirms the deletion;
        otherwise ``AssetDeletionError`` propagates and the record is untouched.
        """
        trace_id = trace_id or new_trace_id()

        with traced('record.remove_image', trace_id=trace_id, identifier=identifier, handle=handle):
            record = self._records.require(identifier)
            await self._assets.detach(record.images, handle, trace_id=trace_id)

            with self._store.transaction():
                fresh = self._records.require(identifier)
                remaining = [a for a in fresh.images if a.handle != handle]
                entry = AuditEntry(
                    field=IMAGES_FIELD,
                    old_value=jsonable(fresh.images),
                    new_value=jsonable(remaining),
                    timestamp=datetime.now(timezone.utc),
                    actor=actor,
                )
                self._records.update(fresh.id, {
                    "images": jsonable(remaining),
                    "history": jsonable([*fresh.history, entry]),
                })

        log_event('record.image_removed', trace_id=trace_id, identifier=identifier, handle=handle, actor=actor)
        return self._records.require(identifier)
