# --------------------------------
# DI container
# --------------------------------
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from bizdir.config import settings
from bizdir.db.connection import get_db
from bizdir.domain.assets.coordinator import AssetLifecycleCoordinator
from bizdir.domain.assets.entities import ImageLimits
from bizdir.domain.assets.object_store import ObjectStore
from bizdir.domain.records.repository import BusinessRecordRepository
from bizdir.domain.records.service import BusinessRecordService
from bizdir.domain.requests.service import ChangeRequestService
from bizdir.infrastructure.document_store import DocumentStore, SqlDocumentStore
from bizdir.infrastructure.object_store import HttpObjectStore


class Container:
    def __init__(self, object_store: ObjectStore | None = None):
        self._limits = ImageLimits(
            max_bytes=settings.max_image_bytes,
            max_business_images=settings.max_business_images,
            max_products=settings.max_products,
        )
        self._object_store = object_store or HttpObjectStore(
            base_url=settings.asset_service_url,
            timeout=settings.store_timeout_seconds,
        )
        self._assets = AssetLifecycleCoordinator(
            self._object_store,
            folder=settings.asset_folder,
            limits=self._limits,
        )

    @property
    def assets(self) -> AssetLifecycleCoordinator:
        return self._assets

    def change_requests(self, store: DocumentStore) -> ChangeRequestService:
        return ChangeRequestService(
            store,
            self._assets,
            limits=self._limits,
            calling_code=settings.calling_code,
            prefix=settings.identifier_prefix,
        )

    def records(self, store: DocumentStore) -> BusinessRecordService:
        repository = BusinessRecordRepository(store, prefix=settings.identifier_prefix)
        return BusinessRecordService(store, self._assets, repository=repository)


@lru_cache
def get_container():
    return Container()


def get_document_store(db: Session = Depends(get_db)) -> DocumentStore:
    return SqlDocumentStore(db)


def get_request_service(
    store: DocumentStore = Depends(get_document_store),
    container: Container = Depends(get_container),
) -> ChangeRequestService:
    return container.change_requests(store)


def get_record_service(
    store: DocumentStore = Depends(get_document_store),
    container: Container = Depends(get_container),
) -> BusinessRecordService:
    return container.records(store)
