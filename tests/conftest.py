from __future__ import annotations

import pytest

from bizdir.domain.assets.coordinator import AssetLifecycleCoordinator
from bizdir.domain.requests.service import ChangeRequestService
from bizdir.domain.taxonomy.repository import TaxonomyRepository
from bizdir.infrastructure.document_store import InMemoryDocumentStore

from tests.fixtures.flaky_object_store import FlakyObjectStore
from tests.fixtures.sample_data import TAXONOMY


@pytest.fixture
def anyio_backend() -> str:
    return 'asyncio'


@pytest.fixture
def store() -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()
    TaxonomyRepository(store).seed(TAXONOMY)
    return store


@pytest.fixture
def object_store() -> FlakyObjectStore:
    return FlakyObjectStore()


@pytest.fixture
def coordinator(object_store: FlakyObjectStore) -> AssetLifecycleCoordinator:
    return AssetLifecycleCoordinator(object_store, folder='business-images')


@pytest.fixture
def service(store: InMemoryDocumentStore, coordinator: AssetLifecycleCoordinator) -> ChangeRequestService:
    return ChangeRequestService(store, coordinator)
