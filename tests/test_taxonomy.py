from __future__ import annotations

import pytest

from bizdir.core.errors import ConflictError, TaxonomyConfirmationRequired, ValidationError
from bizdir.domain.fields.registry import get_field
from bizdir.domain.taxonomy.entities import NewTaxonomyValue, Vocabulary
from bizdir.domain.taxonomy.propagator import TaxonomyPropagator, detect_new_taxonomy
from bizdir.domain.taxonomy.repository import TaxonomyRepository
from bizdir.infrastructure.document_store import InMemoryDocumentStore


def test_detect_is_case_insensitive_and_canonicalizes() -> None:
    result = detect_new_taxonomy('Category', 'hotels', ['Hotels', 'Restaurants'])

    assert result.is_new is False
    assert result.value == 'Hotels'


def test_detect_new_value_is_trimmed() -> None:
    result = detect_new_taxonomy('Category', '  Ayurveda Spa ', ['Hotels'])

    assert result.is_new is True
    assert result.value == 'Ayurveda Spa'


def test_detect_blank_candidate_is_not_new() -> None:
    assert detect_new_taxonomy('Category', '   ', []).is_new is False


def test_pending_entries_cover_every_vocabulary_of_the_field(store: InMemoryDocumentStore) -> None:
    # Arrange
    repository = TaxonomyRepository(store)
    propagator = TaxonomyPropagator(repository)

    # Act
    entries = propagator.pending_entries(
        get_field('Location'),
        {'location': 'Ella', 'district': 'badulla'},
        repository.snapshot(),
    )

    # Assert
    assert entries == [
        NewTaxonomyValue(Vocabulary.LOCATION, 'Ella', 'location', district='badulla'),
        NewTaxonomyValue(Vocabulary.DISTRICT, 'badulla', 'district'),
    ]


def test_confirmation_is_required_for_new_values() -> None:
    entries = [NewTaxonomyValue(Vocabulary.CATEGORY, 'Ayurveda Spa', 'category')]

    with pytest.raises(TaxonomyConfirmationRequired) as exc:
        TaxonomyPropagator.require_confirmation(entries, confirmed=False, request_id='req-1')

    assert exc.value.entries == [{'vocabulary': 'category', 'value': 'Ayurveda Spa', 'storage_key': 'category'}]
    assert exc.value.request_id == 'req-1'
    TaxonomyPropagator.require_confirmation(entries, confirmed=True)
    TaxonomyPropagator.require_confirmation([], confirmed=False)


def test_persist_creates_each_value_once(store: InMemoryDocumentStore) -> None:
    # Arrange
    repository = TaxonomyRepository(store)
    propagator = TaxonomyPropagator(repository)
    entries = [
        NewTaxonomyValue(Vocabulary.CATEGORY, 'Ayurveda Spa', 'category'),
        NewTaxonomyValue(Vocabulary.CATEGORY, 'ayurveda spa', 'category'),
    ]

    # Act
    first = propagator.persist(entries, actor='admin@lankabiz.lk')
    second = propagator.persist(entries, actor='admin@lankabiz.lk')

    # Assert
    assert [e.name for e in first] == ['Ayurveda Spa']
    assert second == []
    assert 'Ayurveda Spa' in repository.snapshot().values(Vocabulary.CATEGORY)
    assert repository.find(Vocabulary.CATEGORY, 'AYURVEDA SPA').created_by == 'admin@lankabiz.lk'


def test_persisted_location_remembers_its_district(store: InMemoryDocumentStore) -> None:
    # Arrange
    repository = TaxonomyRepository(store)
    propagator = TaxonomyPropagator(repository)
    entries = propagator.pending_entries(
        get_field('Location'),
        {'location': 'Ella', 'district': 'Badulla'},
        repository.snapshot(),
    )

    # Act
    propagator.persist(entries, actor='admin@lankabiz.lk')

    # Assert
    assert repository.find(Vocabulary.LOCATION, 'ella').district == 'Badulla'
    assert repository.snapshot().district_of('ELLA') == 'Badulla'


def test_append_refuses_case_insensitive_duplicates(store: InMemoryDocumentStore) -> None:
    # Arrange
    repository = TaxonomyRepository(store)

    # Act
    created = repository.append(Vocabulary.CATEGORY, '  Ayurveda Spa ', created_by='admin@lankabiz.lk')
    with pytest.raises(ConflictError) as exc:
        repository.append(Vocabulary.CATEGORY, 'AYURVEDA SPA', created_by='admin@lankabiz.lk')

    # Assert
    assert created.name == 'Ayurveda Spa'
    assert "'Ayurveda Spa' already exists" in exc.value.message
    names = [e.name for e in repository.entries() if e.vocabulary == Vocabulary.CATEGORY]
    assert names.count('Ayurveda Spa') == 1


def test_append_location_needs_a_known_district(store: InMemoryDocumentStore) -> None:
    repository = TaxonomyRepository(store)

    with pytest.raises(ValidationError):
        repository.append(Vocabulary.LOCATION, 'Ella', created_by='admin@lankabiz.lk', district='Badulla')
    with pytest.raises(ValidationError):
        repository.append(Vocabulary.LOCATION, 'Ella', created_by='admin@lankabiz.lk')

    entry = repository.append(Vocabulary.LOCATION, 'Peradeniya', created_by='admin@lankabiz.lk', district='kandy')

    assert entry.district == 'Kandy'
    assert repository.find(Vocabulary.LOCATION, 'Ella') is None


def test_append_refuses_blank_names(store: InMemoryDocumentStore) -> None:
    with pytest.raises(ValidationError):
        TaxonomyRepository(store).append(Vocabulary.DISTRICT, '   ', created_by='admin@lankabiz.lk')
