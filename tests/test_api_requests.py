from __future__ import annotations

import base64

import httpx
import pytest
from httpx import ASGITransport

from bizdir.api.core.container import Container, get_container, get_document_store
from bizdir.app.main import app
from bizdir.infrastructure.document_store import InMemoryDocumentStore
from bizdir.infrastructure.object_store import InMemoryObjectStore

from tests.fixtures.sample_data import PNG_BYTES, add_payload


def _inline_png(filename: str = 'front.png') -> dict:
    return {
        'filename': filename,
        'content_type': 'image/png',
        'data': base64.b64encode(PNG_BYTES).decode('ascii'),
    }


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
async def client(anyio_backend, store: InMemoryDocumentStore, object_store: InMemoryObjectStore):
    container = Container(object_store=object_store)
    app.dependency_overrides[get_document_store] = lambda: store
    app.dependency_overrides[get_container] = lambda: container

    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url='http://test') as http:
        yield http

    app.dependency_overrides.clear()


async def _submit_add(client: httpx.AsyncClient, **payload) -> dict:
    resp = await client.post(
        '/v1/requests/add',
        json={
            'submitted_by': 'owner@lankabiz.lk',
            'payload': add_payload(**payload),
            'images': [_inline_png()],
        },
    )
    assert resp.status_code == 201
    return resp.json()


@pytest.mark.anyio
async def test_add_approve_then_read_record(client: httpx.AsyncClient) -> None:
    # Arrange
    request = await _submit_add(client)
    assert request['status'] == 'pending_review'

    # Act
    resp = await client.post(f"/v1/requests/{request['id']}/approve", json={'actor': 'admin@lankabiz.lk'})

    # Assert
    assert resp.status_code == 200
    outcome = resp.json()
    assert outcome['identifier'] == 'BIZ-01-0001'
    assert outcome['applied'] is True

    record = (await client.get('/v1/records/BIZ-01-0001')).json()
    assert record['contact'] == '+94771234567'
    assert len(record['images']) == 1

    pending = (await client.get('/v1/requests')).json()
    assert pending == []
    archived = (await client.get(f"/v1/requests/{request['id']}")).json()
    assert archived['status'] == 'approved'


@pytest.mark.anyio
async def test_update_request_round_trip(client: httpx.AsyncClient) -> None:
    # Arrange
    request = await _submit_add(client)
    await client.post(f"/v1/requests/{request['id']}/approve", json={'actor': 'admin@lankabiz.lk'})
    resp = await client.post(
        '/v1/requests/update',
        json={
            'identifier': 'BIZ-01-0001',
            'field_name': 'Address',
            'value': '44 Peradeniya Road, Kandy',
            'submitted_by': 'owner@lankabiz.lk',
        },
    )
    assert resp.status_code == 201

    # Act
    approved = await client.post(f"/v1/requests/{resp.json()['id']}/approve", json={'actor': 'admin@lankabiz.lk'})

    # Assert
    assert approved.status_code == 200
    assert approved.json()['audit'][0]['old_value'] == '12 Temple Road, Kandy'
    record = (await client.get('/v1/records/BIZ-01-0001')).json()
    assert record['address'] == '44 Peradeniya Road, Kandy'


@pytest.mark.anyio
async def test_invalid_approval_value_is_422(client: httpx.AsyncClient) -> None:
    request = await _submit_add(client, contact='0771234567')

    resp = await client.post(f"/v1/requests/{request['id']}/approve", json={'actor': 'admin@lankabiz.lk'})

    assert resp.status_code == 422
    detail = resp.json()['detail']
    assert detail['error'] == 'ValidationError'
    assert detail['request_id'] == request['id']
    assert any(e.startswith('Contact Number:') for e in detail['errors'])


@pytest.mark.anyio
async def test_new_category_answers_409_until_confirmed(client: httpx.AsyncClient) -> None:
    # Arrange
    request = await _submit_add(client, category='other', custom_category='Ayurveda Spa')
    url = f"/v1/requests/{request['id']}/approve"

    # Act
    refused = await client.post(url, json={'actor': 'admin@lankabiz.lk'})
    confirmed = await client.post(url, json={'actor': 'admin@lankabiz.lk', 'confirm_new_taxonomy': True})

    # Assert
    assert refused.status_code == 409
    assert refused.json()['detail']['entries'][0]['value'] == 'Ayurveda Spa'
    assert confirmed.status_code == 200
    taxonomy = (await client.get('/v1/taxonomy')).json()
    assert 'Ayurveda Spa' in taxonomy['category']


@pytest.mark.anyio
async def test_reject_needs_a_reason(client: httpx.AsyncClient, object_store: InMemoryObjectStore) -> None:
    # Arrange
    request = await _submit_add(client)
    url = f"/v1/requests/{request['id']}/reject"

    # Act
    blank = await client.post(url, json={'actor': 'admin@lankabiz.lk', 'reason': ' '})
    rejected = await client.post(url, json={'actor': 'admin@lankabiz.lk', 'reason': 'Duplicate listing'})

    # Assert
    assert blank.status_code == 422
    assert rejected.status_code == 200
    assert rejected.json()['status'] == 'rejected'
    assert object_store.objects == {}


@pytest.mark.anyio
async def test_decided_request_cannot_be_approved_again(client: httpx.AsyncClient) -> None:
    request = await _submit_add(client)
    url = f"/v1/requests/{request['id']}/approve"
    await client.post(url, json={'actor': 'admin@lankabiz.lk'})

    resp = await client.post(url, json={'actor': 'admin@lankabiz.lk'})

    assert resp.status_code == 409
    assert resp.json()['detail']['error'] == 'InvalidTransitionError'


@pytest.mark.anyio
async def test_unknown_request_is_404(client: httpx.AsyncClient) -> None:
    resp = await client.post('/v1/requests/does-not-exist/approve', json={'actor': 'admin@lankabiz.lk'})

    assert resp.status_code == 404
    assert resp.json()['detail']['request_id'] == 'does-not-exist'


@pytest.mark.anyio
async def test_remove_image_endpoint(client: httpx.AsyncClient, object_store: InMemoryObjectStore) -> None:
    # Arrange
    request = await _submit_add(client)
    await client.post(f"/v1/requests/{request['id']}/approve", json={'actor': 'admin@lankabiz.lk'})
    handle = request['staged_assets'][0]['handle']

    # Act
    resp = await client.delete(f'/v1/records/BIZ-01-0001/images/{handle}', params={'actor': 'admin@lankabiz.lk'})

    # Assert
    assert resp.status_code == 200
    assert resp.json()['images'] == []
    assert handle not in object_store.objects


@pytest.mark.anyio
async def test_pending_list_filters_by_kind(client: httpx.AsyncClient) -> None:
    await _submit_add(client)

    adds = (await client.get('/v1/requests', params={'kind': 'add'})).json()
    removes = (await client.get('/v1/requests', params={'kind': 'remove'})).json()

    assert len(adds) == 1
    assert removes == []


@pytest.mark.anyio
async def test_field_registry_is_published(client: httpx.AsyncClient) -> None:
    resp = await client.get('/v1/fields')

    fields = {f['name']: f for f in resp.json()}
    assert fields['Location']['storage_keys'] == ['location', 'district']
    assert fields['Location']['taxonomy'] == {'location': 'location', 'district': 'district'}
    assert fields['Contact Number']['required_on_add'] is True
    assert fields['Products']['required_on_add'] is False


@pytest.mark.anyio
async def test_taxonomy_is_published(client: httpx.AsyncClient) -> None:
    resp = await client.get('/v1/taxonomy')

    assert resp.json()['category'] == ['Hotels', 'Restaurants', 'Spice Shops']


@pytest.mark.anyio
async def test_products_update_with_inline_image_stores_the_decoded_png(
    client: httpx.AsyncClient,
    object_store: InMemoryObjectStore,
) -> None:
    # Arrange
    request = await _submit_add(client)
    await client.post(f"/v1/requests/{request['id']}/approve", json={'actor': 'admin@lankabiz.lk'})
    submitted = await client.post(
        '/v1/requests/update',
        json={
            'identifier': 'BIZ-01-0001',
            'field_name': 'Products',
            'value': {'products': [{'name': 'Cinnamon 100g', 'newPrice': 850, 'image': _inline_png('cin.png')}]},
            'submitted_by': 'owner@lankabiz.lk',
        },
    )
    assert submitted.status_code == 201

    # Act
    resp = await client.post(f"/v1/requests/{submitted.json()['id']}/approve", json={'actor': 'admin@lankabiz.lk'})

    # Assert
    assert resp.status_code == 200
    record = (await client.get('/v1/records/BIZ-01-0001')).json()
    handle = record['products'][0]['image']['handle']
    assert object_store.objects[handle] == (PNG_BYTES, 'image/png')


@pytest.mark.anyio
async def test_products_update_with_malformed_inline_image_is_422(client: httpx.AsyncClient) -> None:
    await _submit_add(client)

    resp = await client.post(
        '/v1/requests/update',
        json={
            'identifier': 'BIZ-01-0001',
            'field_name': 'Products',
            'value': [{'name': 'Cinnamon 100g', 'image': {'filename': 'cin.png', 'data': 'not base64!'}}],
            'submitted_by': 'owner@lankabiz.lk',
        },
    )

    assert resp.status_code == 422


@pytest.mark.anyio
async def test_add_with_disallowed_image_type_is_422(
    client: httpx.AsyncClient,
    object_store: InMemoryObjectStore,
) -> None:
    # Act
    resp = await client.post(
        '/v1/requests/add',
        json={
            'submitted_by': 'owner@lankabiz.lk',
            'payload': add_payload(),
            'images': [{**_inline_png('menu.pdf'), 'content_type': 'application/pdf'}],
        },
    )

    # Assert
    assert resp.status_code == 422
    detail = resp.json()['detail']
    assert detail['error'] == 'ValidationError'
    assert 'application/pdf' in detail['errors'][0]
    assert object_store.objects == {}


@pytest.mark.anyio
async def test_taxonomy_values_are_appended_once(client: httpx.AsyncClient) -> None:
    # Act
    created = await client.post(
        '/v1/taxonomy',
        json={'actor': 'admin@lankabiz.lk', 'vocabulary': 'category', 'value': 'Ayurveda Spa'},
    )
    duplicate = await client.post(
        '/v1/taxonomy',
        json={'actor': 'admin@lankabiz.lk', 'vocabulary': 'category', 'value': 'ayurveda SPA'},
    )

    # Assert
    assert created.status_code == 201
    assert created.json()['value'] == 'Ayurveda Spa'
    assert duplicate.status_code == 409
    categories = (await client.get('/v1/taxonomy')).json()['category']
    assert categories.count('Ayurveda Spa') == 1


@pytest.mark.anyio
async def test_taxonomy_location_needs_existing_district(client: httpx.AsyncClient) -> None:
    orphan = await client.post(
        '/v1/taxonomy',
        json={'actor': 'admin@lankabiz.lk', 'vocabulary': 'location', 'value': 'Ella', 'district': 'Badulla'},
    )
    placed = await client.post(
        '/v1/taxonomy',
        json={'actor': 'admin@lankabiz.lk', 'vocabulary': 'location', 'value': 'Peradeniya', 'district': 'kandy'},
    )

    assert orphan.status_code == 422
    assert placed.status_code == 201
    assert placed.json()['district'] == 'Kandy'
    assert 'Peradeniya' in (await client.get('/v1/taxonomy')).json()['location']
