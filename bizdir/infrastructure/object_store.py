"""Object store adapters for business images."""

from __future__ import annotations

import base64
import uuid
from typing import Any

import httpx

from bizdir.core.errors import StoreUnavailableError
from bizdir.domain.assets.entities import StoredObject
from bizdir.domain.assets.object_store import ObjectStore


class HttpObjectStore(ObjectStore):
    """Store images through the asset service in front of the image CDN.

    The service accepts a base64 data URI plus target folder and filename on
    ``POST /upload`` and deletes by public id on ``DELETE /delete``. A
    deletion of something that is already gone is reported as success.
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = 30.0,
    ) -> None:
        """Create an HTTP object store.

        Args:
            base_url: Base URL of the asset service (e.g. http://assets:5000/api/assets).
            client: Optional injected httpx client for testing / transport control.
            timeout: Per-request timeout in seconds.
        """
        self._base_url = base_url.rstrip('/')
        self._client = client
        self._timeout = timeout

    async def upload(self, data: bytes, path: str, content_type: str) -> StoredObject:
        folder, _, filename = path.rpartition('/')
        encoded = base64.b64encode(data).decode('ascii')
        body = {
            'image': f'data:{content_type};base64,{encoded}',
            'folder': folder,
            'filename': filename.rsplit('.', 1)[0],
        }
        resp = await self._send('POST', '/upload', body)
        resp.raise_for_status()

        payload = resp.json()
        result = payload.get('result') or payload
        return StoredObject(
            handle=result['public_id'],
            url=result.get('secure_url') or result['url'],
            size_bytes=result.get('bytes'),
            width=result.get('width'),
            height=result.get('height'),
            format=result.get('format'),
        )

    async def delete(self, handle: str) -> bool:
        resp = await self._send('DELETE', '/delete', {'public_id': handle})
        if resp.status_code == 404:
            return True
        if resp.is_error:
            return False
        payload = resp.json()
        return bool(payload.get('success'))

    async def health(self) -> dict[str, Any]:
        resp = await self._send('GET', '/health')
        resp.raise_for_status()
        return resp.json()

    async def _send(self, method: str, endpoint: str, body: dict[str, Any] | None = None) -> httpx.Response:
        url = f'{self._base_url}{endpoint}'
        try:
            if self._client is not None:
                return await self._client.request(method, url, json=body, timeout=self._timeout)

            async with httpx.AsyncClient() as client:
                return await client.request(method, url, json=body, timeout=self._timeout)
        except httpx.TransportError as exc:
            raise StoreUnavailableError(f'Asset service unreachable at {url}: {exc}') from exc


class InMemoryObjectStore(ObjectStore):
    """Keeps uploaded bytes in a dict keyed by handle."""

    def __init__(self, base_url: str = 'memory://assets') -> None:
        self._base_url = base_url.rstrip('/')
        self.objects: dict[str, tuple[bytes, str]] = {}

    async def upload(self, data: bytes, path: str, content_type: str) -> StoredObject:
        handle = path.rsplit('.', 1)[0] if '.' in path else path
        if handle in self.objects:
            handle = f'{handle}_{uuid.uuid4().hex[:6]}'
        self.objects[handle] = (data, content_type)
        return StoredObject(
            handle=handle,
            url=f'{self._base_url}/{path}',
            size_bytes=len(data),
            format=content_type.split('/')[-1],
        )

    async def delete(self, handle: str) -> bool:
        self.objects.pop(handle, None)
        return True
