from typing import Protocol

from .entities import StoredObject


class ObjectStore(Protocol):
    async def upload(self, data: bytes, path: str, content_type: str) -> StoredObject:
        """Store bytes under ``path`` and return a stable handle and URL"""
        ...

    async def delete(self, handle: str) -> bool:
        """Delete by handle. True only when the store confirms the deletion"""
        ...
