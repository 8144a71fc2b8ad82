"""Asset lifecycle coordination.

The object store has no multi-object transaction, so a batch upload is a
saga: every asset uploaded so far is tracked, and a failure on any later file
deletes them again before the error reaches the caller.

Deletion is the other half of the contract: a reference to an asset may only
be dropped once the store has confirmed the asset is gone.
"""

from __future__ import annotations

import re
import uuid
from typing import Sequence

from bizdir.core.errors import AssetDeletionError, NotFoundError, UploadError
from bizdir.observability.tracing import log_event, new_trace_id

from .entities import ImageAsset, ImageFile, ImageLimits, image_file_errors
from .object_store import ObjectStore

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9]")


class AssetLifecycleCoordinator:
    """Uploads and deletes image assets on behalf of records and requests."""

    def __init__(
        self,
        object_store: ObjectStore,
        *,
        folder: str = "business-images",
        limits: ImageLimits | None = None,
    ) -> None:
        self._store = object_store
        self._folder = folder.strip("/")
        self._limits = limits or ImageLimits()

    async def upload_batch(
        self,
        files: Sequence[ImageFile],
        *,
        owner: str,
        trace_id: str | None = None,
        request_id: str | None = None,
        field: str | None = None,
    ) -> list[ImageAsset]:
        """Upload every file or none of them.

        Files are validated and uploaded one at a time, in order.

        Raises:
            UploadError: Naming the first file that failed. Assets uploaded
                earlier in the batch have already been deleted; any that could
                not be deleted are listed in ``orphaned_handles``.
        """
        trace_id = trace_id or new_trace_id()
        uploaded: list[ImageAsset] = []

        for image in files:
            errors = image_file_errors(image, self._limits)
            if errors:
                orphaned = await self.discard(uploaded, trace_id=trace_id)
                raise UploadError(
                    "; ".join(errors),
                    filename=image.filename,
                    orphaned_handles=orphaned,
                    request_id=request_id,
                    field=field,
                )

            path = self._path_for(owner, image.filename)
            try:
                stored = await self._store.upload(image.data, path, image.content_type)
            except Exception as exc:  # noqa: BLE001 - saga boundary, compensated and re-raised
                orphaned = await self.discard(uploaded, trace_id=trace_id)
                raise UploadError(
                    f"{image.filename}: upload failed: {exc}",
                    filename=image.filename,
                    orphaned_handles=orphaned,
                    request_id=request_id,
                    field=field,
                ) from exc

            asset = ImageAsset(
                handle=stored.handle,
                url=stored.url,
                original_filename=image.filename,
                size_bytes=stored.size_bytes if stored.size_bytes is not None else image.size,
                width=stored.width,
                height=stored.height,
                format=stored.format or _extension(image.filename),
            )
            uploaded.append(asset)
            log_event('asset.uploaded', trace_id=trace_id, handle=asset.handle, owner=owner)

        return uploaded

    async def delete_asset(self, handle: str, *, trace_id: str | None = None) -> bool:
        trace_id = trace_id or new_trace_id()
        try:
            deleted = await self._store.delete(handle)
        except Exception as exc:  # noqa: BLE001 - reported as an unconfirmed deletion
            log_event('asset.delete_failed', trace_id=trace_id, handle=handle, error=str(exc))
            return False

        if deleted:
            log_event('asset.deleted', trace_id=trace_id, handle=handle)
        else:
            log_event('asset.delete_failed', trace_id=trace_id, handle=handle)
        return deleted

    async def discard(self, assets: Sequence[ImageAsset], *, trace_id: str | None = None) -> list[str]:
        """Compensating delete. Returns the handles that are still in the store."""
        trace_id = trace_id or new_trace_id()
        orphaned: list[str] = []
        for asset in assets:
            if await self.delete_asset(asset.handle, trace_id=trace_id):
                log_event('asset.compensated', trace_id=trace_id, handle=asset.handle)
            else:
                orphaned.append(asset.handle)
                log_event('asset.compensation_failed', trace_id=trace_id, handle=asset.handle)
        return orphaned

    async def detach(
        self,
        assets: Sequence[ImageAsset],
        handle: str,
        *,
        trace_id: str | None = None,
        request_id: str | None = None,
    ) -> list[ImageAsset]:
        """Delete one asset and return the reference list without it.

        Raises:
            NotFoundError: ``handle`` is not among ``assets``.
            AssetDeletionError: The store did not confirm the deletion. The
                caller keeps its references unchanged.
        """
        if not any(a.handle == handle for a in assets):
            raise NotFoundError(f"Image {handle} is not attached", request_id=request_id, field="images")

        if not await self.delete_asset(handle, trace_id=trace_id):
            raise AssetDeletionError(
                f"Object store did not confirm deletion of {handle}; reference retained",
                handle=handle,
                request_id=request_id,
                field="images",
            )
        return [a for a in assets if a.handle != handle]

    def _path_for(self, owner: str, filename: str) -> str:
        base, _, _ = (filename or "image").rpartition(".")
        base = _UNSAFE_CHARS.sub("_", base or filename or "image")
        ext = _extension(filename) or "jpg"
        return f"{self._folder}/{owner}_{uuid.uuid4().hex[:12]}_{base}.{ext}"


def _extension(filename: str | None) -> str | None:
    if not filename or "." not in filename:
        return None
    return filename.rsplit(".", 1)[-1].lower()
