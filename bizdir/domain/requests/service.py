"""Change-request workflow.

Submissions land in the pending set. An admin then approves (optionally
supplying the authoritative value) or rejects each one. Approval re-validates
the value against the field registry, asks for confirmation before inventing
new taxonomy values, uploads any images first and then applies the record
mutation, its audit entry and the request's terminal transition in a single
store transaction.

A store or upload failure at any step leaves the request pending, so the
same approval can simply be retried. Retried approvals are idempotent:
audit entries and created records carry the request id, and a request whose
effect is already on the record is only finalized.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Sequence

from bizdir.core.errors import AssetDeletionError, ConflictError, ValidationError
from bizdir.domain.assets.coordinator import AssetLifecycleCoordinator
from bizdir.domain.assets.entities import ImageAsset, ImageFile, ImageLimits, image_file_errors
from bizdir.domain.fields.registry import FieldDescriptor, FieldKind, get_field
from bizdir.domain.fields.schemas import DEFAULT_CALLING_CODE
from bizdir.domain.fields.validation import ValidationEngine, ValidationResult
from bizdir.domain.identifiers import DEFAULT_PREFIX, next_identifier
from bizdir.domain.records.entities import AuditEntry, BusinessRecord, Product, RecordStatus, jsonable
from bizdir.domain.records.repository import BusinessRecordRepository
from bizdir.domain.taxonomy.entities import NewTaxonomyValue
from bizdir.domain.taxonomy.propagator import TaxonomyPropagator
from bizdir.domain.taxonomy.repository import TaxonomyRepository
from bizdir.infrastructure.document_store import DocumentStore
from bizdir.observability.tracing import log_event, new_trace_id, traced

from .entities import ApprovalOutcome, ChangeRequest, RequestKind, RequestStatus
from .repository import ChangeRequestRepository
from .state_machine import ensure_transition

IMAGES_FIELD = "Business Images"
SYSTEM_ACTOR = "system"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ChangeRequestService:
    def __init__(
        self,
        store: DocumentStore,
        assets: AssetLifecycleCoordinator,
        *,
        limits: ImageLimits | None = None,
        calling_code: str = DEFAULT_CALLING_CODE,
        prefix: str = DEFAULT_PREFIX,
        max_allocation_attempts: int = 3,
    ) -> None:
        self._store = store
        self._assets = assets
        self._limits = limits or ImageLimits()
        self._calling_code = calling_code
        self._prefix = prefix
        self._max_attempts = max_allocation_attempts

        self.records = BusinessRecordRepository(store, prefix=prefix)
        self.requests = ChangeRequestRepository(store)
        self.taxonomy = TaxonomyRepository(store)
        self._propagator = TaxonomyPropagator(self.taxonomy)

    def engine(self) -> ValidationEngine:
        """A validation engine bound to the taxonomy as it is right now."""
        return ValidationEngine(
            self.taxonomy.snapshot(),
            limits=self._limits,
            calling_code=self._calling_code,
        )

    def get_request(self, request_id: str) -> ChangeRequest:
        return self.requests.require(request_id)

    def list_pending(self, kind: RequestKind | None = None) -> list[ChangeRequest]:
        return self.requests.list_pending(kind)

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    async def submit_add(
        self,
        payload: dict[str, Any],
        *,
        submitted_by: str,
        images: Sequence[ImageFile] = (),
        trace_id: str | None = None,
    ) -> ChangeRequest:
        trace_id = trace_id or new_trace_id()
        if not str(payload.get("name") or "").strip():
            raise ValidationError(["Business Name: is required"], field="Business Name")
        self._check_image_count(images)
        self._check_files(images, field=IMAGES_FIELD)

        request_id = self.requests.new_id()
        staged = await self._stage(images, request_id=request_id, trace_id=trace_id)
        request = ChangeRequest(
            id=request_id,
            kind=RequestKind.ADD,
            payload=dict(payload),
            staged_assets=staged,
            submitted_by=submitted_by,
        )
        return await self._store_submission(request, trace_id=trace_id)

    async def submit_update(
        self,
        identifier: str,
        field_name: str,
        value: Any = None,
        *,
        submitted_by: str,
        images: Sequence[ImageFile] = (),
        trace_id: str | None = None,
    ) -> ChangeRequest:
        trace_id = trace_id or new_trace_id()
        descriptor = get_field(field_name)
        if descriptor is None:
            raise ValidationError([f"Unknown field: {field_name}"], field=field_name)
        if images and descriptor.kind != FieldKind.IMAGES:
            raise ValidationError([f"{field_name}: does not accept image files"], field=field_name)
        if not images and value in (None, "") and descriptor.kind != FieldKind.PRODUCTS:
            raise ValidationError([f"{field_name}: a requested value is required"], field=field_name)

        product_files: list[ImageFile] = []
        if descriptor.kind == FieldKind.PRODUCTS:
            product_items, product_files = self._product_uploads(value, field=descriptor.name)

        record = self.records.require(identifier)
        self._check_image_count(images, existing=len(record.images))
        self._check_files([*images, *product_files], field=descriptor.name)

        request_id = self.requests.new_id()
        staged = await self._stage(
            [*images, *product_files],
            request_id=request_id,
            trace_id=trace_id,
            field=descriptor.name,
        )
        if product_files:
            value = self._with_staged_images(product_items, staged)
        request = ChangeRequest(
            id=request_id,
            kind=RequestKind.UPDATE_FIELD,
            target_identifier=record.identifier,
            field_name=descriptor.name,
            submitted_value=value,
            staged_assets=staged,
            submitted_by=submitted_by,
        )
        return await self._store_submission(request, trace_id=trace_id)

    async def submit_remove(
        self,
        identifier: str,
        *,
        reason: str,
        submitted_by: str,
        trace_id: str | None = None,
    ) -> ChangeRequest:
        trace_id = trace_id or new_trace_id()
        if not reason or not reason.strip():
            raise ValidationError(["A reason for removal is required"], field="reason")
        record = self.records.require(identifier)
        request = ChangeRequest(
            kind=RequestKind.REMOVE,
            target_identifier=record.identifier,
            reason=reason.strip(),
            submitted_by=submitted_by,
        )
        return await self._store_submission(request, trace_id=trace_id)

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    async def approve(
        self,
        request_id: str,
        *,
        actor: str,
        value: Any = None,
        overrides: dict[str, Any] | None = None,
        images: Sequence[ImageFile] | None = None,
        confirm_new_taxonomy: bool = False,
        trace_id: str | None = None,
    ) -> ApprovalOutcome:
        """Approve a pending request.

        Args:
            actor: Admin performing the approval; recorded in the audit entry.
            value: Authoritative value for an update; defaults to what the
                submitter asked for.
            overrides: Payload keys replacing the submitted ones on an add.
            images: Files to upload with the approval (images updates and adds).
            confirm_new_taxonomy: Allow creation of unseen category, location
                or district values.

        Raises:
            ValidationError: The value is invalid. The request stays pending.
            TaxonomyConfirmationRequired: New taxonomy values need confirming.
            UploadError: An image failed; the batch has been compensated.
            InvalidTransitionError: The request is already approved or rejected.
        """
        trace_id = trace_id or new_trace_id()

        request = self.requests.require(request_id)
        ensure_transition(request.status, RequestStatus.APPROVED, request_id=request_id)
        log_event(
            'request.approve.start',
            trace_id=trace_id,
            request_id=request_id,
            kind=request.kind.value,
            actor=actor,
        )

        with traced('request.approve', trace_id=trace_id, request_id=request_id, kind=request.kind.value):
            if request.kind == RequestKind.ADD:
                outcome = await self._approve_add(
                    request,
                    actor=actor,
                    overrides=overrides,
                    images=images,
                    confirm=confirm_new_taxonomy,
                    trace_id=trace_id,
                )
            elif request.kind == RequestKind.UPDATE_FIELD:
                outcome = await self._approve_update(
                    request,
                    actor=actor,
                    value=value,
                    images=images,
                    confirm=confirm_new_taxonomy,
                    trace_id=trace_id,
                )
            else:
                outcome = await self._approve_remove(request, actor=actor, trace_id=trace_id)

        if outcome.status == RequestStatus.APPROVED and outcome.applied:
            log_event(
                'request.approved',
                trace_id=trace_id,
                request_id=request_id,
                kind=request.kind.value,
                identifier=outcome.identifier,
                actor=actor,
            )
        return outcome

    async def reject(
        self,
        request_id: str,
        *,
        actor: str,
        reason: str,
        trace_id: str | None = None,
    ) -> ApprovalOutcome:
        """Reject a pending request and delete whatever it staged.

        A blank reason is refused before anything else happens. If the object
        store does not confirm deletion of a staged asset, the request stays
        pending with only the undeleted assets left on it.
        """
        trace_id = trace_id or new_trace_id()
        if not reason or not reason.strip():
            raise ValidationError(["A rejection reason is required"], request_id=request_id, field="reason")

        request = self.requests.require(request_id)
        ensure_transition(request.status, RequestStatus.REJECTED, request_id=request_id)

        orphaned = await self._assets.discard(request.staged_assets, trace_id=trace_id)
        if orphaned:
            remaining = [a for a in request.staged_assets if a.handle in orphaned]
            self.requests.update_pending(request.id, {"staged_assets": jsonable(remaining)})
            raise AssetDeletionError(
                f"Object store did not confirm deletion of {', '.join(orphaned)}; request kept pending",
                handle=orphaned[0],
                request_id=request.id,
                field="staged_assets",
            )

        self.requests.finalize(
            request.model_copy(update={"staged_assets": []}),
            RequestStatus.REJECTED,
            reviewed_by=actor,
            note=reason.strip(),
        )
        log_event('request.rejected', trace_id=trace_id, request_id=request.id, actor=actor, reason=reason.strip())
        return ApprovalOutcome(
            request_id=request.id,
            kind=request.kind,
            status=RequestStatus.REJECTED,
            identifier=request.target_identifier,
            reason=reason.strip(),
        )

    # ------------------------------------------------------------------
    # Approval branches
    # ------------------------------------------------------------------

    async def _approve_add(
        self,
        request: ChangeRequest,
        *,
        actor: str,
        overrides: dict[str, Any] | None,
        images: Sequence[ImageFile] | None,
        confirm: bool,
        trace_id: str,
    ) -> ApprovalOutcome:
        existing = self.records.find_by_source_request(request.id)
        if existing is not None:
            return self._already_applied(request, existing.identifier, actor=actor, trace_id=trace_id)

        engine = self.engine()
        submission = engine.validate_submission({**request.payload, **(overrides or {})})
        if not submission.ok:
            raise ValidationError(submission.errors, request_id=request.id)

        files = list(images or [])
        if files:
            checked = engine.validate(IMAGES_FIELD, {"files": files, "existing_count": len(request.staged_assets)})
            self._raise_if_invalid(checked, request)

        new_entries: list[NewTaxonomyValue] = []
        for result in submission.results:
            new_entries.extend(
                self._propagator.pending_entries(result.descriptor, result.normalized_value, engine.context.taxonomy)
            )
        self._propagator.require_confirmation(new_entries, confirmed=confirm, request_id=request.id)

        uploaded = await self._upload(files, owner=f"request_{request.id}", request=request, trace_id=trace_id)
        images_list = [*request.staged_assets, *uploaded]

        now = _now()
        history = [
            AuditEntry(
                field=result.field,
                new_value=jsonable(result.descriptor.audit_value(result.normalized_value)),
                timestamp=now,
                actor=actor,
                request_id=request.id,
            )
            for result in submission.results
        ]
        if images_list:
            history.append(AuditEntry(
                field=IMAGES_FIELD,
                new_value=jsonable(images_list),
                timestamp=now,
                actor=actor,
                request_id=request.id,
            ))

        attempt = 0
        while True:
            attempt += 1
            try:
                with self._store.transaction():
                    created = self._propagator.persist(new_entries, actor=actor, trace_id=trace_id)
                    identifier = next_identifier(self.records.max_identifier(), self._prefix)
                    self.records.create(BusinessRecord(
                        identifier=identifier,
                        **submission.changes(),
                        images=images_list,
                        status=RecordStatus.APPROVED,
                        history=history,
                        created_at=now,
                        approved_at=now,
                        source_request_id=request.id,
                    ))
                    self.requests.finalize(request, RequestStatus.APPROVED, reviewed_by=actor)
                break
            except ConflictError:
                log_event('identifier.conflict', trace_id=trace_id, request_id=request.id, attempt=attempt)
                if attempt >= self._max_attempts:
                    await self._assets.discard(uploaded, trace_id=trace_id)
                    raise
            except Exception:
                await self._assets.discard(uploaded, trace_id=trace_id)
                raise

        return ApprovalOutcome(
            request_id=request.id,
            kind=request.kind,
            status=RequestStatus.APPROVED,
            identifier=identifier,
            applied=True,
            created_taxonomy=[{"vocabulary": e.vocabulary.value, "value": e.name} for e in created],
            audit=history,
        )

    async def _approve_update(
        self,
        request: ChangeRequest,
        *,
        actor: str,
        value: Any,
        images: Sequence[ImageFile] | None,
        confirm: bool,
        trace_id: str,
    ) -> ApprovalOutcome:
        record = self.records.get_by_identifier(request.target_identifier or "")
        if record is None:
            return await self._force_reject(
                request,
                f"Business {request.target_identifier} no longer exists",
                trace_id=trace_id,
            )
        if record.applied_request(request.id):
            return self._already_applied(request, record.identifier, actor=actor, trace_id=trace_id)

        descriptor = get_field(request.field_name or "")
        if descriptor is None:
            return await self._force_reject(
                request,
                f"Field {request.field_name} can no longer be updated",
                trace_id=trace_id,
            )

        engine = self.engine()
        files = list(images or [])
        adopted: list[ImageAsset] = []
        if descriptor.kind == FieldKind.IMAGES:
            if not files:
                adopted = list(request.staged_assets)
            result = self._validate_images(engine, descriptor, files, adopted, existing=len(record.images))
        else:
            raw = value if value is not None else request.submitted_value
            if descriptor.kind == FieldKind.PRODUCTS:
                raw = {"products": raw} if isinstance(raw, list) else dict(raw or {})
                raw["existing_count"] = len(record.products)
            result = engine.validate(descriptor.name, raw)
        self._raise_if_invalid(result, request)
        if descriptor.kind == FieldKind.PRODUCTS:
            adopted = self._staged_product_images(result, request)

        new_entries = self._propagator.pending_entries(descriptor, result.normalized_value, engine.context.taxonomy)
        self._propagator.require_confirmation(new_entries, confirmed=confirm, request_id=request.id)

        uploaded: list[ImageAsset] = []
        if descriptor.kind == FieldKind.IMAGES:
            uploaded = await self._upload(files, owner=record.identifier, request=request, trace_id=trace_id)
        elif descriptor.kind == FieldKind.PRODUCTS:
            product_files = [p.image for p in result.parsed.products if isinstance(p.image, ImageFile)]
            uploaded = await self._upload(
                product_files,
                owner=f"{record.identifier}_product",
                request=request,
                trace_id=trace_id,
                field=descriptor.name,
            )

        try:
            with self._store.transaction():
                created = self._propagator.persist(new_entries, actor=actor, trace_id=trace_id)
                # re-read so the audit's old value is the one being replaced
                fresh = self.records.require(record.identifier, request_id=request.id)
                changes = self._changes_for(descriptor, result, fresh, adopted, uploaded)
                entry = AuditEntry(
                    field=descriptor.name,
                    old_value=jsonable(descriptor.current_value(fresh.to_document())),
                    new_value=jsonable(descriptor.audit_value(changes)),
                    timestamp=_now(),
                    actor=actor,
                    request_id=request.id,
                )
                self.records.update(fresh.id, {
                    **jsonable(changes),
                    "history": jsonable([*fresh.history, entry]),
                })
                self.requests.finalize(request, RequestStatus.APPROVED, reviewed_by=actor)
        except Exception:
            await self._assets.discard(uploaded, trace_id=trace_id)
            raise

        kept = {a.handle for a in adopted}
        unused = [a for a in request.staged_assets if a.handle not in kept]
        if unused:
            await self._assets.discard(unused, trace_id=trace_id)

        return ApprovalOutcome(
            request_id=request.id,
            kind=request.kind,
            status=RequestStatus.APPROVED,
            identifier=record.identifier,
            applied=True,
            created_taxonomy=[{"vocabulary": e.vocabulary.value, "value": e.name} for e in created],
            audit=[entry],
        )

    async def _approve_remove(self, request: ChangeRequest, *, actor: str, trace_id: str) -> ApprovalOutcome:
        record = self.records.get_by_identifier(request.target_identifier or "")
        if record is None:
            return await self._force_reject(
                request,
                f"Business {request.target_identifier} no longer exists",
                trace_id=trace_id,
            )

        deleted: set[str] = set()
        for asset in record.all_assets():
            if await self._assets.delete_asset(asset.handle, trace_id=trace_id):
                deleted.add(asset.handle)
                continue
            if deleted:
                self.records.update(record.id, self._without_assets(record, deleted))
            raise AssetDeletionError(
                f"Object store did not confirm deletion of {asset.handle}; business {record.identifier} kept",
                handle=asset.handle,
                request_id=request.id,
                field=IMAGES_FIELD,
            )

        with self._store.transaction():
            self.records.delete(record.id)
            self.requests.finalize(request, RequestStatus.APPROVED, reviewed_by=actor, note=request.reason)

        return ApprovalOutcome(
            request_id=request.id,
            kind=request.kind,
            status=RequestStatus.APPROVED,
            identifier=record.identifier,
            applied=True,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _force_reject(self, request: ChangeRequest, reason: str, *, trace_id: str) -> ApprovalOutcome:
        orphaned = await self._assets.discard(request.staged_assets, trace_id=trace_id)
        self.requests.finalize(
            request.model_copy(update={"staged_assets": [a for a in request.staged_assets if a.handle in orphaned]}),
            RequestStatus.REJECTED,
            reviewed_by=SYSTEM_ACTOR,
            note=reason,
        )
        log_event(
            'request.force_rejected',
            trace_id=trace_id,
            request_id=request.id,
            reason=reason,
            orphaned_handles=orphaned,
        )
        return ApprovalOutcome(
            request_id=request.id,
            kind=request.kind,
            status=RequestStatus.REJECTED,
            identifier=request.target_identifier,
            reason=reason,
            orphaned_handles=orphaned,
        )

    def _already_applied(self, request: ChangeRequest, identifier: str, *, actor: str, trace_id: str) -> ApprovalOutcome:
        log_event('request.already_applied', trace_id=trace_id, request_id=request.id, identifier=identifier)
        self.requests.finalize(request, RequestStatus.APPROVED, reviewed_by=actor)
        return ApprovalOutcome(
            request_id=request.id,
            kind=request.kind,
            status=RequestStatus.APPROVED,
            identifier=identifier,
            applied=False,
        )

    async def _store_submission(self, request: ChangeRequest, *, trace_id: str) -> ChangeRequest:
        try:
            created = self.requests.create_pending(request)
        except Exception:
            await self._assets.discard(request.staged_assets, trace_id=trace_id)
            raise
        log_event(
            'request.submitted',
            trace_id=trace_id,
            request_id=created.id,
            kind=created.kind.value,
            target=created.target_identifier,
            field=created.field_name,
            staged_assets=len(created.staged_assets),
        )
        return created

    async def _stage(
        self,
        images: Sequence[ImageFile],
        *,
        request_id: str,
        trace_id: str,
        field: str = IMAGES_FIELD,
    ) -> list[ImageAsset]:
        if not images:
            return []
        return await self._assets.upload_batch(
            images,
            owner=f"request_{request_id}",
            trace_id=trace_id,
            request_id=request_id,
            field=field,
        )

    async def _upload(
        self,
        files: Sequence[ImageFile],
        *,
        owner: str,
        request: ChangeRequest,
        trace_id: str,
        field: str = IMAGES_FIELD,
    ) -> list[ImageAsset]:
        if not files:
            return []
        return await self._assets.upload_batch(
            files,
            owner=owner,
            trace_id=trace_id,
            request_id=request.id,
            field=field,
        )

    def _check_image_count(self, images: Sequence[ImageFile], *, existing: int = 0) -> None:
        if existing + len(images) > self._limits.max_business_images:
            raise ValidationError(
                [f"{IMAGES_FIELD}: maximum {self._limits.max_business_images} images allowed"],
                field=IMAGES_FIELD,
            )

    def _check_files(self, images: Sequence[ImageFile], *, field: str) -> None:
        errors = [f"{field}: {e}" for image in images for e in image_file_errors(image, self._limits)]
        if errors:
            raise ValidationError(errors, field=field)

    @staticmethod
    def _product_uploads(value: Any, *, field: str) -> tuple[list[Any], list[ImageFile]]:
        """Split a submitted product list into its items and their image files.

        Images must already be decoded into ``ImageFile``; anything else in an
        ``image`` slot is refused so it never reaches the object store.
        """
        items = value.get("products") if isinstance(value, dict) else value
        items = list(items or []) if isinstance(items, list) else []
        files: list[ImageFile] = []
        for item in items:
            image = item.get("image") if isinstance(item, dict) else None
            if image is None:
                continue
            if not isinstance(image, ImageFile):
                raise ValidationError([f"{field}: product images must be uploaded image files"], field=field)
            files.append(image)
        return items, files

    @staticmethod
    def _with_staged_images(items: list[Any], staged: list[ImageAsset]) -> list[Any]:
        assets = iter(staged)
        return [
            {**item, "image": jsonable(next(assets))}
            if isinstance(item, dict) and item.get("image") is not None
            else item
            for item in items
        ]

    @staticmethod
    def _staged_product_images(result: ValidationResult, request: ChangeRequest) -> list[ImageAsset]:
        staged = {a.handle: a for a in request.staged_assets}
        adopted: list[ImageAsset] = []
        for product in result.parsed.products:
            if not isinstance(product.image, ImageAsset):
                continue
            if product.image.handle not in staged:
                raise ValidationError(
                    [f"{result.field}: image for '{product.name}' was not uploaded with this request"],
                    request_id=request.id,
                    field=result.field,
                )
            adopted.append(staged[product.image.handle])
        return adopted

    def _validate_images(
        self,
        engine: ValidationEngine,
        descriptor: FieldDescriptor,
        files: list[ImageFile],
        adopted: list[ImageAsset],
        *,
        existing: int,
    ) -> ValidationResult:
        if files:
            return engine.validate(descriptor.name, {"files": files, "existing_count": existing})
        if not adopted:
            return ValidationResult(
                field=descriptor.name,
                ok=False,
                errors=[f"{descriptor.name}: at least one image is required"],
                descriptor=descriptor,
            )
        if existing + len(adopted) > self._limits.max_business_images:
            return ValidationResult(
                field=descriptor.name,
                ok=False,
                errors=[f"{descriptor.name}: maximum {self._limits.max_business_images} images allowed"],
                descriptor=descriptor,
            )
        return ValidationResult(field=descriptor.name, ok=True, normalized_value={}, descriptor=descriptor)

    @staticmethod
    def _raise_if_invalid(result: ValidationResult, request: ChangeRequest) -> None:
        if not result.ok:
            raise ValidationError(result.errors, request_id=request.id, field=result.field)

    @staticmethod
    def _changes_for(
        descriptor: FieldDescriptor,
        result: ValidationResult,
        record: BusinessRecord,
        adopted: list[ImageAsset],
        uploaded: list[ImageAsset],
    ) -> dict[str, Any]:
        if descriptor.kind == FieldKind.IMAGES:
            return {"images": [*record.images, *adopted, *uploaded]}
        if descriptor.kind == FieldKind.PRODUCTS:
            # staged images keep their handle; fresh files take uploads in order
            staged = {a.handle: a for a in adopted}
            fresh = iter(uploaded)
            added = [
                Product(
                    name=p.name,
                    item_code=p.item_code,
                    old_price=p.old_price,
                    new_price=p.new_price,
                    in_stock=p.in_stock,
                    image=staged[p.image.handle] if isinstance(p.image, ImageAsset) else next(fresh),
                )
                for p in result.parsed.products
            ]
            return {"products": [*record.products, *added]}
        return dict(result.normalized_value or {})

    @staticmethod
    def _without_assets(record: BusinessRecord, handles: set[str]) -> dict[str, Any]:
        images = [a for a in record.images if a.handle not in handles]
        products = [
            p.model_copy(update={"image": None}) if p.image is not None and p.image.handle in handles else p
            for p in record.products
        ]
        return {"images": jsonable(images), "products": jsonable(products)}
