"""Image reference resolver.

Persists inline image payloads to durable storage, resolves references to
displayable URLs and deletes the backing blobs. Backend choice follows the
availability detector: through the bridge proxy when it is reachable,
otherwise directly against the object store with the embedded key.
"""

import asyncio
import base64
from typing import Optional, Union

from aptrack.models.image_ref import (
    ImageRef,
    ImageRefKind,
    InlinePayload,
    decode_ref,
    generate_image_key,
    try_decode_ref,
)
from aptrack.services.availability import BackendAvailability
from aptrack.services.fallback import Strategy, StrategyResult, run_strategies
from aptrack.services.legacy_blobs import LegacyBlobStore
from aptrack.services.proxy_client import ProxyClient
from aptrack.services.storage_client import ObjectStorageClient
from aptrack.utils.errors import ImageUploadError, InvalidDataUrlError, InvalidImageRefError
from aptrack.utils.logging import get_structured_logger, summarize_ref

logger = get_structured_logger(__name__)

PERSIST_ATTEMPTS = 2


class ImageResolver:
    def __init__(
        self,
        availability: BackendAvailability,
        storage: ObjectStorageClient,
        proxy: ProxyClient,
        legacy_store: LegacyBlobStore,
        retry_delay: float = 1.0,
    ):
        self.availability = availability
        self.storage = storage
        self.proxy = proxy
        self.legacy_store = legacy_store
        self.retry_delay = retry_delay

    # -- persist --------------------------------------------------------

    async def persist(self, payload: Union[InlinePayload, str]) -> str:
        """Upload an inline payload and return its durable reference string.

        Every call mints a new key. The whole backend chain is retried once.
        """
        if isinstance(payload, str):
            payload = InlinePayload.from_data_url(payload)

        last_reason: Optional[str] = None
        for attempt in range(PERSIST_ATTEMPTS):
            result = await run_strategies(
                [
                    Strategy("proxy", lambda: self._persist_via_proxy(payload)),
                    Strategy("direct", lambda: self._persist_direct(payload)),
                ],
                operation="persist_image",
            )
            if result.ok:
                ref = ImageRef.object(result.value)
                logger.info(
                    "Image persisted",
                    key=ref.key,
                    backend=result.strategy,
                    size=len(payload.data),
                    mime_type=payload.mime_type
                )
                return ref.encoded

            last_reason = result.reason
            logger.warning(
                "Image upload attempt failed",
                attempt=attempt + 1,
                reason=last_reason
            )
            if attempt + 1 < PERSIST_ATTEMPTS:
                await asyncio.sleep(self.retry_delay)

        raise ImageUploadError(f"Image upload failed: {last_reason or 'unknown error'}")

    async def _persist_via_proxy(self, payload: InlinePayload) -> StrategyResult:
        if not await self.availability.is_available():
            return StrategyResult.skip("proxy unavailable")
        key = await self.proxy.upload_image(payload.to_data_url())
        return StrategyResult.success(key)

    async def _persist_direct(self, payload: InlinePayload) -> StrategyResult:
        # Standalone mode only.
        if await self.availability.is_available():
            return StrategyResult.skip("proxy handles writes")
        key = generate_image_key(payload.extension)
        if await self.storage.upload_image(key, payload.data, payload.mime_type):
            return StrategyResult.success(key)
        return StrategyResult.fail(f"direct upload failed for key {key}")

    async def persist_images(self, images: list[str]) -> list[str]:
        """Persist every inline entry, keep durable entries, preserve order.

        Entries that fail to upload or cannot be decoded are dropped.
        """
        persisted: list[str] = []
        for value in images:
            ref = try_decode_ref(value)
            if ref is None:
                logger.warning("Dropping malformed image reference", ref=summarize_ref(str(value)))
                continue
            if ref.is_durable:
                persisted.append(ref.encoded)
                continue
            try:
                persisted.append(await self.persist(ref.key))
            except (ImageUploadError, InvalidDataUrlError) as e:
                logger.error("Dropping image that could not be persisted", ref=summarize_ref(value), error=str(e))
        return persisted

    # -- resolve --------------------------------------------------------

    async def resolve(self, value: Union[ImageRef, str]) -> Optional[str]:
        """Return a displayable URL for a reference, or None if it is broken."""
        ref = value if isinstance(value, ImageRef) else try_decode_ref(value)
        if ref is None:
            return None

        if ref.kind is ImageRefKind.INLINE:
            return ref.key
        if ref.kind is ImageRefKind.OBJECT_EXPLICIT:
            return self.storage.image_url(ref.key)
        if ref.kind is ImageRefKind.LOCAL_FILE:
            return self.proxy.image_url(ref.key)
        if ref.kind is ImageRefKind.OBJECT:
            if await self.availability.is_available():
                return self.proxy.image_url(ref.key)
            return self.storage.image_url(ref.key)
        return await self._resolve_browser_local(ref.key)

    async def _resolve_browser_local(self, key: str) -> Optional[str]:
        try:
            payload = await self.legacy_store.get(key)
        except Exception as e:
            logger.warning("Legacy blob lookup failed", key=key, error=str(e))
            return None
        if payload is None:
            return None
        return f"data:{payload.mime_type};base64,{base64.b64encode(payload.data).decode('ascii')}"

    async def exists(self, value: Union[ImageRef, str]) -> bool:
        """Whether a reference still points at something.

        Only device-local references are checked; remote ones are assumed present.
        """
        try:
            ref = value if isinstance(value, ImageRef) else decode_ref(value)
        except InvalidImageRefError:
            return False
        if ref.kind is not ImageRefKind.BROWSER_LOCAL:
            return True
        try:
            return await self.legacy_store.exists(ref.key)
        except Exception as e:
            logger.warning("Legacy blob lookup failed", key=ref.key, error=str(e))
            return False

    # -- delete ---------------------------------------------------------

    async def delete(self, value: Union[ImageRef, str]) -> None:
        """Delete the blob behind a reference. Failures are logged, never raised."""
        ref = value if isinstance(value, ImageRef) else try_decode_ref(value)
        if ref is None or ref.is_inline:
            return

        try:
            ok = await self._delete(ref)
        except Exception as e:
            logger.warning("Image delete failed", ref=ref.encoded, error=str(e))
            return
        if not ok:
            logger.warning("Image delete failed", ref=ref.encoded)

    async def _delete(self, ref: ImageRef) -> bool:
        if ref.kind is ImageRefKind.BROWSER_LOCAL:
            await self.legacy_store.delete(ref.key)
            return True
        if ref.kind is ImageRefKind.LOCAL_FILE:
            return await self.proxy.delete_local_image(ref.key)
        if await self.availability.is_available():
            return await self.proxy.delete_image(ref.key)
        return await self.storage.delete_image(ref.key)
