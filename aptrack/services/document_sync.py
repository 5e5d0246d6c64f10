"""Document sync engine - keep the listing collection in step across devices.

The collection lives in three places: in memory, in the device-local cache and
as one JSON document in the object store. Loads prefer the remote document so
a device coming online picks up edits made elsewhere; saves write the local
cache first and then replace the remote document wholesale (last writer wins).
"""

import asyncio
from typing import Any, Callable, Optional

from aptrack.models.image_ref import ImageRefKind, try_decode_ref
from aptrack.models.listing import Listing, ListingStatus, dump_collection, split_collection
from aptrack.services.availability import BackendAvailability
from aptrack.services.fallback import Strategy, StrategyResult, run_strategies
from aptrack.services.image_resolver import ImageResolver
from aptrack.services.local_cache import COLLECTION_KEY, LocalCache
from aptrack.services.proxy_client import ProxyClient
from aptrack.services.storage_client import ObjectStorageClient
from aptrack.utils.errors import QuotaExceededError
from aptrack.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)


class DocumentSyncEngine:
    """Loads, saves and mutates the listing collection."""

    def __init__(
        self,
        availability: BackendAvailability,
        storage: ObjectStorageClient,
        proxy: ProxyClient,
        resolver: ImageResolver,
        cache: LocalCache,
        on_quota_notice: Optional[Callable[[str], None]] = None,
    ):
        self.availability = availability
        self.storage = storage
        self.proxy = proxy
        self.resolver = resolver
        self.cache = cache
        self.on_quota_notice = on_quota_notice
        self.quota_notice_shown = False
        self.share_channel: Any = None
        self._listings: list[Listing] = []
        self._rejected: list[Any] = []
        self._background: set[asyncio.Task] = set()

    @property
    def listings(self) -> list[Listing]:
        return list(self._listings)

    def get(self, listing_id: str) -> Optional[Listing]:
        return next((item for item in self._listings if item.id == listing_id), None)

    # -- load -----------------------------------------------------------

    async def load(self) -> list[Listing]:
        """Load the collection: remote document first, then local cache, else empty."""
        with log_timing("load_collection", logger=logger):
            result = await run_strategies(
                [
                    Strategy("remote", self._load_remote),
                    Strategy("local", self._load_local),
                ],
                operation="load_collection",
            )

        listings, self._rejected = result.value if result.ok else ([], [])
        logger.info(
            "Collection loaded",
            source=result.strategy if result.ok else "empty",
            count=len(listings),
            unparsed=len(self._rejected)
        )

        listings, dropped = await self._reconcile(listings)
        self._listings = listings
        if dropped:
            logger.warning("Dropped broken image references", dropped=dropped)
            self._write_local(listings)
            self._spawn(self._push_remote(self._document(listings)))
        return self.listings

    async def _load_remote(self) -> StrategyResult:
        raw = await self.storage.fetch_document()
        if not raw:
            return StrategyResult.skip("remote document missing or empty")
        listings, rejected = split_collection(raw)
        if not listings:
            return StrategyResult.skip("remote document has no valid records")
        self._write_local(listings, rejected)
        return StrategyResult.success((listings, rejected))

    async def _load_local(self) -> StrategyResult:
        raw = self.cache.get(COLLECTION_KEY)
        if raw is None:
            return StrategyResult.skip("no local copy")
        return StrategyResult.success(split_collection(raw))

    async def _reconcile(self, listings: list[Listing]) -> tuple[list[Listing], int]:
        """Drop device-local image references whose blob is gone."""
        dropped = 0
        reconciled: list[Listing] = []
        for listing in listings:
            kept: list[str] = []
            for value in listing.images:
                ref = try_decode_ref(value)
                if ref is not None and ref.kind is ImageRefKind.BROWSER_LOCAL and not await self.resolver.exists(ref):
                    dropped += 1
                    continue
                kept.append(value)
            if len(kept) != len(listing.images):
                listing = listing.model_copy(update={"images": kept})
            reconciled.append(listing)
        return reconciled, dropped

    # -- save -----------------------------------------------------------

    async def save(self, listings: list[Listing]) -> bool:
        """Write locally, then remotely. Returns the remote write outcome.

        Records that failed validation on load are written back unchanged.
        """
        self._listings = list(listings)
        self._write_local(self._listings)

        collection = self._document(self._listings)
        if self.share_channel is not None:
            self.share_channel.schedule_push(collection)

        ok = await self._push_remote(collection)
        if not ok:
            logger.warning("Remote save failed, local copy kept", count=len(collection))
        return ok

    def _document(self, listings: list[Listing], rejected: Optional[list[Any]] = None) -> list[Any]:
        return dump_collection(listings) + list(self._rejected if rejected is None else rejected)

    def _write_local(self, listings: list[Listing], rejected: Optional[list[Any]] = None) -> None:
        try:
            self.cache.set(COLLECTION_KEY, self._document(listings, rejected))
            return
        except QuotaExceededError as e:
            logger.error("Local cache write failed", error=str(e))
        except OSError as e:
            logger.error("Local cache write failed", error=str(e))
            return

        stripped = [listing.model_copy(update={"images": []}) for listing in listings]
        try:
            self.cache.set(COLLECTION_KEY, self._document(stripped, rejected))
        except (QuotaExceededError, OSError) as e:
            logger.error("Local cache fallback write failed", error=str(e))
            self._notify_quota("Local storage is full; listings could not be cached on this device.")
            return
        self._notify_quota("Local storage is full; listings were cached on this device without their images.")

    def _notify_quota(self, message: str) -> None:
        if self.quota_notice_shown:
            return
        self.quota_notice_shown = True
        if self.on_quota_notice is not None:
            self.on_quota_notice(message)

    async def _push_remote(self, collection: list[dict]) -> bool:
        result = await run_strategies(
            [
                Strategy("proxy", lambda: self._save_via_proxy(collection)),
                Strategy("direct", lambda: self._save_direct(collection)),
            ],
            operation="save_collection",
        )
        if result.ok:
            logger.info("Collection saved", backend=result.strategy, count=len(collection))
        return result.ok

    async def _save_via_proxy(self, collection: list[dict]) -> StrategyResult:
        if not await self.availability.is_available():
            return StrategyResult.skip("proxy unavailable")
        if await self.proxy.save_document(collection):
            return StrategyResult.success()
        return StrategyResult.fail("proxy document save failed")

    async def _save_direct(self, collection: list[dict]) -> StrategyResult:
        if await self.availability.is_available():
            return StrategyResult.skip("proxy handles writes")
        if await self.storage.upload_document(collection):
            return StrategyResult.success()
        return StrategyResult.fail("direct document upload failed")

    # -- mutations ------------------------------------------------------

    async def add_listing(self, listing: Listing) -> bool:
        """Persist the listing's inline images and prepend it to the collection."""
        images = await self.resolver.persist_images(listing.images)
        listing = listing.model_copy(update={"images": images})
        return await self.save([listing] + [item for item in self._listings if item.id != listing.id])

    async def update_listing(self, listing_id: str, **changes: Any) -> bool:
        """Apply field changes; new inline images are persisted, removed ones deleted."""
        existing = self.get(listing_id)
        if existing is None:
            raise KeyError(listing_id)

        changes.pop("id", None)
        if "images" in changes:
            changes["images"] = await self.resolver.persist_images(changes["images"])

        updated = Listing.model_validate({**existing.to_document(), **_wire_names(changes), "id": listing_id})
        removed = [ref for ref in existing.images if ref not in updated.images]

        ok = await self.save([updated if item.id == listing_id else item for item in self._listings])
        for ref in removed:
            await self.resolver.delete(ref)
        return ok

    async def set_status(self, listing_id: str, status: ListingStatus) -> bool:
        return await self.update_listing(listing_id, status=status)

    async def reorder_images(self, listing_id: str, order: list[int]) -> bool:
        """Reorder images by index permutation; the first becomes the cover."""
        existing = self.get(listing_id)
        if existing is None:
            raise KeyError(listing_id)
        if sorted(order) != list(range(len(existing.images))):
            raise ValueError(f"Invalid image order {order} for {len(existing.images)} images")
        return await self.update_listing(listing_id, images=[existing.images[i] for i in order])

    async def set_primary_image(self, listing_id: str, index: int) -> bool:
        existing = self.get(listing_id)
        if existing is None:
            raise KeyError(listing_id)
        order = [index] + [i for i in range(len(existing.images)) if i != index]
        return await self.reorder_images(listing_id, order)

    async def delete_listing(self, listing_id: str) -> bool:
        """Remove a listing, save, then delete each of its image blobs."""
        existing = self.get(listing_id)
        if existing is None:
            return False
        ok = await self.save([item for item in self._listings if item.id != listing_id])
        for ref in existing.images:
            await self.resolver.delete(ref)
        return ok

    def replace_from_remote(self, raw: list[Any]) -> None:
        """Adopt a collection pushed by another device (share channel)."""
        self._listings, self._rejected = split_collection(raw)
        self._write_local(self._listings)

    # -- background -----------------------------------------------------

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for background saves scheduled by load()."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)


_ALIASES = {name: field.alias for name, field in Listing.model_fields.items() if field.alias}


def _wire_names(changes: dict[str, Any]) -> dict[str, Any]:
    out = {}
    for name, value in changes.items():
        if isinstance(value, ListingStatus):
            value = value.value
        out[_ALIASES.get(name, name)] = value
    return out
