"""Wire the client-side services together once per process."""

from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from supabase import Client

from aptrack.services.availability import BackendAvailability
from aptrack.services.document_sync import DocumentSyncEngine
from aptrack.services.image_resolver import ImageResolver
from aptrack.services.legacy_blobs import LegacyBlobStore
from aptrack.services.local_cache import LocalCache
from aptrack.services.proxy_client import ProxyClient
from aptrack.services.share_channel import ShareChannel
from aptrack.services.storage_client import ObjectStorageClient
from aptrack.utils.settings import Settings


@dataclass
class AppContext:
    settings: Settings
    availability: BackendAvailability
    storage: ObjectStorageClient
    proxy: ProxyClient
    legacy_store: LegacyBlobStore
    cache: LocalCache
    resolver: ImageResolver
    engine: DocumentSyncEngine
    share: ShareChannel


def create_app_context(
    settings: Optional[Settings] = None,
    supabase: Optional[Client] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    on_quota_notice: Optional[Callable[[str], None]] = None,
    retry_delay: float = 1.0,
) -> AppContext:
    """Build every service around one shared availability detector."""
    settings = settings or Settings.from_env()
    availability = BackendAvailability(settings, http_client=http_client)
    storage = ObjectStorageClient(settings, supabase=supabase, http_client=http_client)
    proxy = ProxyClient(settings, http_client=http_client)
    legacy_store = LegacyBlobStore(settings.data_dir / "legacy-images.sqlite3")
    cache = LocalCache(settings.data_dir / "local-cache.json", quota_bytes=settings.local_quota_bytes)
    resolver = ImageResolver(availability, storage, proxy, legacy_store, retry_delay=retry_delay)
    engine = DocumentSyncEngine(availability, storage, proxy, resolver, cache, on_quota_notice=on_quota_notice)
    share = ShareChannel(settings, engine, cache, http_client=http_client)
    return AppContext(
        settings=settings,
        availability=availability,
        storage=storage,
        proxy=proxy,
        legacy_store=legacy_store,
        cache=cache,
        resolver=resolver,
        engine=engine,
        share=share,
    )
