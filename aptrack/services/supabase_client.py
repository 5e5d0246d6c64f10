"""Supabase client factory."""

from typing import Optional

from supabase import Client, create_client
from supabase.client import ClientOptions

from aptrack.utils.errors import StorageConfigError
from aptrack.utils.logging import get_structured_logger, mask_sensitive_data
from aptrack.utils.settings import Settings

logger = get_structured_logger(__name__)


def create_supabase_client(settings: Settings) -> Client:
    """Create a Supabase client authenticated with the service role key."""
    if not settings.supabase_url or not settings.service_key:
        raise StorageConfigError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

    options = ClientOptions(
        auto_refresh_token=False,
        persist_session=False,
    )
    client = create_client(settings.supabase_url, settings.service_key, options)
    logger.info("Supabase client initialized", url=settings.supabase_url)
    return client


class SupabaseClient:
    """Async context manager handing out a lazily created Supabase client."""

    def __init__(self, settings: Settings, client: Optional[Client] = None):
        self.settings = settings
        self.client: Optional[Client] = client

    async def __aenter__(self) -> Client:
        if self.client is None:
            self.client = create_supabase_client(self.settings)
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                error=mask_sensitive_data(str(exc_val)),
                type=exc_type.__name__
            )
        return False
