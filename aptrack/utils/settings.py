"""Runtime settings read from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


DEFAULT_SUPABASE_URL = "http://127.0.0.1:54321"
DEFAULT_BUCKET = "apartment-images"
DEFAULT_DOCUMENT_PATH = "data/apartments.json"
DEFAULT_IMAGES_PREFIX = "images"
DEFAULT_SHARE_URL = "https://api.keyvalue.xyz"

# Hosts that only serve static files and can never run the bridge.
STATIC_HOST_SUFFIXES = (
    "github.io",
    "gitlab.io",
    "pages.dev",
    "netlify.app",
    "surge.sh",
)


def _split_hosts(raw: str) -> tuple[str, ...]:
    return tuple(h.strip().lower() for h in raw.split(",") if h.strip())


@dataclass(frozen=True)
class Settings:
    """Snapshot of the configuration for one process."""

    supabase_url: str = DEFAULT_SUPABASE_URL
    service_key: Optional[str] = None
    bucket: str = DEFAULT_BUCKET
    document_path: str = DEFAULT_DOCUMENT_PATH
    images_prefix: str = DEFAULT_IMAGES_PREFIX
    proxy_base_url: str = "http://127.0.0.1:5173"
    hostname: str = "localhost"
    data_dir: Path = Path("data")
    local_quota_bytes: int = 5 * 1024 * 1024
    share_url: str = DEFAULT_SHARE_URL
    share_interval_seconds: float = 5.0
    status_timeout_seconds: float = 1.5
    static_host_suffixes: tuple[str, ...] = field(default=STATIC_HOST_SUFFIXES)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current environment."""
        extra_hosts = _split_hosts(os.environ.get("APTRACK_STATIC_HOSTS", ""))
        return cls(
            supabase_url=os.environ.get("SUPABASE_URL", DEFAULT_SUPABASE_URL).rstrip("/"),
            service_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or None,
            bucket=os.environ.get("APTRACK_BUCKET", DEFAULT_BUCKET),
            document_path=os.environ.get("APTRACK_DOCUMENT_PATH", DEFAULT_DOCUMENT_PATH),
            images_prefix=os.environ.get("APTRACK_IMAGES_PREFIX", DEFAULT_IMAGES_PREFIX).strip("/"),
            proxy_base_url=os.environ.get("APTRACK_PROXY_BASE_URL", "http://127.0.0.1:5173").rstrip("/"),
            hostname=os.environ.get("APTRACK_HOSTNAME", "localhost").lower(),
            data_dir=Path(os.environ.get("APTRACK_DATA_DIR", "data")),
            local_quota_bytes=int(os.environ.get("APTRACK_LOCAL_QUOTA_BYTES", str(5 * 1024 * 1024))),
            share_url=os.environ.get("APTRACK_SHARE_URL", DEFAULT_SHARE_URL).rstrip("/"),
            share_interval_seconds=float(os.environ.get("APTRACK_SHARE_INTERVAL_SECONDS", "5")),
            status_timeout_seconds=float(os.environ.get("APTRACK_STATUS_TIMEOUT_SECONDS", "1.5")),
            static_host_suffixes=STATIC_HOST_SUFFIXES + extra_hosts,
        )

    @property
    def images_dir(self) -> Path:
        return self.data_dir / "images"

    @property
    def local_document_file(self) -> Path:
        return self.data_dir / "apartments.json"

    def public_url(self, path: str) -> str:
        return f"{self.supabase_url}/storage/v1/object/public/{self.bucket}/{path}"

    def image_path(self, key: str) -> str:
        return f"{self.images_prefix}/{key}"
