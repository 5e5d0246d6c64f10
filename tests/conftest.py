"""Shared pytest fixtures and configuration."""

import pytest

from aptrack.utils.settings import Settings
from tests.utils.fakes import FakeRemote, build_context


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at fake hosts and a temporary data directory."""
    return Settings(
        supabase_url="https://test.supabase.co",
        service_key="test-key",
        proxy_base_url="http://bridge.test",
        hostname="localhost",
        data_dir=tmp_path / "data",
        local_quota_bytes=1024 * 1024,
        share_url="https://kv.test",
        share_interval_seconds=0.01,
    )


@pytest.fixture
def standalone_remote(settings):
    """Fake remote with no reachable bridge proxy."""
    return FakeRemote(settings, proxy_live=False)


@pytest.fixture
def server_remote(settings):
    """Fake remote with a live bridge proxy."""
    return FakeRemote(settings, proxy_live=True)


@pytest.fixture
def standalone_context(settings, standalone_remote):
    return build_context(settings, standalone_remote)


@pytest.fixture
def server_context(settings, server_remote):
    return build_context(settings, server_remote)
