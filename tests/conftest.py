"""Shared fixtures: memory-backed settings and a started hub."""

import pytest

from feedhub.config import Settings
from feedhub.hub import FeedHub


@pytest.fixture
def settings(tmp_path):
    return Settings(
        heartbeat_interval_sec=0,
        upload_dir=str(tmp_path / "uploads"),
        public_base_url="http://testserver",
    )


@pytest.fixture
async def hub(settings):
    h = FeedHub(settings)
    await h.start()
    yield h
    await h.stop()
