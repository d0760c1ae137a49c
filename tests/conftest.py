"""Shared pytest fixtures and configuration."""

import pytest

from tests.fakes import FakeClientFactory, build_stack, make_config


@pytest.fixture
def config(tmp_path, monkeypatch):
    """Config rooted in a temporary directory, free of env overrides."""
    for name in ("ALICE_WEBHOOK_URL", "BOB_WEBHOOK_URL", "CHROME_BIN"):
        monkeypatch.delenv(name, raising=False)
    return make_config(tmp_path)


@pytest.fixture
def factory():
    return FakeClientFactory()


@pytest.fixture
def stack(config, factory):
    """Fully wired supervisor stack backed by fake automation clients."""
    return build_stack(config, factory)
