"""Shared fixtures for the asset acquisition tests."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from StageAssets import net
from StageAssets.fallbacks import FallbackFactory, FallbackOptions
from StageAssets.host import HostConfig
from StageAssets.settings import SdkBundleSettings, invalidate_default_config
from StageAssets.testing import MockAssetServer, use_mock_transport

SDK_URL = "https://assets.example.org/sdk/CubismSdkForWeb-test.zip"


@pytest.fixture(autouse=True)
def _isolate_global_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Reset cached settings, transports, and managed log handlers between tests."""

    for name in (
        "STAGEASSETS_LOG_LEVEL",
        "STAGEASSETS_SDK_SOURCE",
        "STAGEASSETS_MAX_PARALLEL_WRITES",
        "STAGEASSETS_CACHE_DIRNAME",
        "STAGEASSETS_PUBLIC_DIRNAME",
        "STAGEASSETS_CONFIG",
    ):
        monkeypatch.delenv(name, raising=False)
    invalidate_default_config()
    logger = logging.getLogger("StageAssets")
    handlers = list(logger.handlers)
    propagate = logger.propagate
    level = logger.level
    yield
    net.reset_transport()
    invalidate_default_config()
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = propagate
    logger.setLevel(level)


@pytest.fixture
def asset_server() -> Iterator[MockAssetServer]:
    """Mock HTTP server wired into every client built by ``StageAssets.net``."""

    server = MockAssetServer()
    with use_mock_transport(server):
        yield server


@pytest.fixture
def host_config(tmp_path: Path) -> HostConfig:
    root = tmp_path / "project"
    root.mkdir()
    return HostConfig.from_root(root)


@pytest.fixture
def sdk_options() -> FallbackOptions:
    return FallbackOptions(
        sdk_bundle=SdkBundleSettings(
            source_url=SDK_URL,
            assets_subpath="assets/js",
            bundle_dir="CubismSdkForWeb-test",
            marker="Core/live2dcubismcore.min.js",
        )
    )


@pytest.fixture
def fallback_factory(sdk_options: FallbackOptions) -> FallbackFactory:
    return FallbackFactory(sdk_options)


@pytest.fixture
def sdk_url() -> str:
    return SDK_URL
