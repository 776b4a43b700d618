"""Manifest loading and end-to-end build host runs through the fallback plugins."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List

import pytest

from StageAssets.errors import ConfigurationError, DownloadFailure, UserConfigError
from StageAssets.fallbacks import DownloadFilePlugin, FallbackFactory, SdkBundlePlugin
from StageAssets.host import BuildHost, HostConfig, build_plugins, load_manifest
from StageAssets.plugins import resolve_default_capabilities
from StageAssets.settings import (
    DOWNLOAD_CAPABILITY,
    SDK_BUNDLE_CAPABILITY,
    CapabilitySettings,
    LayoutSettings,
    StageAssetsSettings,
)
from StageAssets.testing import MockAssetServer, build_zip

MANIFEST = """
sdk_bundles:
  - source: {sdk_url}
downloads:
  - url: https://assets.example.org/models/hiyori.model3.json
    filename: hiyori.model3.json
    destination: assets/live2d/models/hiyori
  - url: https://assets.example.org/vrm/AvatarSample_A.vrm
    filename: AvatarSample_A.vrm
    destination: assets/vrm/models/AvatarSample-A
"""


def _offline_settings() -> StageAssetsSettings:
    return StageAssetsSettings(
        capabilities=CapabilitySettings(
            modules={
                DOWNLOAD_CAPABILITY: "stage_assets_missing_fetch",
                SDK_BUNDLE_CAPABILITY: "stage_assets_missing_sdk",
            }
        )
    )


def _write_manifest(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "assets.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_manifest_parses_entries(tmp_path: Path, sdk_url: str) -> None:
    manifest = load_manifest(_write_manifest(tmp_path, MANIFEST.format(sdk_url=sdk_url)))

    assert [bundle.source for bundle in manifest.sdk_bundles] == [sdk_url]
    assert [entry.filename for entry in manifest.downloads] == [
        "hiyori.model3.json",
        "AvatarSample_A.vrm",
    ]
    assert manifest.downloads[0].destination == "assets/live2d/models/hiyori"


def test_manifest_destination_defaults_to_root(tmp_path: Path) -> None:
    manifest = load_manifest(
        _write_manifest(tmp_path, "downloads:\n  - url: https://x/a.bin\n    filename: a.bin\n")
    )

    assert manifest.downloads[0].destination == ""
    assert manifest.sdk_bundles == []


def test_missing_manifest(tmp_path: Path) -> None:
    with pytest.raises(UserConfigError, match="Manifest not found"):
        load_manifest(tmp_path / "absent.yaml")


def test_manifest_root_must_be_mapping(tmp_path: Path) -> None:
    with pytest.raises(UserConfigError, match="mapping"):
        load_manifest(_write_manifest(tmp_path, "- https://x/a.bin\n"))


def test_manifest_entry_missing_fields(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="Invalid manifest"):
        load_manifest(_write_manifest(tmp_path, "downloads:\n  - url: https://x/a.bin\n"))


@pytest.mark.parametrize(
    "entry",
    [
        "url: https://x/a.bin\n    filename: a.bin\n    destination: ../../elsewhere",
        "url: https://x/a.bin\n    filename: ../a.bin",
        "url: https://x/a.bin\n    filename: nested/a.bin",
    ],
)
def test_manifest_rejects_paths_escaping_roots(tmp_path: Path, entry: str) -> None:
    with pytest.raises(ConfigurationError, match="Invalid manifest"):
        load_manifest(_write_manifest(tmp_path, f"downloads:\n  - {entry}\n"))


def test_build_plugins_puts_sdk_bundles_first(
    tmp_path: Path, fallback_factory: FallbackFactory, sdk_url: str
) -> None:
    manifest = load_manifest(_write_manifest(tmp_path, MANIFEST.format(sdk_url=sdk_url)))
    capabilities = {
        DOWNLOAD_CAPABILITY: fallback_factory.create(DOWNLOAD_CAPABILITY),
        SDK_BUNDLE_CAPABILITY: fallback_factory.create(SDK_BUNDLE_CAPABILITY),
    }

    plugins = build_plugins(manifest, capabilities)

    assert isinstance(plugins[0], SdkBundlePlugin)
    assert plugins[0].source == sdk_url
    assert all(isinstance(plugin, DownloadFilePlugin) for plugin in plugins[1:])
    assert [plugin.name for plugin in plugins[1:]] == [
        "fallback-download:hiyori.model3.json",
        "fallback-download:AvatarSample_A.vrm",
    ]


def test_build_host_runs_hooks_in_order(host_config: HostConfig) -> None:
    calls: List[str] = []

    class Recorder:
        def __init__(self, name: str) -> None:
            self.name = name

        async def config_resolved(self, config: HostConfig) -> None:
            assert config is host_config
            calls.append(self.name)

    class Hookless:
        name = "hookless"

    asyncio.run(BuildHost([Recorder("first"), Hookless(), Recorder("second")]).run(host_config))

    assert calls == ["first", "second"]


def test_host_config_uses_layout_settings(tmp_path: Path) -> None:
    settings = StageAssetsSettings(
        layout=LayoutSettings(cache_dirname="build/cache", public_dirname="dist")
    )

    config = HostConfig.from_root(tmp_path, settings)

    assert config.root == tmp_path.resolve()
    assert config.cache_dir == tmp_path.resolve() / "build" / "cache"
    assert config.public_dir == tmp_path.resolve() / "dist"


def test_end_to_end_sync_without_primary_plugins(
    tmp_path: Path,
    asset_server: MockAssetServer,
    host_config: HostConfig,
    fallback_factory: FallbackFactory,
    sdk_url: str,
) -> None:
    asset_server.add(
        sdk_url,
        build_zip(
            {
                "CubismSdkForWeb-test/Core/live2dcubismcore.min.js": b"core",
                "CubismSdkForWeb-test/README.md": b"readme",
            }
        ),
    )
    asset_server.add("https://assets.example.org/models/hiyori.model3.json", b"{}")
    asset_server.add("https://assets.example.org/vrm/AvatarSample_A.vrm", b"glTF")
    manifest = load_manifest(_write_manifest(tmp_path, MANIFEST.format(sdk_url=sdk_url)))
    capabilities = resolve_default_capabilities(_offline_settings(), factory=fallback_factory)

    host = BuildHost(build_plugins(manifest, capabilities))
    asyncio.run(host.run(host_config))
    asyncio.run(host.run(host_config))

    public = host_config.public_dir
    assert (public / "assets/js/CubismSdkForWeb-test/Core/live2dcubismcore.min.js").read_bytes() == b"core"
    assert not (public / "assets/js/CubismSdkForWeb-test/README.md").exists()
    assert (public / "assets/live2d/models/hiyori/hiyori.model3.json").read_bytes() == b"{}"
    assert (public / "assets/vrm/models/AvatarSample-A/AvatarSample_A.vrm").read_bytes() == b"glTF"
    assert asset_server.count() == 3


def test_failed_download_aborts_host_run(
    tmp_path: Path,
    asset_server: MockAssetServer,
    host_config: HostConfig,
    fallback_factory: FallbackFactory,
) -> None:
    manifest = load_manifest(
        _write_manifest(
            tmp_path,
            "downloads:\n"
            "  - url: https://assets.example.org/missing.bin\n"
            "    filename: missing.bin\n"
            "  - url: https://assets.example.org/present.bin\n"
            "    filename: present.bin\n",
        )
    )
    asset_server.add("https://assets.example.org/present.bin", b"present")
    capabilities = resolve_default_capabilities(_offline_settings(), factory=fallback_factory)

    with pytest.raises(DownloadFailure, match="404"):
        asyncio.run(BuildHost(build_plugins(manifest, capabilities)).run(host_config))

    assert not (host_config.public_dir / "present.bin").exists()
