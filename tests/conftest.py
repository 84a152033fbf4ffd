from __future__ import annotations

import plistlib
from datetime import date
from pathlib import Path
from typing import Callable

import httpx
import pytest
import structlog

from lnos_utm.bundle.config import BundleConfig
from lnos_utm.bundle.identifiers import IdentifierFactory

ENV_VARS = (
    "CI",
    "GITHUB_ACTIONS",
    "GITHUB_OUTPUT",
    "LNOS_UTM_OUTPUT_DIR",
    "LNOS_UTM_LOG_LEVEL",
    "LNOS_UTM_LOG_JSON",
    "LNOS_UTM_INSTALLER_URL",
    "LNOS_UTM_DOWNLOAD_TIMEOUT",
)

ISO_URL = "https://cdn.example.test/asahi-installer.iso"
SCRIPT_URL = "https://raw.example.test/LnOS-installer.sh"
INSTALLER_SCRIPT = "#!/bin/bash\n# @date 2024-05-01\necho lnos\n"


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def no_host_tools(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pretend qemu-img, uuidgen, utmctl and brew are absent."""

    monkeypatch.setattr("shutil.which", lambda _name: None)


@pytest.fixture
def applications_dir(tmp_path: Path) -> Path:
    apps = tmp_path / "Applications"
    contents = apps / "UTM.app" / "Contents"
    contents.mkdir(parents=True)
    with (contents / "Info.plist").open("wb") as handle:
        plistlib.dump({"CFBundleShortVersionString": "4.6.4"}, handle)
    return apps


@pytest.fixture
def identifier_factory() -> IdentifierFactory:
    return IdentifierFactory(providers=(), today=date(2024, 3, 7))


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., BundleConfig]:
    def factory(**overrides) -> BundleConfig:
        data = {
            "name": "lnos-test",
            "output_dir": tmp_path / "out",
            "project_dir": tmp_path / "project",
            "installer_url": ISO_URL,
            "installer_script_url": SCRIPT_URL,
            "open_after_build": False,
        }
        data.update(overrides)
        return BundleConfig(**data)

    return factory


def make_client(routes: dict[str, bytes] | None = None, *, fail: bool = False) -> httpx.Client:
    """``httpx.Client`` answering ``routes`` and 404 for everything else."""

    routes = routes or {}

    def handler(request: httpx.Request) -> httpx.Response:
        if fail:
            raise httpx.ConnectError("network unreachable", request=request)
        body = routes.get(str(request.url))
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, content=body)

    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def online_client() -> httpx.Client:
    return make_client({ISO_URL: b"ISO" * 64, SCRIPT_URL: INSTALLER_SCRIPT.encode("utf-8")})


@pytest.fixture
def offline_client() -> httpx.Client:
    return make_client(fail=True)


@pytest.fixture
def client_factory() -> Callable[..., httpx.Client]:
    return make_client
