from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from inkseal_api.core.flatten.config import get_flatten_config
from inkseal_api.main import app
from inkseal_api.settings import get_settings


@pytest.fixture(autouse=True)
def storage_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    data_dir = tmp_path / ".data"
    monkeypatch.setenv("INKSEAL_STORAGE_DRIVER", "local")
    monkeypatch.setenv("INKSEAL_STORAGE_LOCAL_DIR", str(data_dir))
    monkeypatch.setenv("INKSEAL_DOCUMENT_ROOT", str(tmp_path))
    get_settings.cache_clear()
    get_flatten_config.cache_clear()
    yield data_dir
    get_settings.cache_clear()
    get_flatten_config.cache_clear()


@pytest.fixture()
def client() -> TestClient:
    return TestClient(app)


FONTS_DIR = Path(__file__).parent / "fonts"


@pytest.fixture()
def signature_ttf() -> Path:
    return FONTS_DIR / "Lato-Regular.ttf"


@pytest.fixture()
def broken_ttf(tmp_path: Path) -> Path:
    path = tmp_path / "broken.ttf"
    path.write_bytes(b"\x00\x01\x00\x00 this is not a font")
    return path
