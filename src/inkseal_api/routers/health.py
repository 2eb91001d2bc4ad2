from __future__ import annotations

from fastapi import APIRouter

from inkseal_api.core.flatten.config import get_flatten_config
from inkseal_api.settings import get_settings

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str | bool]:
    settings = get_settings()
    registry = get_flatten_config().registry
    return {
        "status": "ok",
        "build_version": settings.INKSEAL_BUILD_VERSION or "dev",
        "storage_driver": settings.INKSEAL_STORAGE_DRIVER,
        "signature_fonts_available": all(registry.is_available(family) for family in registry.families()),
    }
