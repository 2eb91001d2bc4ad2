from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from inkseal_api.core.annotations.model import SIGNATURE_DEFAULT_FONT_SIZE
from inkseal_api.core.fonts.registry import FontRegistry
from inkseal_api.settings import BUNDLED_FONT_DIR, get_settings


@dataclass(frozen=True)
class FlattenConfig:
    registry: FontRegistry
    signature_font_size: float = SIGNATURE_DEFAULT_FONT_SIZE
    subset_fonts: bool = True

    @classmethod
    def default(cls) -> "FlattenConfig":
        return cls(registry=FontRegistry.bundled(BUNDLED_FONT_DIR))


@lru_cache
def get_flatten_config() -> FlattenConfig:
    settings = get_settings()
    return FlattenConfig(
        registry=FontRegistry.bundled(settings.font_dir),
        signature_font_size=settings.INKSEAL_SIGNATURE_FONT_SIZE,
        subset_fonts=settings.INKSEAL_SUBSET_FONTS,
    )
