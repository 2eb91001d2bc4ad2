from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import re


@dataclass(frozen=True)
class SignatureFont:
    label: str
    family: str
    file_name: str


SIGNATURE_FONTS = (
    SignatureFont("Elegant", "Dancing Script", "DancingScript-Regular.ttf"),
    SignatureFont("Formal", "Great Vibes", "GreatVibes-Regular.ttf"),
    SignatureFont("Classic", "Sacramento", "Sacramento-Regular.ttf"),
)


def normalize_family(raw: str | None) -> str:
    if not raw:
        return ""
    return re.sub(r"[-_,\s]+", "", raw.strip().lower())


@dataclass(frozen=True)
class FontRegistry:
    """Family name -> outline font file. Read-only once built."""

    paths: dict[str, Path] = field(default_factory=dict)

    @classmethod
    def bundled(cls, font_dir: Path) -> "FontRegistry":
        return cls({font.family: Path(font_dir) / font.file_name for font in SIGNATURE_FONTS})

    def lookup(self, family: str | None) -> tuple[str, Path] | None:
        wanted = normalize_family(family)
        if not wanted:
            return None
        for name, path in self.paths.items():
            if normalize_family(name) == wanted:
                return name, Path(path)
        return None

    def families(self) -> list[str]:
        return list(self.paths)

    def is_available(self, family: str) -> bool:
        entry = self.lookup(family)
        return entry is not None and entry[1].is_file()
