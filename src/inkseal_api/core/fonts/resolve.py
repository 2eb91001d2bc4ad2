from __future__ import annotations

import logging
import re

import fitz

from inkseal_api.core.errors import FontEmbedFailure
from inkseal_api.core.fonts.registry import FontRegistry, normalize_family


logger = logging.getLogger("inkseal_api.fonts")

BUILTIN_FONT = "helv"
_LINE_BREAK = re.compile(r"\r\n|\r|\n")
# Helvetica AFM metrics, in em units
HELVETICA_ASCENT = 0.718
HELVETICA_DESCENT = -0.207


def split_lines(text: str) -> list[str]:
    """Break on CRLF, CR and LF only; form feeds and other separators stay in the line."""
    return _LINE_BREAK.split(text)


def _resource_name(family: str) -> str:
    return "InkSeal" + re.sub(r"[^A-Za-z0-9]", "", family)


class FontHandle:
    def __init__(
        self,
        resource_name: str,
        font: fitz.Font,
        *,
        ascender: float,
        descender: float,
        buffer: bytes | None = None,
        family: str | None = None,
        fallback: bool = False,
    ) -> None:
        self.resource_name = resource_name
        self.font = font
        self.ascender = ascender
        self.descender = descender
        self.buffer = buffer
        self.family = family
        self.fallback = fallback

    @property
    def embedded(self) -> bool:
        return self.buffer is not None

    def ascent(self, font_size: float) -> float:
        return self.ascender * font_size

    def text_length(self, text: str, font_size: float) -> float:
        lines = split_lines(text)
        return max(self.font.text_length(line, fontsize=font_size) for line in lines)

    def install(self, page: fitz.Page) -> None:
        if self.embedded:
            page.insert_font(fontname=self.resource_name, fontbuffer=self.buffer)
        else:
            page.insert_font(fontname=self.resource_name)


def builtin_font_handle(family: str | None = None, fallback: bool = False) -> FontHandle:
    return FontHandle(
        BUILTIN_FONT,
        fitz.Font(BUILTIN_FONT),
        ascender=HELVETICA_ASCENT,
        descender=HELVETICA_DESCENT,
        family=family,
        fallback=fallback,
    )


class FontResolver:
    """Per-flatten font cache.

    Typed text always uses Helvetica. Signature families resolve through the
    registry; every failure degrades to Helvetica with one warning per family.
    """

    def __init__(self, registry: FontRegistry) -> None:
        self.registry = registry
        self._text_font: FontHandle | None = None
        self._signature_fonts: dict[str, FontHandle] = {}
        self.fallback_families: list[str] = []

    def text_font(self) -> FontHandle:
        if self._text_font is None:
            self._text_font = builtin_font_handle()
        return self._text_font

    def signature_font(self, family: str) -> FontHandle:
        key = normalize_family(family)
        handle = self._signature_fonts.get(key)
        if handle is None:
            try:
                handle = self._load(family)
            except FontEmbedFailure as exc:
                handle = self._fall_back(family, exc)
            self._signature_fonts[key] = handle
        return handle

    def install(self, handle: FontHandle, page: fitz.Page, family: str | None = None) -> FontHandle:
        """Add the handle's font to the page resources, degrading to Helvetica if embedding fails."""
        requested = family or handle.family or ""
        current = self._signature_fonts.get(normalize_family(requested))
        if current is not None and current.fallback and handle.embedded:
            # embedding already failed on an earlier page
            handle = current
        if not handle.embedded:
            handle.install(page)
            return handle
        try:
            handle.install(page)
            return handle
        except Exception as exc:  # MuPDF reports embedding problems with its own error types
            fallback = self._fall_back(requested, FontEmbedFailure(requested, f"embedding failed: {exc}"))
            self._signature_fonts[normalize_family(requested)] = fallback
            fallback.install(page)
            return fallback

    @property
    def has_embedded_fonts(self) -> bool:
        return any(handle.embedded for handle in self._signature_fonts.values())

    def _load(self, family: str) -> FontHandle:
        entry = self.registry.lookup(family)
        if entry is None:
            raise FontEmbedFailure(family, "family not registered")
        canonical, path = entry
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise FontEmbedFailure(family, f"unreadable font file {path}: {exc}") from exc
        try:
            font = fitz.Font(fontbuffer=data)
        except Exception as exc:  # MuPDF raises its own error types for unparsable buffers
            raise FontEmbedFailure(family, f"unparsable font file {path}: {exc}") from exc
        logger.debug("Loaded font family=%s path=%s glyphs=%s", canonical, path, font.glyph_count)
        return FontHandle(
            _resource_name(canonical),
            font,
            ascender=font.ascender,
            descender=font.descender,
            buffer=data,
            family=canonical,
        )

    def _fall_back(self, family: str, exc: FontEmbedFailure) -> FontHandle:
        reason = (exc.details or {}).get("reason")
        logger.warning("Font fallback family=%s fallback=%s reason=%s", family, BUILTIN_FONT, reason)
        self.fallback_families.append(family)
        return builtin_font_handle(family=family, fallback=True)
