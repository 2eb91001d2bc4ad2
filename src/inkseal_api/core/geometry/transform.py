from __future__ import annotations

from dataclasses import dataclass
import logging
import math
import re
from typing import Any

import fitz


logger = logging.getLogger("inkseal_api")

RIGHT_ANGLE_ROTATIONS = (0, 90, 180, 270)
_NUMBER_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)")


@dataclass(frozen=True)
class MediaBox:
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class PageGeometry:
    page_number: int
    media_box: MediaBox
    rotation: Any


@dataclass(frozen=True)
class PdfPlacement:
    pdf_x: float
    pdf_y: float
    text_rotation: int
    fallback: bool = False


def normalize_rotation(value: Any) -> Any:
    """Fold an integer-valued rotation into [0, 360).

    Anything that is not integer-valued is returned as-is; the transform treats it
    as an unsupported rotation.
    """
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return value
        value = int(value)
    if isinstance(value, int):
        return value % 360
    return value


def to_media_box_coords(x: float, y: float, font_ascent: float, geometry: PageGeometry) -> PdfPlacement:
    """Map a display-space top-left anchor to a baseline anchor in unrotated PDF space."""
    box = geometry.media_box
    rotation = normalize_rotation(geometry.rotation)
    if rotation == 90:
        # displayed width/height are the MediaBox height/width
        return PdfPlacement(box.x + y, box.y + x + font_ascent, 90)
    if rotation == 180:
        return PdfPlacement(box.x + box.width - x, box.y + y + font_ascent, 180)
    if rotation == 270:
        return PdfPlacement(box.x + box.height - y, box.y + box.width - x - font_ascent, 270)
    placement = PdfPlacement(box.x + x, box.y + box.height - y - font_ascent, 0)
    if rotation != 0:
        return PdfPlacement(placement.pdf_x, placement.pdf_y, 0, fallback=True)
    return placement


# -----------------------------------------------------------------------------
# Reading page geometry from the source document
# -----------------------------------------------------------------------------
def _inherited_key(doc: fitz.Document, xref: int, key: str) -> tuple[str, str]:
    seen: set[int] = set()
    while xref and xref not in seen:
        seen.add(xref)
        kind, value = doc.xref_get_key(xref, key)
        if kind != "null":
            return kind, value
        parent_kind, parent = doc.xref_get_key(xref, "Parent")
        if parent_kind != "xref":
            break
        xref = int(parent.split()[0])
    return "null", "null"


def _resolve(doc: fitz.Document, kind: str, value: str) -> tuple[str, str]:
    if kind == "xref":
        target = int(value.split()[0])
        return "object", doc.xref_object(target, compressed=True)
    return kind, value


def _parse_media_box(raw: str) -> MediaBox | None:
    numbers = [float(token) for token in _NUMBER_RE.findall(raw)]
    if len(numbers) != 4:
        return None
    x0, y0, x1, y1 = numbers
    return MediaBox(min(x0, x1), min(y0, y1), abs(x1 - x0), abs(y1 - y0))


def _parse_rotation(kind: str, raw: str) -> Any:
    if kind == "null":
        return 0
    try:
        value = float(raw)
    except ValueError:
        return raw
    return int(value) if value.is_integer() else value


def read_page_geometry(doc: fitz.Document, page_index: int) -> PageGeometry:
    page = doc[page_index]
    kind, raw_box = _resolve(doc, *_inherited_key(doc, page.xref, "MediaBox"))
    media_box = _parse_media_box(raw_box) if kind != "null" else None
    if media_box is None:
        rect = page.mediabox
        logger.warning("Unreadable MediaBox page=%s raw=%r; using %s", page_index + 1, raw_box, rect)
        media_box = MediaBox(rect.x0, rect.y0, rect.width, rect.height)
    rotate_kind, raw_rotate = _resolve(doc, *_inherited_key(doc, page.xref, "Rotate"))
    return PageGeometry(
        page_number=page_index + 1,
        media_box=media_box,
        rotation=normalize_rotation(_parse_rotation(rotate_kind, raw_rotate)),
    )
