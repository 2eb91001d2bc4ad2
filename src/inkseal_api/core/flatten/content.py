from __future__ import annotations

from dataclasses import dataclass

import fitz

from inkseal_api.core.fonts.resolve import FontHandle, split_lines


def hex_to_rgb(value: str | None) -> tuple[float, float, float]:
    if not value or not value.startswith("#") or len(value) != 7:
        return (0.0, 0.0, 0.0)
    try:
        r = int(value[1:3], 16) / 255
        g = int(value[3:5], 16) / 255
        b = int(value[5:7], 16) / 255
        return (r, g, b)
    except ValueError:
        return (0.0, 0.0, 0.0)


def shape_point(shape: fitz.Shape, pdf_x: float, pdf_y: float) -> fitz.Point:
    """Insertion point for ``Shape.insert_text`` whose baseline lands on PDF (pdf_x, pdf_y).

    The same point works for every ``rotate`` value because the shape applies
    its rotation around the converted origin.
    """
    return fitz.Point(pdf_x - shape.x, shape.height - shape.y - pdf_y)


@dataclass(frozen=True)
class TextDraw:
    text: str
    font: FontHandle
    font_size: float
    color: tuple[float, float, float]
    x: float
    y: float
    rotation: int = 0


def draw_text(shape: fitz.Shape, draw: TextDraw) -> int:
    """Queue one annotation on the page shape. Returns the number of lines written."""
    return shape.insert_text(
        shape_point(shape, draw.x, draw.y),
        split_lines(draw.text),
        fontsize=draw.font_size,
        lineheight=draw.font.ascender - draw.font.descender,
        fontname=draw.font.resource_name,
        color=draw.color,
        rotate=draw.rotation,
    )
