from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Annotated, Iterable, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, Field, TypeAdapter


TEXT_DEFAULT_FONT_SIZE = 14.0
TEXT_MIN_FONT_SIZE = 8.0
TEXT_MAX_FONT_SIZE = 48.0
SIGNATURE_DEFAULT_FONT_SIZE = 32.0

DEFAULT_TEXT_COLOR = "#000000"
TEXT_BOX_WIDTH = 200.0
TEXT_BOX_HEIGHT = 30.0
SIGNATURE_BOX_WIDTH = 200.0
SIGNATURE_BOX_HEIGHT = 60.0

SIGNATURE_COLORS = {
    "Black": "#000000",
    "Dark Blue": "#1a237e",
    "Navy": "#0d47a1",
}

AnnotationKind = Literal["text", "signature"]


def new_annotation_id() -> str:
    return f"ann_{uuid4().hex}"


def clamp_font_size(value: float, minimum: float = TEXT_MIN_FONT_SIZE, maximum: float = TEXT_MAX_FONT_SIZE) -> float:
    return min(maximum, max(minimum, float(value)))


def duplicate_ids(ids: Iterable[str]) -> list[str]:
    return sorted(annotation_id for annotation_id, count in Counter(ids).items() if count > 1)


class AnnotationBase(BaseModel):
    # x/y are display-space points (top-left origin, page rotation already applied)
    id: str = Field(default_factory=new_annotation_id)
    page_number: int
    x: float
    y: float
    width: float = TEXT_BOX_WIDTH
    height: float = TEXT_BOX_HEIGHT


class TextAnnotation(AnnotationBase):
    kind: Literal["text"] = "text"
    text: str = ""
    font_size: float = TEXT_DEFAULT_FONT_SIZE
    color: str = DEFAULT_TEXT_COLOR


class SignatureAnnotation(AnnotationBase):
    kind: Literal["signature"] = "signature"
    height: float = SIGNATURE_BOX_HEIGHT
    signature_id: int


Annotation = Annotated[Union[TextAnnotation, SignatureAnnotation], Field(discriminator="kind")]
AnnotationList = TypeAdapter(list[Annotation])


class Signature(BaseModel):
    id: int
    name: str
    font_family: str
    color: str = DEFAULT_TEXT_COLOR
    created_at: datetime | None = None
