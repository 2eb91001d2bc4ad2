from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from inkseal_api.core.annotations.model import (
    Annotation,
    DEFAULT_TEXT_COLOR,
    Signature,
    SignatureAnnotation,
    TextAnnotation,
    TEXT_BOX_HEIGHT,
    TEXT_BOX_WIDTH,
    TEXT_DEFAULT_FONT_SIZE,
)


class AnnotationRow(BaseModel):
    id: str
    document_key: str
    page_number: int
    type: Literal["text", "signature"]
    x: float
    y: float
    width: float = TEXT_BOX_WIDTH
    height: float = TEXT_BOX_HEIGHT
    text_content: str | None = None
    font_size: float | None = None
    color: str | None = None
    signature_id: int | None = None

    @model_validator(mode="after")
    def validate_kind_fields(self) -> "AnnotationRow":
        if self.type == "signature" and self.signature_id is None:
            raise ValueError("signature rows require signature_id")
        return self


class AnnotationDocument(BaseModel):
    document_key: str
    rows: list[AnnotationRow] = Field(default_factory=list)
    updated_at: datetime | None = None


class SignatureCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    font_family: str
    color: str = DEFAULT_TEXT_COLOR


class SignatureListResponse(BaseModel):
    signatures: list[Signature]


class SignatureFontEntry(BaseModel):
    label: str
    family: str
    available: bool


class AnnotationReplaceResponse(BaseModel):
    document_key: str
    rows: list[AnnotationRow]


def annotation_to_row(annotation: Annotation, document_key: str) -> AnnotationRow:
    if isinstance(annotation, TextAnnotation):
        return AnnotationRow(
            id=annotation.id,
            document_key=document_key,
            page_number=annotation.page_number,
            type="text",
            x=annotation.x,
            y=annotation.y,
            width=annotation.width,
            height=annotation.height,
            text_content=annotation.text,
            font_size=annotation.font_size,
            color=annotation.color,
        )
    return AnnotationRow(
        id=annotation.id,
        document_key=document_key,
        page_number=annotation.page_number,
        type="signature",
        x=annotation.x,
        y=annotation.y,
        width=annotation.width,
        height=annotation.height,
        signature_id=annotation.signature_id,
    )


def row_to_annotation(row: AnnotationRow, default_font_size: float = TEXT_DEFAULT_FONT_SIZE) -> Annotation:
    if row.type == "text":
        return TextAnnotation(
            id=row.id,
            page_number=row.page_number,
            x=row.x,
            y=row.y,
            width=row.width,
            height=row.height,
            text=row.text_content or "",
            font_size=row.font_size or default_font_size,
            color=row.color or DEFAULT_TEXT_COLOR,
        )
    return SignatureAnnotation(
        id=row.id,
        page_number=row.page_number,
        x=row.x,
        y=row.y,
        width=row.width,
        height=row.height,
        signature_id=row.signature_id,
    )
