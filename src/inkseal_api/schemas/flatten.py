from __future__ import annotations

from pydantic import BaseModel, Field

from inkseal_api.core.annotations.model import Annotation


class DrawnAnnotation(BaseModel):
    id: str
    page_number: int
    kind: str
    pdf_x: float
    pdf_y: float
    text_rotation: int
    font: str
    font_size: float
    width: float
    overflow: bool = False


class SkippedAnnotation(BaseModel):
    id: str
    page_number: int
    reason: str


class FlattenReport(BaseModel):
    page_count: int = 0
    drawn: list[DrawnAnnotation] = Field(default_factory=list)
    skipped: list[SkippedAnnotation] = Field(default_factory=list)
    font_fallbacks: list[str] = Field(default_factory=list)
    rotation_fallbacks: int = 0


class SaveRequest(BaseModel):
    document_path: str
    output_path: str | None = None
    flatten: bool = True
    annotations: list[Annotation] | None = None
    persist: bool = False


class SaveResponse(BaseModel):
    document_key: str | None
    output_path: str
    size_bytes: int
    flattened: bool
    report: FlattenReport | None = None
