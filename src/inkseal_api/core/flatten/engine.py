from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from itertools import groupby
import logging
from typing import Iterable

import fitz

from inkseal_api.core.annotations.model import Annotation, Signature, TextAnnotation
from inkseal_api.core.cancel import CancellationToken
from inkseal_api.core.errors import DanglingSignatureReference, MalformedDocument, PageIndexOutOfRange
from inkseal_api.core.flatten.config import FlattenConfig
from inkseal_api.core.flatten.content import TextDraw, draw_text, hex_to_rgb
from inkseal_api.core.fonts.resolve import FontHandle, FontResolver
from inkseal_api.core.geometry.transform import read_page_geometry, to_media_box_coords
from inkseal_api.schemas.flatten import DrawnAnnotation, FlattenReport, SkippedAnnotation


logger = logging.getLogger("inkseal_api")


class FlattenState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    EMBEDDING = "embedding"
    WRITING = "writing"
    SERIALIZED = "serialized"
    FAILED = "failed"


_TRANSITIONS = {
    FlattenState.IDLE: {FlattenState.LOADING, FlattenState.FAILED},
    FlattenState.LOADING: {FlattenState.EMBEDDING, FlattenState.FAILED},
    FlattenState.EMBEDDING: {FlattenState.WRITING, FlattenState.FAILED},
    FlattenState.WRITING: {FlattenState.SERIALIZED, FlattenState.FAILED},
    FlattenState.SERIALIZED: set(),
    FlattenState.FAILED: set(),
}


class FlattenJob:
    """State tracker for one flatten run. Terminal states are never left; nothing is retried."""

    def __init__(self, label: str = "memory") -> None:
        self.label = label
        self.state = FlattenState.IDLE
        self.history: list[FlattenState] = [FlattenState.IDLE]

    @property
    def finished(self) -> bool:
        return self.state in {FlattenState.SERIALIZED, FlattenState.FAILED}

    def advance(self, state: FlattenState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid flatten transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)
        logger.debug("Flatten state doc=%s state=%s", self.label, state.value)

    def fail(self) -> None:
        if not self.finished:
            self.advance(FlattenState.FAILED)


@dataclass(frozen=True)
class FlattenResult:
    payload: bytes
    report: FlattenReport


@dataclass
class _DrawPlan:
    annotation: Annotation
    page_index: int
    text: str
    font: FontHandle
    family: str | None
    font_size: float
    color: tuple[float, float, float]


def _open_source(source: bytes | bytearray | memoryview) -> fitz.Document:
    if not source:
        raise MalformedDocument("Source document is empty")
    stream = source if isinstance(source, (bytes, bytearray)) else bytes(source)
    try:
        doc = fitz.open(stream=stream, filetype="pdf")
    except Exception as exc:  # MuPDF raises FileDataError and friends for unreadable input
        raise MalformedDocument("Source bytes are not a readable PDF", {"reason": str(exc)}) from exc
    if doc.needs_pass:
        doc.close()
        raise MalformedDocument("Encrypted documents are not supported")
    if doc.page_count == 0:
        doc.close()
        raise MalformedDocument("Source document has no pages")
    return doc


def _plan(
    annotation: Annotation,
    page_count: int,
    signatures: dict[int, Signature],
    fonts: FontResolver,
    config: FlattenConfig,
) -> _DrawPlan | None:
    page_index = annotation.page_number - 1
    if isinstance(annotation, TextAnnotation):
        if not annotation.text:
            return None
        if not 0 <= page_index < page_count:
            raise PageIndexOutOfRange(annotation.id, annotation.page_number, page_count)
        return _DrawPlan(
            annotation,
            page_index,
            annotation.text,
            fonts.text_font(),
            None,
            annotation.font_size,
            hex_to_rgb(annotation.color),
        )
    signature = signatures.get(annotation.signature_id)
    if signature is None:
        raise DanglingSignatureReference(annotation.id, annotation.signature_id)
    if not signature.name:
        return None
    if not 0 <= page_index < page_count:
        raise PageIndexOutOfRange(annotation.id, annotation.page_number, page_count)
    return _DrawPlan(
        annotation,
        page_index,
        signature.name,
        fonts.signature_font(signature.font_family),
        signature.font_family,
        config.signature_font_size,
        hex_to_rgb(signature.color),
    )


def _subset_fonts(doc: fitz.Document) -> None:
    try:
        doc.subset_fonts()
    except Exception as exc:  # subsetting is an optimisation; full embedding stays valid
        logger.warning("Font subsetting failed; keeping full embedding error=%s", exc)


def flatten_document(
    source: bytes | bytearray | memoryview,
    annotations: Iterable[Annotation],
    signatures: Iterable[Signature],
    config: FlattenConfig | None = None,
    cancel_token: CancellationToken | None = None,
    job: FlattenJob | None = None,
) -> FlattenResult:
    """Draw every annotation into its page's content stream and serialize the document.

    Pre-existing page content, form fields, outlines, attachments and scripts are
    left in place; the output is a full rewrite of the document.
    """
    config = config or FlattenConfig.default()
    cancel_token = cancel_token or CancellationToken()
    job = job or FlattenJob()
    report = FlattenReport()

    try:
        job.advance(FlattenState.LOADING)
        doc = _open_source(source)
    except Exception:
        job.fail()
        raise

    try:
        report.page_count = doc.page_count
        signatures_by_id = {signature.id: signature for signature in signatures}
        ordered = sorted(annotations, key=lambda item: item.page_number)

        job.advance(FlattenState.EMBEDDING)
        fonts = FontResolver(config.registry)
        plans: list[_DrawPlan] = []
        for annotation in ordered:
            cancel_token.raise_if_cancelled("embedding")
            try:
                plan = _plan(annotation, doc.page_count, signatures_by_id, fonts, config)
            except (PageIndexOutOfRange, DanglingSignatureReference) as exc:
                logger.debug("Skipping annotation id=%s reason=%s", annotation.id, exc.code)
                report.skipped.append(
                    SkippedAnnotation(id=annotation.id, page_number=annotation.page_number, reason=exc.code)
                )
                continue
            if plan is None:
                logger.debug("Skipping annotation id=%s reason=empty_text", annotation.id)
                report.skipped.append(
                    SkippedAnnotation(id=annotation.id, page_number=annotation.page_number, reason="empty_text")
                )
                continue
            plans.append(plan)

        job.advance(FlattenState.WRITING)
        for page_index, group in groupby(plans, key=lambda item: item.page_index):
            cancel_token.raise_if_cancelled("writing")
            page = doc[page_index]
            geometry = read_page_geometry(doc, page_index)
            shape = page.new_shape()
            rotation_warned = False
            for plan in group:
                cancel_token.raise_if_cancelled("writing")
                font = fonts.install(plan.font, page, plan.family)
                placement = to_media_box_coords(
                    plan.annotation.x,
                    plan.annotation.y,
                    font.ascent(plan.font_size),
                    geometry,
                )
                if placement.fallback:
                    report.rotation_fallbacks += 1
                    if not rotation_warned:
                        rotation_warned = True
                        logger.warning(
                            "Unsupported page rotation page=%s rotation=%r; drawing unrotated",
                            geometry.page_number,
                            geometry.rotation,
                        )
                draw_text(
                    shape,
                    TextDraw(
                        text=plan.text,
                        font=font,
                        font_size=plan.font_size,
                        color=plan.color,
                        x=placement.pdf_x,
                        y=placement.pdf_y,
                        rotation=placement.text_rotation,
                    ),
                )
                width = font.text_length(plan.text, plan.font_size)
                report.drawn.append(
                    DrawnAnnotation(
                        id=plan.annotation.id,
                        page_number=plan.annotation.page_number,
                        kind=plan.annotation.kind,
                        pdf_x=placement.pdf_x,
                        pdf_y=placement.pdf_y,
                        text_rotation=placement.text_rotation,
                        font=font.resource_name,
                        font_size=plan.font_size,
                        width=width,
                        overflow=width > plan.annotation.width,
                    )
                )
            # one appended stream per page; earlier streams are only balanced with q/Q
            shape.commit(overlay=True)

        if config.subset_fonts and fonts.has_embedded_fonts:
            _subset_fonts(doc)
        report.font_fallbacks = list(fonts.fallback_families)
        payload = doc.tobytes(garbage=1, deflate=True)
        job.advance(FlattenState.SERIALIZED)
    except Exception:
        job.fail()
        raise
    finally:
        doc.close()

    logger.info(
        "Flatten complete doc=%s pages=%s drawn=%s skipped=%s font_fallbacks=%s rotation_fallbacks=%s bytes=%s",
        job.label,
        report.page_count,
        len(report.drawn),
        len(report.skipped),
        len(report.font_fallbacks),
        report.rotation_fallbacks,
        len(payload),
    )
    return FlattenResult(payload=payload, report=report)


def flatten_pdf(
    source: bytes | bytearray | memoryview,
    annotations: Iterable[Annotation],
    signatures: Iterable[Signature],
    config: FlattenConfig | None = None,
    cancel_token: CancellationToken | None = None,
) -> bytes:
    return flatten_document(source, annotations, signatures, config=config, cancel_token=cancel_token).payload
