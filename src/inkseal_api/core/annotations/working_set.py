from __future__ import annotations

import logging
from typing import Any, Iterable

from inkseal_api.core.annotations.model import (
    Annotation,
    AnnotationKind,
    Signature,
    SignatureAnnotation,
    TextAnnotation,
    TEXT_DEFAULT_FONT_SIZE,
    TEXT_MAX_FONT_SIZE,
    TEXT_MIN_FONT_SIZE,
    clamp_font_size,
    duplicate_ids,
    new_annotation_id,
)
from inkseal_api.core.errors import DuplicateAnnotationIds
from inkseal_api.schemas.annotations import AnnotationRow, annotation_to_row, row_to_annotation


logger = logging.getLogger("inkseal_api")

_IMMUTABLE_FIELDS = {"id", "kind"}


class AnnotationWorkingSet:
    """In-memory annotations of the open document.

    Authoritative during an edit session; the persistent store only receives a
    snapshot on explicit save. Iteration order is insertion order.
    """

    def __init__(
        self,
        *,
        default_font_size: float = TEXT_DEFAULT_FONT_SIZE,
        min_font_size: float = TEXT_MIN_FONT_SIZE,
        max_font_size: float = TEXT_MAX_FONT_SIZE,
    ) -> None:
        self._items: dict[str, Annotation] = {}
        self.selected_id: str | None = None
        self.default_font_size = default_font_size
        self.min_font_size = min_font_size
        self.max_font_size = max_font_size

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, annotation_id: object) -> bool:
        return annotation_id in self._items

    def get(self, annotation_id: str) -> Annotation | None:
        return self._items.get(annotation_id)

    def all(self) -> list[Annotation]:
        return list(self._items.values())

    def for_page(self, page_number: int) -> list[Annotation]:
        return [item for item in self._items.values() if item.page_number == page_number]

    def displayable(self, signatures: Iterable[Signature]) -> list[Annotation]:
        known = {signature.id for signature in signatures}
        return [
            item
            for item in self._items.values()
            if not isinstance(item, SignatureAnnotation) or item.signature_id in known
        ]

    def _clamp(self, value: Any) -> float:
        return clamp_font_size(value, self.min_font_size, self.max_font_size)

    def _fresh_id(self) -> str:
        annotation_id = new_annotation_id()
        while annotation_id in self._items:
            annotation_id = new_annotation_id()
        return annotation_id

    def create(
        self,
        kind: AnnotationKind,
        page_number: int,
        x: float,
        y: float,
        extra: dict[str, Any] | None = None,
    ) -> Annotation:
        payload = {key: value for key, value in (extra or {}).items() if key not in _IMMUTABLE_FIELDS}
        payload.update(id=self._fresh_id(), page_number=page_number, x=x, y=y)
        if kind == "text":
            payload["font_size"] = self._clamp(payload.get("font_size", self.default_font_size))
            annotation: Annotation = TextAnnotation.model_validate(payload)
        elif kind == "signature":
            if payload.get("signature_id") is None:
                raise ValueError("signature annotations require signature_id")
            annotation = SignatureAnnotation.model_validate(payload)
        else:
            raise ValueError(f"Unknown annotation kind: {kind!r}")
        self._items[annotation.id] = annotation
        self.selected_id = annotation.id
        return annotation

    def update(self, annotation_id: str, fields: dict[str, Any]) -> Annotation | None:
        current = self._items.get(annotation_id)
        if current is None:
            return None
        changes = {key: value for key, value in fields.items() if key not in _IMMUTABLE_FIELDS}
        if isinstance(current, TextAnnotation) and "font_size" in changes:
            changes["font_size"] = self._clamp(changes["font_size"])
        updated = type(current).model_validate({**current.model_dump(), **changes})
        self._items[annotation_id] = updated
        return updated

    def remove(self, annotation_id: str) -> None:
        self._items.pop(annotation_id, None)
        if self.selected_id == annotation_id:
            self.selected_id = None

    def select(self, annotation_id: str | None) -> None:
        if annotation_id is not None and annotation_id not in self._items:
            return
        self.selected_id = annotation_id

    def clear(self) -> None:
        self._items.clear()
        self.selected_id = None

    def replace_all(self, annotations: Iterable[Annotation]) -> None:
        annotations = list(annotations)
        duplicates = duplicate_ids(annotation.id for annotation in annotations)
        if duplicates:
            raise DuplicateAnnotationIds(duplicates)
        self.clear()
        for annotation in annotations:
            if isinstance(annotation, TextAnnotation):
                annotation = annotation.model_copy(update={"font_size": self._clamp(annotation.font_size)})
            self._items[annotation.id] = annotation

    def load_rows(self, rows: Iterable[AnnotationRow]) -> None:
        ordered = sorted(rows, key=lambda row: row.page_number)
        self.replace_all(row_to_annotation(row, default_font_size=self.default_font_size) for row in ordered)
        logger.debug("Working set loaded count=%s", len(self._items))

    def to_rows(self, document_key: str) -> list[AnnotationRow]:
        return [annotation_to_row(item, document_key) for item in self._items.values()]
