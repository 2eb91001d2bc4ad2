from __future__ import annotations

from fastapi import APIRouter, Query

from inkseal_api.core.annotations.model import Annotation
from inkseal_api.schemas.annotations import AnnotationReplaceResponse, annotation_to_row
from inkseal_api.services import annotation_store

router = APIRouter(prefix="/v1/annotations", tags=["annotations"])


@router.get("", response_model=AnnotationReplaceResponse)
def get_annotations(document_key: str = Query(..., min_length=1)) -> AnnotationReplaceResponse:
    return AnnotationReplaceResponse(document_key=document_key, rows=annotation_store.load_annotations(document_key))


@router.put("", response_model=AnnotationReplaceResponse)
def replace_annotations(
    annotations: list[Annotation],
    document_key: str = Query(..., min_length=1),
) -> AnnotationReplaceResponse:
    rows = [annotation_to_row(annotation, document_key) for annotation in annotations]
    stored = annotation_store.replace_annotations(document_key, rows)
    return AnnotationReplaceResponse(document_key=document_key, rows=stored)
