from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class APIError(Exception):
    status_code: int
    code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class MalformedDocument(APIError):
    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(status_code=422, code="malformed_document", message=message, details=details)


class FontEmbedFailure(APIError):
    def __init__(self, family: str, reason: str) -> None:
        super().__init__(
            status_code=500,
            code="font_embed_failure",
            message=f"Could not embed font {family!r}",
            details={"family": family, "reason": reason},
        )


class PageIndexOutOfRange(APIError):
    def __init__(self, annotation_id: str, page_number: int, page_count: int) -> None:
        super().__init__(
            status_code=422,
            code="page_index_out_of_range",
            message="Annotation references a page outside the document",
            details={"annotation_id": annotation_id, "page_number": page_number, "page_count": page_count},
        )


class DanglingSignatureReference(APIError):
    def __init__(self, annotation_id: str, signature_id: int) -> None:
        super().__init__(
            status_code=422,
            code="dangling_signature_reference",
            message="Annotation references a deleted signature",
            details={"annotation_id": annotation_id, "signature_id": signature_id},
        )


class PersistenceFailure(APIError):
    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(status_code=503, code="persistence_failure", message=message, details=details)


class WriteFailure(APIError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(
            status_code=500,
            code="write_failure",
            message=f"Failed to write file: {reason}",
            details={"path": path, "reason": reason},
        )


class SaveInProgress(APIError):
    def __init__(self, document_key: str | None) -> None:
        super().__init__(
            status_code=409,
            code="save_in_progress",
            message="A save is already running for this document",
            details={"document_key": document_key},
        )


class FlattenCancelled(APIError):
    def __init__(self, stage: str) -> None:
        super().__init__(
            status_code=409,
            code="flatten_cancelled",
            message="Flatten was cancelled",
            details={"stage": stage},
        )


class SignatureNotFound(APIError):
    def __init__(self, signature_id: int) -> None:
        super().__init__(
            status_code=404,
            code="signature_not_found",
            message="Signature not found",
            details={"signature_id": signature_id},
        )


class PathOutsideRoot(APIError):
    def __init__(self, field: str, path: str) -> None:
        super().__init__(
            status_code=403,
            code="path_outside_root",
            message="Path is outside the document root",
            details={"field": field, "path": path},
        )


class DuplicateAnnotationIds(APIError):
    def __init__(self, annotation_ids: list[str]) -> None:
        super().__init__(
            status_code=422,
            code="duplicate_annotation_id",
            message="Annotation ids must be unique within a document",
            details={"annotation_ids": annotation_ids},
        )
