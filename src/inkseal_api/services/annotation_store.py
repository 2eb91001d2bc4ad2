from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from inkseal_api.core.annotations.model import duplicate_ids
from inkseal_api.core.errors import DuplicateAnnotationIds, PersistenceFailure
from inkseal_api.schemas.annotations import AnnotationDocument, AnnotationRow
from inkseal_api.services.storage import get_storage


logger = logging.getLogger("inkseal_api.storage")

_STORAGE_ERRORS = (OSError, ValueError, ValidationError, ClientError, BotoCoreError)


def _annotations_key(document_key: str) -> str:
    digest = hashlib.sha256(document_key.encode("utf-8")).hexdigest()
    return f"annotations/{digest}.json"


def load_annotations(document_key: str) -> list[AnnotationRow]:
    """Stored rows for a document, page ascending then stored order."""
    try:
        storage = get_storage()
        key = _annotations_key(document_key)
        if not storage.exists(key):
            return []
        payload = json.loads(storage.get_bytes(key).decode("utf-8"))
        document = AnnotationDocument.model_validate(payload)
    except _STORAGE_ERRORS as exc:
        logger.warning("Annotation load failed document_key=%s error=%s", document_key, exc)
        raise PersistenceFailure("Failed to load annotations", {"document_key": document_key}) from exc
    rows = [row for row in document.rows if row.document_key == document_key]
    return sorted(rows, key=lambda row: row.page_number)


def replace_annotations(document_key: str, rows: list[AnnotationRow]) -> list[AnnotationRow]:
    """Drop every stored row for ``document_key`` and store ``rows`` in one object write."""
    duplicates = duplicate_ids(row.id for row in rows)
    if duplicates:
        raise DuplicateAnnotationIds(duplicates)
    document = AnnotationDocument(
        document_key=document_key,
        rows=[row.model_copy(update={"document_key": document_key}) for row in rows],
        updated_at=datetime.now(timezone.utc),
    )
    payload = json.dumps(
        document.model_dump(mode="json"),
        ensure_ascii=False,
        separators=(",", ":"),
        sort_keys=True,
    ).encode("utf-8")
    try:
        storage = get_storage()
        key = _annotations_key(document_key)
        if rows:
            storage.put_bytes(key, payload, content_type="application/json")
        else:
            storage.delete(key)
    except _STORAGE_ERRORS as exc:
        logger.warning("Annotation replace failed document_key=%s error=%s", document_key, exc)
        raise PersistenceFailure("Failed to save annotations", {"document_key": document_key}) from exc
    logger.info("Annotations replaced document_key=%s count=%s", document_key, len(rows))
    return document.rows
