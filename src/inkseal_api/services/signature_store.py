from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, Field, ValidationError

from inkseal_api.core.annotations.model import Signature
from inkseal_api.core.errors import PersistenceFailure, SignatureNotFound
from inkseal_api.services.storage import get_storage


logger = logging.getLogger("inkseal_api.storage")

SIGNATURES_KEY = "signatures/signatures.json"
_STORAGE_ERRORS = (OSError, ValueError, ValidationError, ClientError, BotoCoreError)
# serializes read-modify-write of the table within this process
_TABLE_LOCK = threading.Lock()


class _SignatureTable(BaseModel):
    next_id: int = 1
    signatures: list[Signature] = Field(default_factory=list)


def _load_table() -> _SignatureTable:
    try:
        storage = get_storage()
        if not storage.exists(SIGNATURES_KEY):
            return _SignatureTable()
        payload = json.loads(storage.get_bytes(SIGNATURES_KEY).decode("utf-8"))
        return _SignatureTable.model_validate(payload)
    except _STORAGE_ERRORS as exc:
        logger.warning("Signature load failed error=%s", exc)
        raise PersistenceFailure("Failed to load signatures") from exc


def _save_table(table: _SignatureTable) -> None:
    payload = json.dumps(table.model_dump(mode="json"), ensure_ascii=False, separators=(",", ":"), sort_keys=True)
    try:
        get_storage().put_bytes(SIGNATURES_KEY, payload.encode("utf-8"), content_type="application/json")
    except _STORAGE_ERRORS as exc:
        logger.warning("Signature save failed error=%s", exc)
        raise PersistenceFailure("Failed to save signatures") from exc


def load_signatures() -> list[Signature]:
    """Newest first."""
    table = _load_table()
    return sorted(table.signatures, key=lambda item: (item.created_at or datetime.min.replace(tzinfo=timezone.utc), item.id), reverse=True)


def get_signature(signature_id: int) -> Signature | None:
    return next((item for item in _load_table().signatures if item.id == signature_id), None)


def save_signature(name: str, font_family: str, color: str) -> int:
    with _TABLE_LOCK:
        table = _load_table()
        signature = Signature(
            id=table.next_id,
            name=name,
            font_family=font_family,
            color=color,
            created_at=datetime.now(timezone.utc),
        )
        table.signatures.append(signature)
        table.next_id += 1
        _save_table(table)
    logger.info("Signature saved id=%s font_family=%s", signature.id, font_family)
    return signature.id


def delete_signature(signature_id: int) -> None:
    with _TABLE_LOCK:
        table = _load_table()
        remaining = [item for item in table.signatures if item.id != signature_id]
        if len(remaining) == len(table.signatures):
            raise SignatureNotFound(signature_id)
        table.signatures = remaining
        _save_table(table)
    logger.info("Signature deleted id=%s", signature_id)
