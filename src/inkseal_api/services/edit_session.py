from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
import logging
from pathlib import Path
import threading
from typing import Iterator

import fitz

from inkseal_api.core.annotations.model import Signature
from inkseal_api.core.annotations.working_set import AnnotationWorkingSet
from inkseal_api.core.cancel import CancellationToken
from inkseal_api.core.errors import MalformedDocument, SaveInProgress
from inkseal_api.core.flatten.config import FlattenConfig, get_flatten_config
from inkseal_api.core.flatten.engine import FlattenJob, flatten_document
from inkseal_api.schemas.flatten import FlattenReport
from inkseal_api.services import annotation_store, signature_store
from inkseal_api.services.file_writer import write_file_bytes
from inkseal_api.settings import get_settings


logger = logging.getLogger("inkseal_api")


def document_key_for(path: str | Path) -> str:
    return str(Path(path).expanduser().resolve())


def default_output_path(source_path: str | Path) -> Path:
    source = Path(source_path)
    return source.with_name(f"{source.stem}_edited.pdf")


def count_pages(data: bytes) -> int:
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:  # MuPDF raises FileDataError and friends for unreadable input
        raise MalformedDocument("Document is not a readable PDF", {"reason": str(exc)}) from exc
    try:
        if doc.needs_pass:
            raise MalformedDocument("Encrypted documents are not supported")
        if doc.page_count == 0:
            raise MalformedDocument("Document has no pages")
        return doc.page_count
    finally:
        doc.close()


class SaveGuard:
    """Busy flags keyed by document; one save per document at a time."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._busy: set[str] = set()

    def is_busy(self, key: str) -> bool:
        with self._lock:
            return key in self._busy

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._lock:
            if key in self._busy:
                raise SaveInProgress(key)
            self._busy.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._busy.discard(key)


SAVE_GUARD = SaveGuard()


@dataclass
class OpenDocument:
    data: bytes
    file_name: str
    page_count: int
    path: Path | None = None
    document_key: str | None = None


@dataclass
class SaveOutcome:
    output_path: Path
    size_bytes: int
    flattened: bool
    report: FlattenReport | None = None


@dataclass
class _PendingWrite:
    output_path: Path
    payload: bytes
    flattened: bool
    report: FlattenReport | None


class EditSession:
    """One open document with its annotation working set."""

    def __init__(self, config: FlattenConfig | None = None, guard: SaveGuard | None = None) -> None:
        settings = get_settings()
        self.config = config or get_flatten_config()
        self.guard = guard or SAVE_GUARD
        self.document: OpenDocument | None = None
        self.annotations = AnnotationWorkingSet(
            default_font_size=settings.INKSEAL_TEXT_DEFAULT_FONT_SIZE,
            min_font_size=settings.INKSEAL_TEXT_MIN_FONT_SIZE,
            max_font_size=settings.INKSEAL_TEXT_MAX_FONT_SIZE,
        )
        self._pending: _PendingWrite | None = None

    @property
    def document_key(self) -> str | None:
        return self.document.document_key if self.document else None

    @property
    def busy(self) -> bool:
        return self.document is not None and self.guard.is_busy(self._guard_key())

    @property
    def pending_write(self) -> Path | None:
        return self._pending.output_path if self._pending else None

    def _guard_key(self) -> str:
        return self.document_key or f"memory:{id(self)}"

    def _require_document(self) -> OpenDocument:
        if self.document is None:
            raise RuntimeError("No document is open")
        return self.document

    def open(self, path: str | Path) -> OpenDocument:
        self.close()
        source = Path(path)
        data = source.read_bytes()
        page_count = count_pages(data)
        key = document_key_for(source)
        rows = annotation_store.load_annotations(key)
        self.document = OpenDocument(
            data=data,
            file_name=source.name,
            page_count=page_count,
            path=Path(key),
            document_key=key,
        )
        self.annotations.load_rows(rows)
        logger.info("Document opened document_key=%s pages=%s annotations=%s", key, page_count, len(self.annotations))
        return self.document

    def open_bytes(self, data: bytes, file_name: str = "untitled.pdf") -> OpenDocument:
        self.close()
        self.document = OpenDocument(data=data, file_name=file_name, page_count=count_pages(data))
        return self.document

    def close(self) -> None:
        self.document = None
        self.annotations.clear()
        self._pending = None

    def signatures(self) -> list[Signature]:
        return signature_store.load_signatures()

    def persist(self) -> int:
        """Snapshot the working set into the store; the working set is never modified."""
        document = self._require_document()
        if document.document_key is None:
            return 0
        rows = self.annotations.to_rows(document.document_key)
        annotation_store.replace_annotations(document.document_key, rows)
        return len(rows)

    def save(
        self,
        output_path: str | Path | None = None,
        *,
        flatten: bool = True,
        cancel_token: CancellationToken | None = None,
    ) -> SaveOutcome:
        document = self._require_document()
        target = self._target_path(output_path)
        with self.guard.hold(self._guard_key()):
            annotations = self.annotations.all()
            report: FlattenReport | None = None
            if flatten and annotations:
                result = flatten_document(
                    document.data,
                    annotations,
                    self.signatures(),
                    config=self.config,
                    cancel_token=cancel_token,
                    job=FlattenJob(label=document.document_key or document.file_name),
                )
                payload, report = result.payload, result.report
            else:
                payload = document.data
            self._pending = _PendingWrite(target, payload, flattened=report is not None, report=report)
            return self._write_pending()

    def retry_write(self, output_path: str | Path | None = None) -> SaveOutcome:
        """Write the bytes of the last failed save again without re-flattening."""
        if self._pending is None:
            raise RuntimeError("No pending write to retry")
        if output_path is not None:
            self._pending.output_path = Path(output_path)
        with self.guard.hold(self._guard_key()):
            return self._write_pending()

    def _write_pending(self) -> SaveOutcome:
        pending = self._pending
        size = write_file_bytes(pending.output_path, pending.payload)
        self._pending = None
        return SaveOutcome(
            output_path=pending.output_path,
            size_bytes=size,
            flattened=pending.flattened,
            report=pending.report,
        )

    def _target_path(self, output_path: str | Path | None) -> Path:
        if output_path is not None:
            return Path(output_path)
        document = self._require_document()
        if document.path is None:
            raise ValueError("output_path is required for documents without a file path")
        return default_output_path(document.path)
