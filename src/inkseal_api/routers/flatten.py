from __future__ import annotations

from io import BytesIO
import logging
from pathlib import Path

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from inkseal_api.core.annotations.model import AnnotationList
from inkseal_api.core.errors import APIError, PathOutsideRoot
from inkseal_api.core.flatten.config import get_flatten_config
from inkseal_api.core.flatten.engine import FlattenJob, FlattenResult, flatten_document
from inkseal_api.schemas.flatten import SaveRequest, SaveResponse
from inkseal_api.services import signature_store
from inkseal_api.services.edit_session import EditSession
from inkseal_api.settings import get_settings

router = APIRouter(prefix="/v1", tags=["flatten"])
logger = logging.getLogger("inkseal_api")


@router.post("/flatten")
async def flatten_upload(
    file: UploadFile = File(...),
    annotations: str = Form("[]"),
) -> StreamingResponse:
    if file.content_type not in {"application/pdf", "application/x-pdf"}:
        raise HTTPException(status_code=400, detail="Only PDF files are supported")
    content = await file.read()
    settings = get_settings()
    if len(content) > settings.INKSEAL_MAX_UPLOAD_MB * 1024 * 1024:
        raise HTTPException(status_code=413, detail="File exceeds upload limit")
    try:
        parsed = AnnotationList.validate_json(annotations)
    except ValidationError as exc:
        raise APIError(
            status_code=400,
            code="invalid_annotations",
            message="Invalid annotations payload",
            details={"errors": exc.errors(include_url=False)},
        ) from exc

    def _flatten() -> FlattenResult:
        return flatten_document(
            content,
            parsed,
            signature_store.load_signatures(),
            config=get_flatten_config(),
            job=FlattenJob(label=file.filename or "upload"),
        )

    result = await run_in_threadpool(_flatten)
    filename = file.filename or "document.pdf"
    headers = {
        "Content-Disposition": f'attachment; filename="{filename}"',
        "X-InkSeal-Drawn": str(len(result.report.drawn)),
        "X-InkSeal-Skipped": str(len(result.report.skipped)),
        "X-InkSeal-Font-Fallbacks": ",".join(result.report.font_fallbacks),
    }
    return StreamingResponse(BytesIO(result.payload), media_type="application/pdf", headers=headers)


def _confined(field: str, value: str, root: Path) -> Path:
    # relative paths are taken from the document root
    path = (root / value).resolve()
    if root not in path.parents:
        raise PathOutsideRoot(field, value)
    return path


@router.post("/documents/save", response_model=SaveResponse)
def save_document(payload: SaveRequest) -> SaveResponse:
    root = get_settings().document_root
    document_path = _confined("document_path", payload.document_path, root)
    output_path = _confined("output_path", payload.output_path, root) if payload.output_path else None
    session = EditSession()
    try:
        session.open(document_path)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Document not found") from exc
    try:
        if payload.annotations is not None:
            session.annotations.replace_all(payload.annotations)
        outcome = session.save(output_path, flatten=payload.flatten)
        if payload.persist:
            session.persist()
        return SaveResponse(
            document_key=session.document_key,
            output_path=str(outcome.output_path),
            size_bytes=outcome.size_bytes,
            flattened=outcome.flattened,
            report=outcome.report,
        )
    finally:
        session.close()
