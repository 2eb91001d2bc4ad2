from __future__ import annotations

import asyncio
import json
from pathlib import Path

import fitz
import pytest
from fastapi.testclient import TestClient

from inkseal_api.core.flatten.config import get_flatten_config
from inkseal_api.services import signature_store
from inkseal_api.settings import get_settings
from tests.pdf_factory import make_plain_pdf_bytes


def _flatten(client: TestClient, annotations, data: bytes | None = None, content_type: str = "application/pdf"):
    return client.post(
        "/v1/flatten",
        files={"file": ("contract.pdf", data if data is not None else make_plain_pdf_bytes(), content_type)},
        data={"annotations": json.dumps(annotations) if not isinstance(annotations, str) else annotations},
    )


def test_flatten_upload(client: TestClient) -> None:
    signature = client.post("/v1/signatures", json={"name": "Jane Doe", "font_family": "Great Vibes"}).json()
    annotations = [
        {"kind": "text", "page_number": 1, "x": 100, "y": 100, "text": "Approved"},
        {"kind": "signature", "page_number": 1, "x": 100, "y": 300, "signature_id": signature["id"]},
        {"kind": "signature", "page_number": 1, "x": 100, "y": 500, "signature_id": 999},
    ]
    response = _flatten(client, annotations)
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/pdf")
    assert response.headers["x-inkseal-drawn"] == "2"
    assert response.headers["x-inkseal-skipped"] == "1"
    assert "attachment" in response.headers["content-disposition"]

    doc = fitz.open(stream=response.content, filetype="pdf")
    try:
        text = doc[0].get_text()
    finally:
        doc.close()
    assert "Approved" in text
    assert "Jane Doe" in text


def test_flatten_reports_font_fallbacks(client: TestClient, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INKSEAL_FONT_DIR", str(tmp_path / "no-fonts"))
    get_settings.cache_clear()
    get_flatten_config.cache_clear()
    signature = client.post("/v1/signatures", json={"name": "Jane", "font_family": "Sacramento"}).json()
    response = _flatten(client, [{"kind": "signature", "page_number": 1, "x": 0, "y": 0, "signature_id": signature["id"]}])
    assert response.status_code == 200
    assert response.headers["x-inkseal-font-fallbacks"] == "Sacramento"


def test_flatten_rejects_bad_annotations(client: TestClient) -> None:
    response = _flatten(client, "[{\"kind\": \"stamp\"}]")
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_annotations"


def test_flatten_rejects_non_pdf_upload(client: TestClient) -> None:
    response = _flatten(client, [], data=b"hello", content_type="text/plain")
    assert response.status_code == 400


def test_flatten_malformed_pdf(client: TestClient) -> None:
    response = _flatten(client, [], data=b"this is not a pdf")
    assert response.status_code == 422
    assert response.json()["error"] == "malformed_document"


def test_save_document(client: TestClient, tmp_path: Path) -> None:
    source = tmp_path / "lease.pdf"
    source.write_bytes(make_plain_pdf_bytes())
    payload = {
        "document_path": str(source),
        "annotations": [{"kind": "text", "page_number": 1, "x": 72, "y": 200, "text": "Signed copy"}],
        "persist": True,
    }
    response = client.post("/v1/documents/save", json=payload)
    assert response.status_code == 200
    body = response.json()
    assert body["flattened"] is True
    assert Path(body["output_path"]).name == "lease_edited.pdf"
    assert body["size_bytes"] == Path(body["output_path"]).stat().st_size
    assert len(body["report"]["drawn"]) == 1

    stored = client.get("/v1/annotations", params={"document_key": body["document_key"]}).json()
    assert [row["text_content"] for row in stored["rows"]] == ["Signed copy"]


def test_save_missing_document(client: TestClient, tmp_path: Path) -> None:
    response = client.post("/v1/documents/save", json={"document_path": str(tmp_path / "missing.pdf")})
    assert response.status_code == 404


def test_flatten_runs_off_the_event_loop(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[bool] = []

    def recording_load_signatures():
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            seen.append(False)
        else:
            seen.append(True)
        return []

    monkeypatch.setattr(signature_store, "load_signatures", recording_load_signatures)
    response = _flatten(client, [{"kind": "text", "page_number": 1, "x": 10, "y": 10, "text": "Hi"}])
    assert response.status_code == 200
    assert seen == [False]


def _nested_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = tmp_path / "documents"
    root.mkdir()
    monkeypatch.setenv("INKSEAL_DOCUMENT_ROOT", str(root))
    get_settings.cache_clear()
    return root


def test_save_rejects_document_outside_root(
    client: TestClient, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    _nested_root(tmp_path, monkeypatch)
    private = tmp_path / "private.pdf"
    private.write_bytes(make_plain_pdf_bytes())
    for document_path in (str(private), "../private.pdf"):
        response = client.post("/v1/documents/save", json={"document_path": document_path})
        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "path_outside_root"
        assert body["details"]["field"] == "document_path"
    assert not (tmp_path / "private_edited.pdf").exists()


def test_save_rejects_output_outside_root(client: TestClient, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    root = _nested_root(tmp_path, monkeypatch)
    (root / "lease.pdf").write_bytes(make_plain_pdf_bytes())
    response = client.post(
        "/v1/documents/save",
        json={"document_path": "lease.pdf", "output_path": "../../overwritten.pdf"},
    )
    assert response.status_code == 403
    assert response.json()["details"]["field"] == "output_path"
    assert not (tmp_path.parent / "overwritten.pdf").exists()


def test_save_relative_paths_resolve_under_root(
    client: TestClient, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = _nested_root(tmp_path, monkeypatch)
    (root / "contracts").mkdir()
    (root / "contracts" / "lease.pdf").write_bytes(make_plain_pdf_bytes())
    response = client.post(
        "/v1/documents/save",
        json={"document_path": "contracts/lease.pdf", "output_path": "contracts/out/lease_signed.pdf", "flatten": False},
    )
    assert response.status_code == 200
    assert Path(response.json()["output_path"]) == (root / "contracts" / "out" / "lease_signed.pdf").resolve()


def test_save_rejects_duplicate_annotation_ids(client: TestClient, tmp_path: Path) -> None:
    source = tmp_path / "lease.pdf"
    source.write_bytes(make_plain_pdf_bytes())
    annotation = {"id": "ann_1", "kind": "text", "page_number": 1, "x": 72, "y": 200, "text": "First"}
    payload = {"document_path": str(source), "annotations": [annotation, {**annotation, "text": "Second"}]}
    response = client.post("/v1/documents/save", json=payload)
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "duplicate_annotation_id"
    assert body["details"]["annotation_ids"] == ["ann_1"]
    assert not (tmp_path / "lease_edited.pdf").exists()
