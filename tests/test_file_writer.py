from __future__ import annotations

from pathlib import Path

import pytest

from inkseal_api.core.errors import WriteFailure
from inkseal_api.services.file_writer import write_file_bytes


def test_write_creates_parents_and_returns_size(tmp_path: Path) -> None:
    target = tmp_path / "out" / "nested" / "doc.pdf"
    payload = b"%PDF-1.7\n" + bytes(range(256)) * 4096
    assert write_file_bytes(target, payload) == len(payload)
    assert target.read_bytes() == payload


def test_write_replaces_existing_file_without_leftovers(tmp_path: Path) -> None:
    target = tmp_path / "doc.pdf"
    target.write_bytes(b"old")
    write_file_bytes(target, memoryview(b"new contents"))
    assert target.read_bytes() == b"new contents"
    assert [path.name for path in tmp_path.iterdir()] == ["doc.pdf"]


def test_write_failure_reports_reason(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_bytes(b"")
    with pytest.raises(WriteFailure) as excinfo:
        write_file_bytes(blocker / "doc.pdf", b"data")
    assert excinfo.value.details["path"] == str(blocker / "doc.pdf")
    assert excinfo.value.details["reason"]
