from __future__ import annotations

import logging
from pathlib import Path

from inkseal_api.core.errors import WriteFailure
from inkseal_api.services.storage import atomic_write


logger = logging.getLogger("inkseal_api")


def write_file_bytes(path: str | Path, payload: bytes | bytearray | memoryview) -> int:
    """Write raw bytes to ``path`` atomically; returns the number of bytes written.

    The payload is handed to the OS through a memoryview, never re-encoded.
    """
    target = Path(path)
    view = memoryview(payload)
    try:
        atomic_write(target, view)
    except OSError as exc:
        logger.warning("File write failed path=%s size=%s error=%s", target, view.nbytes, exc)
        raise WriteFailure(str(target), exc.strerror or str(exc)) from exc
    logger.info("File written path=%s size=%s", target, view.nbytes)
    return view.nbytes
