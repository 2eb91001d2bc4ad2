from __future__ import annotations

import threading

from inkseal_api.core.errors import FlattenCancelled


class CancellationToken:
    """Cooperative cancellation signal shared between a caller and a long-running job.

    The job checks the token at safe points (per page, per annotation) and stops by
    raising ``FlattenCancelled``; any thread may call ``cancel``.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str) -> None:
        if self.cancelled:
            raise FlattenCancelled(stage)
