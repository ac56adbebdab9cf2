import threading
from typing import Optional

from bead.errors import OperationCancelled


class CancellationToken:
    """
    Cooperative cancellation flag shared between a caller and a running pipeline.

    The pipelines poll it between grid rows, around clustering and between
    diversity-fill / merge iterations. Calling cancel() from another thread
    makes the next poll raise OperationCancelled.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: str = "") -> None:
        if self.cancelled:
            raise OperationCancelled(stage)


def check_cancelled(token: Optional[CancellationToken], stage: str = "") -> None:
    if token is not None:
        token.raise_if_cancelled(stage)
