"""Cancellation token threaded through every provider call."""

import threading
from typing import Optional

from .errors import OperationCancelled


class CancelToken:
    """Cooperative cancellation flag.

    Providers check the token before each blocking step (listing, download,
    upload, image transfer). A transfer already in flight is not interrupted.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, key: Optional[str] = None, backend: Optional[str] = None) -> None:
        """Raise OperationCancelled if cancel() has been called."""
        if self._event.is_set():
            raise OperationCancelled("operation cancelled", key=key, backend=backend)


def check_cancelled(token: Optional[CancelToken], key: Optional[str] = None,
                    backend: Optional[str] = None) -> None:
    """Raise if the (optional) token has been cancelled."""
    if token is not None:
        token.raise_if_cancelled(key=key, backend=backend)
