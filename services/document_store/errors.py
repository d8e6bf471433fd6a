"""Errors raised by the remote document store client."""

from typing import Optional


class DocumentStoreError(Exception):
    """A create/update/delete against the remote document store failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        path: Optional[str] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.path = path
        self.retry_after = retry_after

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429
