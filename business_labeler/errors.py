"""Error taxonomy for the label reconciler."""

from typing import Optional


class LabelerError(Exception):
    """Base class for reconciler errors."""

    pass


class CategoryTableError(LabelerError):
    """Raised when the category table cannot be loaded or validated."""

    pass


class APIRequestError(LabelerError):
    """
    Raised when the cluster API rejects a request for a non-transient reason.

    Covers authorization failures, missing resources and invalid requests.
    Not retried.
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TransientAPIError(APIRequestError):
    """Raised on transport failures, timeouts, rate limiting and server errors."""

    pass


class ConflictError(APIRequestError):
    """Raised when a write is rejected because the resourceVersion is stale."""

    pass


class FatalEnumerationError(LabelerError):
    """Raised when work cannot be partitioned because listing failed."""

    pass
