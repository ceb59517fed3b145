"""Error taxonomy for reconciliation attempts.

Every ``ReconcileError`` is scoped to a single attempt and is retryable: the
controller requeues the key with backoff while ``retryable`` holds, and the
next attempt re-reads fresh state.  "Not found" and "nothing to do" are not
errors and never appear here, except for ``NotFoundError`` which the store
raises and the reconciler turns into success.
"""

from __future__ import annotations


class NotFoundError(Exception):
    """The requested object does not exist in the store."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"{kind} {key!r} not found")
        self.kind = kind
        self.key = key


class ReconcileError(Exception):
    """Base class for failures reported back to the work queue."""

    retryable = True


class MalformedDirectiveError(ReconcileError):
    """The inheritance annotation is present but yields no usable first key."""

    def __init__(self, raw_value: str) -> None:
        super().__init__(f"failed to parse node labels: {raw_value}")
        self.raw_value = raw_value


class ReadFailureError(ReconcileError):
    """Reading a pod or node failed for a reason other than absence."""

    def __init__(self, kind: str, key: str, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"failed to read {kind} {key!r}{detail}")
        self.kind = kind
        self.key = key
        self.cause = cause


class WriteConflictError(ReconcileError):
    """The update was rejected because the pod changed since it was read."""

    def __init__(self, key: str, cause: BaseException | None = None) -> None:
        super().__init__(f"conflict updating pod {key!r}; object was modified")
        self.key = key
        self.cause = cause


class WriteFailureError(ReconcileError):
    """The update failed for a reason other than an optimistic-concurrency conflict."""

    def __init__(self, key: str, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"failed to update pod {key!r}{detail}")
        self.key = key
        self.cause = cause


class ReconcileCancelledError(ReconcileError):
    """The attempt hit its deadline before completing.  Nothing was written."""

    def __init__(self, key: str, timeout: float) -> None:
        super().__init__(f"reconcile of {key!r} exceeded deadline of {timeout}s")
        self.key = key
        self.timeout = timeout
