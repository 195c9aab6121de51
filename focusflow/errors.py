"""Error taxonomy for FocusFlow."""


class FocusFlowError(Exception):
    """Base class for all FocusFlow errors."""


class InvalidFormat(FocusFlowError, ValueError):
    """Malformed time string, out-of-range duration or otherwise invalid task input."""


class NotFound(FocusFlowError):
    """A referenced task or subtask no longer exists."""


class StoreUnavailable(FocusFlowError):
    """The timer store could not be reached or rejected the call."""


class BatchWriteFailed(StoreUnavailable):
    """A batched duration flush failed; the pending buffer must be retried."""
