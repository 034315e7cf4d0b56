from typing import Literal


Side = Literal["organic", "promoted"]


class FeedContractError(ValueError):
    """Candidate source handed the compositor a listing it cannot place."""

    def __init__(self, side: Side, index: int, reason: str):
        self.side = side
        self.index = index
        self.reason = reason
        super().__init__(f"{side} candidate #{index}: {reason}")


class AttributionError(RuntimeError):
    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation}: {reason}")


class AggregationError(RuntimeError):
    retryable = True

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)
