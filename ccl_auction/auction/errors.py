"""
Exception hierarchy for the auction core and its storage tiers.
"""

from typing import Optional


class AuctionError(Exception):
    """Base class for every error raised by the auction core."""


class ValidationRejected(AuctionError):
    """A bid broke the reserve, cap, roster or increment rule."""

    def __init__(self, reason, message: str, suggested_amount: Optional[int] = None):
        super().__init__(message)
        self.reason = reason
        self.suggested_amount = suggested_amount


class AuctionStateError(AuctionError):
    """An operation is not allowed in the auction's current state."""


class DistributionError(AuctionError):
    """A distribution assignment could not be staged or confirmed."""


class StorageError(AuctionError):
    """Base class for storage tier failures."""


class StorageWriteFailed(StorageError):
    """A replica could not persist a snapshot."""


class StorageReadFailed(StorageError):
    """A replica could not be reached while reading."""


class StorageReadEmpty(StorageError):
    """No snapshot exists for the requested auction id."""


class MalformedSnapshot(StorageError):
    """Persisted data is not a structurally valid snapshot."""
