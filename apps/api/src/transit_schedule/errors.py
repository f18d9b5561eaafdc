"""Failure types surfaced by a static feed refresh."""


class ScheduleFeedError(Exception):
    """Base class for refresh-level failures."""


class NetworkError(ScheduleFeedError):
    """Raised when the feed could not be fetched. Retryable by the caller."""


class CorruptArchiveError(ScheduleFeedError):
    """Raised when the archive structure or an entry payload is unusable."""


class SecurityViolationError(ScheduleFeedError):
    """Raised for oversized entries, suspicious compression ratios or unsafe paths."""
