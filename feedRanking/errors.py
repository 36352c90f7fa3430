"""
Error taxonomy for the feed ranking core.
"""


class RankingError(Exception):
    """Base class for ranking failures surfaced to callers."""

    retryable = False


class InvalidRequest(RankingError):
    """Malformed page/page size, unsupported strategy or timeframe combination."""


class RepositoryUnavailable(RankingError):
    """The upstream candidate fetch failed or timed out."""

    retryable = True


class RankingCancelled(RankingError):
    """The caller cancelled the request before scoring began."""


class MalformedContentItem(ValueError):
    """A single content record is corrupt and must be excluded from ranking."""

    def __init__(self, item_id, reason: str):
        self.item_id = item_id
        self.reason = reason
        super().__init__(f"Malformed content item {item_id}: {reason}")
