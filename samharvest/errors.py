"""Error taxonomy shared by the fetcher, store and scheduler."""
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from samharvest.fetch.fetcher import FetchResult


class HarvestError(Exception):
    """Base class for all harvesting errors."""


class FetchError(HarvestError):
    """A request to the source failed.

    ``result`` holds whatever was accumulated for the window before the
    failure, including the number of pages already consumed.
    """

    def __init__(self, message: str, result: Optional["FetchResult"] = None):
        super().__init__(message)
        self.result = result


class RateLimited(FetchError):
    """The source signalled that the call budget is exhausted."""


class TransientError(FetchError):
    """Network failure, timeout or 5xx response."""


class MalformedResponse(FetchError):
    """A page could not be parsed."""


class StoreError(HarvestError):
    """A persistence operation failed."""


class RunInProgress(HarvestError):
    """Another harvesting run holds the run lock."""
