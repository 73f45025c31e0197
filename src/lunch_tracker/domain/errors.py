"""Error taxonomy shared by services, adapters and the API."""


class LunchTrackerError(Exception):
    """Base class for errors surfaced to users."""


class ValidationError(LunchTrackerError):
    """Input rejected before any I/O was attempted."""


class StoreWriteError(LunchTrackerError):
    """A merge, replace, delete or batch write was not applied."""


class StoreSubscriptionError(LunchTrackerError):
    """A change stream could not be kept alive."""


class SuggestionServiceError(LunchTrackerError):
    """The suggestion service failed or returned unusable output."""
