"""Error kinds surfaced by the engine's request-scoped operations."""


class UpkeepError(Exception):
    """Base class for engine errors."""


class NotFoundError(UpkeepError, LookupError):
    """Referenced record does not exist or does not belong to the acting user.

    Ownership failures are reported the same way as missing records so a
    non-owner cannot probe for existence.
    """


class ValidationFailure(UpkeepError, ValueError):
    """Request is well-formed but cannot be applied."""


class DeliveryError(UpkeepError):
    """A channel provider could not deliver a notification."""
