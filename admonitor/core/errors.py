"""Exception types raised across the monitor's component boundaries."""


class MonitorError(Exception):
    """Base class for ad-reply monitor errors."""


class InitializationError(MonitorError):
    """The monitoring run could not reach the ACTIVE state.

    Raised for rejected credentials, a browser that cannot launch, or an
    inbox that cannot be reached. Counted by the recovery controller.
    """


class CredentialUnavailableError(MonitorError):
    """The credential store has no session to hand out."""


class MessageValidationError(MonitorError, ValueError):
    """An upsert payload is missing required fields."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required fields: {', '.join(missing)}")


class MessageGatewayError(MonitorError):
    """A remote persistence gateway rejected or failed a request."""
