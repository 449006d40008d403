# meterdata/errors.py


class MeterDataError(Exception):
    """Base class for every error raised by meterdata."""


class ConfigError(MeterDataError):
    pass


class AuthError(MeterDataError):
    """Login rejected or session no longer valid."""


class UpstreamRequestError(MeterDataError):
    """Non-2xx answer or transport failure (timeouts included)."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class MalformedResponseError(MeterDataError):
    """Upstream answered, but not with the shape we expect."""


class StoreError(MeterDataError):
    pass
