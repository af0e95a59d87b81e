"""Exceptions raised while bootstrapping the agent configuration."""


class BootstrapError(Exception):
    """Base class for bootstrap failures."""


class InvalidSettingError(BootstrapError):
    """A bootstrap setting (retries, retry delay) could not be parsed."""


class FetchError(BootstrapError):
    """The bootstrap service answered with an error status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


class DecodeError(BootstrapError, ValueError):
    """Payload is valid JSON but does not have the expected shape."""


class MalformedEntityError(BootstrapError):
    """Device config is missing required entities (control and data channels)."""
