"""Fixture error types."""


class FixtureError(Exception):
    """Base class for fixture errors."""


class StartupFailure(FixtureError):
    """The configured port could not be bound. Fatal, never retried."""

    def __init__(self, host: str, port: int, cause: OSError):
        super().__init__(f"Failed to bind port {port} on {host}: {cause}")
        self.host = host
        self.port = port
        self.cause = cause
