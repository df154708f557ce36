"""
ExchangeMock Errors

Exceptions raised by configuration and server lifecycle operations.

Runtime payload failures (unserializable JSON, missing files) are never
raised to the caller; the materializer turns them into 500/404 responses.
"""


class MockServerError(Exception):
    """Base class for every error raised by ExchangeMock."""


class InvalidConfigurationError(MockServerError):
    """The server configuration or an exchange declaration is invalid."""


class InstanceAlreadyRunningError(MockServerError):
    """configure() was called on a server that is already configured or running."""

    def __init__(self, message: str = "Server is already configured; stop or reset it first"):
        super().__init__(message)


class ServerNotConfiguredError(MockServerError):
    """run() was called before configure()."""

    def __init__(self, message: str = "Server is not configured; call configure() first"):
        super().__init__(message)


class ServerNotRunningError(MockServerError):
    """stop() or restart() was called on a server that is not running."""

    def __init__(self, message: str = "Server is not running"):
        super().__init__(message)


class ServerStartError(MockServerError):
    """The HTTP transport failed to start (most often: port already in use)."""

    def __init__(self, message: str, cause: BaseException = None):
        super().__init__(message)
        self.cause = cause
