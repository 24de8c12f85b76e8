"""Exception hierarchy shared by fetchers, the snapshot store and the CLI.

Only adapter/transport problems surface as exceptions during a refresh; they
are caught by the RefreshCoordinator and turned into "no update for this
source". ConfigError is raised at startup only.
"""


class RatedeskError(Exception):
    """Base exception for ratedesk errors."""

    pass


class FetchError(RatedeskError):
    """Raised when an upstream source cannot be reached or answers badly."""

    pass


class FetchHTTPError(FetchError):
    """Raised when an upstream answers with a non-2xx status.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class ParseError(FetchError):
    """Raised when an upstream payload is malformed."""

    pass


class PersistenceError(RatedeskError):
    """Raised when the snapshot file cannot be written."""

    pass


class ConfigError(RatedeskError):
    """Raised when source or process configuration is invalid."""

    pass
