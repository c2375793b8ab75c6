"""
Errors raised while talking to the source portal.

All of them are fatal to the sync cycle that triggered the request.
"""


class SourceError(Exception):
    """Base class for source portal failures."""


class TokenNotFoundError(SourceError):
    """The token page did not contain an authenticity token."""


class SourceUnavailableError(SourceError):
    """
    The portal could not be reached or kept failing.

    Attributes:
        url: Requested URL
        attempts: Attempts made before giving up
        status_code: Last HTTP status, if any response arrived
    """

    def __init__(self, message: str, url: str = "", attempts: int = 0, status_code: int | None = None):
        self.url = url
        self.attempts = attempts
        self.status_code = status_code
        super().__init__(message)


class MalformedResponseError(SourceError):
    """The response body was not JSON or did not hold a list of items."""
