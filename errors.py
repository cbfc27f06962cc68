"""Exceptions raised by the Rakuten feed client."""


class FeedError(Exception):
    """Base exception for feed errors."""


class FatalApiError(FeedError):
    """Raised when a partner API call fails and the run cannot continue.

    ``response`` holds the failed :class:`requests.Response` when the server
    answered at all, so the caller can log the body.
    """

    def __init__(self, message, response=None):
        super().__init__(message)
        self.response = response


class MalformedResponse(FeedError):
    """Raised when a partner payload is not JSON or lacks required fields."""
