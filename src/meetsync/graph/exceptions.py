"""Exceptions for Microsoft Graph operations.

Exception hierarchy::

    GraphAPIError            (base for all Graph HTTP errors)
    +-- GraphAuthError       (401 / 403)
    +-- GraphNotFoundError   (404)
    +-- GraphRateLimitError  (429)
    CredentialError          (token acquisition failures)
"""

from __future__ import annotations


class GraphAPIError(Exception):
    """Base exception for Microsoft Graph API errors.

    Attributes:
        status_code: HTTP status code, or None for transport failures.
        code: Graph error code from the response body, when present.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class GraphAuthError(GraphAPIError):
    """Raised when Graph rejects the token (401) or the permission (403)."""


class GraphNotFoundError(GraphAPIError):
    """Raised when the requested Graph resource does not exist (404)."""


class GraphRateLimitError(GraphAPIError):
    """Raised when Graph throttles the request (429).

    Attributes:
        retry_after: Seconds suggested by the Retry-After header, if any.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = 429,
        code: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, code=code)
        self.retry_after = retry_after


class CredentialError(Exception):
    """Raised when a delegated or application token cannot be obtained."""


def error_for_status(
    status_code: int,
    message: str,
    code: str | None = None,
    retry_after: float | None = None,
) -> GraphAPIError:
    """Map an HTTP status code to the matching GraphAPIError subclass."""
    if status_code in (401, 403):
        return GraphAuthError(message, status_code=status_code, code=code)
    if status_code == 404:
        return GraphNotFoundError(message, status_code=status_code, code=code)
    if status_code == 429:
        return GraphRateLimitError(
            message, status_code=status_code, code=code, retry_after=retry_after
        )
    return GraphAPIError(message, status_code=status_code, code=code)
