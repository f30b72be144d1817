"""Exceptions raised by the vaultsync client.

This module provides:
- APIError and its subclasses, raised for HTTP-level failures
- check_response: maps an httpx.Response onto that hierarchy
"""

from __future__ import annotations

import httpx


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed (access token rejected)."""


class NotFoundError(APIError):
    """Resource not found."""


class RequestTimeoutError(APIError):
    """A single request attempt did not finish within its timeout."""


class RenewalExpiredError(APIError):
    """The refresh token is missing or was rejected.

    The user must re-authenticate; retrying will not help.
    """


def _detail(response: httpx.Response, default: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return default
    if isinstance(data, dict) and data.get("detail"):
        return str(data["detail"])
    return default


def check_response(response: httpx.Response) -> httpx.Response:
    """Raise the matching APIError for an error response.

    Args:
        response: Response to inspect.

    Returns:
        The response unchanged if it is not an error.
    """
    status = response.status_code
    if status == 401:
        raise AuthenticationError("Invalid or expired token", 401)
    if status == 404:
        raise NotFoundError("Resource not found", 404)
    if status >= 400:
        raise APIError(_detail(response, f"HTTP {status}"), status)
    return response
