"""
core/errors.py -- Exception taxonomy for the console core.

Only two of these ever reach a caller in normal operation:

  Unauthenticated     -- no valid session in memory or storage. The caller
                         must send the user to the login page. Never retried.
  FetchError family   -- a resource query failed. TransientFetchError is
                         retried by core/resolver.py; PermanentFetchError is not.

SessionExpired and MalformedPersisted are classifications used inside
auth/session.py. Both are handled there (stale or unreadable entry purged,
None returned) and never propagate.
"""

from __future__ import annotations


class PlateError(Exception):
    """Base class for every error raised by this package."""


class Unauthenticated(PlateError):
    """No recoverable session. Carries the URL the caller should redirect to."""

    def __init__(self, message: str = "Authentication is invalid, please log in again.", login_url: str = "/auth/login"):
        super().__init__(message)
        self.login_url = login_url


class SessionExpired(Unauthenticated):
    """A stored session exists but is outside its validity window."""


class MalformedPersisted(PlateError):
    """A stored entry could not be decoded into its expected shape."""


class FetchError(PlateError):
    """A single resource query failed."""

    def __init__(self, message: str, parent_code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.parent_code = parent_code
        self.status_code = status_code


class TransientFetchError(FetchError):
    """Network, timeout, throttling or 5xx failure. Worth retrying."""


class PermanentFetchError(FetchError):
    """4xx or unusable response body. Retrying will not help."""
