"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Mirrors the
approach in core/models.py -- dataclasses own domain shape; the session
manager and clients do the work.

Wire shape is camelCase (lastAccessTime) because that is what /oauth2/token
returns and what is persisted in the token store. to_dict()/from_dict() are
the only places that know about the casing.

Layer rule: no imports from core/ other than core.errors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from core.errors import MalformedPersisted


@dataclass
class Authentication:
    """A successful login as returned by the auth server.

    expires is a relative validity window in seconds, measured from
    last_access_time (unix seconds). The session is valid while
    now - last_access_time < expires. details is the opaque user profile
    payload and is round-tripped untouched.
    """

    token: str
    expires: int
    last_access_time: int
    details: Any = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "expires": self.expires,
            "lastAccessTime": self.last_access_time,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Authentication:
        """Parse a wire/storage record. Raises MalformedPersisted on a bad shape."""
        if not isinstance(data, dict):
            raise MalformedPersisted(f"authentication must be an object, got {type(data).__name__}")
        try:
            token = data["token"]
            expires = int(data["expires"])
            last_access_time = int(data["lastAccessTime"])
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            raise MalformedPersisted(f"authentication record incomplete: {e}") from e
        if not isinstance(token, str) or not token:
            raise MalformedPersisted("authentication token missing")
        return cls(token=token, expires=expires, last_access_time=last_access_time, details=data.get("details"))


@dataclass
class Credentials:
    """Username/password pair. Only ever persisted base64-encoded (remember me)."""

    username: str
    password: str

    def to_dict(self) -> dict[str, str]:
        return {"username": self.username, "password": self.password}

    @classmethod
    def from_dict(cls, data: Any) -> Credentials:
        if not isinstance(data, dict):
            raise MalformedPersisted("credentials must be an object")
        username = data.get("username")
        password = data.get("password")
        if not isinstance(username, str) or not isinstance(password, str):
            raise MalformedPersisted("credentials record incomplete")
        return cls(username=username, password=password)

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"
