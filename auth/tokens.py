"""
auth/tokens.py -- Header builders and the persisted-entry codec.

Entry format:
  Stored values are JSON. When encoding is on (Settings.encode_storage, the
  default) the JSON text is percent-encoded and then base64-wrapped, matching
  what the browser console writes with btoa(encodeURIComponent(json)). The
  percent step keeps non-ASCII profile fields (display names) safe inside
  base64. Decoding accepts both the wrapped and the plain-JSON form so a store
  written with encoding off stays readable after it is switched on.

  This is obfuscation, not encryption. Credentials stored for "remember me"
  are recoverable by anyone who can read the store.

decode_entry() raises MalformedPersisted on any failure. The session manager
turns that into "no session" -- it never reaches a caller.

Layer rule: no imports from core/ other than core.errors.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any
from urllib.parse import quote, unquote

from core.errors import MalformedPersisted

AUTHENTICATION_KEY = "authentication"
CREDENTIALS_KEY = "credentials"


# ---------------------------------------------------------------------------
# Entry codec
# ---------------------------------------------------------------------------


def encode_entry(payload: dict[str, Any], encode: bool = True) -> str:
    """Serialize payload for the token store."""
    raw = json.dumps(payload, separators=(",", ":"))
    if not encode:
        return raw
    return base64.b64encode(quote(raw, safe="").encode("ascii")).decode("ascii")


def decode_entry(value: str) -> Any:
    """Parse a stored entry in either plain-JSON or base64-wrapped form."""
    text = value.strip()
    if not text:
        raise MalformedPersisted("empty entry")
    if text[0] not in "{[":
        try:
            text = unquote(base64.b64decode(text, validate=True).decode("ascii"))
        except (binascii.Error, UnicodeDecodeError, ValueError) as e:
            raise MalformedPersisted(f"entry is not valid base64: {e}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedPersisted(f"entry is not valid JSON: {e.msg}") from e


# ---------------------------------------------------------------------------
# Authorization headers
# ---------------------------------------------------------------------------


def basic_authorization(username: str, password: str) -> str:
    """Return the value for `Authorization: Basic base64(username:password)`."""
    pair = f"{username}:{password}".encode("utf-8")
    return "Basic " + base64.b64encode(pair).decode("ascii")


def bearer_authorization(token: str) -> str:
    return f"Bearer {token}"
