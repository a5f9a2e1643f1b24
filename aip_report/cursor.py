"""Opaque ``search_after`` cursors.

A cursor is the unpadded URL-safe base64 of a JSON array holding the sort
values of the last hit a caller has seen. An empty cursor means "from the
start".
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from typing import Any

from aip_report.errors import MalformedCursor

_B64URL_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64url_decode(raw: str) -> bytes:
    if not _B64URL_RE.match(raw):
        raise ValueError("non base64url characters")
    padded = raw + "=" * ((4 - len(raw) % 4) % 4)
    return base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)


def encode_cursor(sort_values: list[Any]) -> str:
    blob = json.dumps(list(sort_values), separators=(",", ":"), ensure_ascii=False)
    return _b64url_encode(blob.encode("utf-8"))


def decode_cursor(cursor: str | None) -> list[Any] | None:
    """Return the sort values wrapped by *cursor*, or ``None`` for no cursor."""
    cursor = (cursor or "").strip()
    if not cursor:
        return None
    try:
        blob = _b64url_decode(cursor)
    except (ValueError, binascii.Error) as exc:
        raise MalformedCursor("invalid cursor") from exc
    try:
        values = json.loads(blob.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedCursor("invalid cursor payload") from exc
    if not isinstance(values, list):
        raise MalformedCursor("invalid cursor payload")
    return values
