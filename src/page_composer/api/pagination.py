"""Cursor pagination for version history.

Cursors are opaque base64-encoded JSON holding the last version number seen
on the previous page; the next page continues strictly below it.
"""

from __future__ import annotations

import base64
import json

from starlette.requests import Request

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 200


def encode_cursor(version_number: int) -> str:
    payload = json.dumps({"v": version_number}, separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode()).decode()


class InvalidCursorError(ValueError):
    """Raised when a cursor string cannot be decoded."""


def decode_cursor(cursor: str) -> int:
    """Decode a cursor string back into a version number.

    Raises ``InvalidCursorError`` if the cursor is malformed.
    """
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode()).decode())
        return int(payload["v"])
    except (ValueError, KeyError, TypeError, UnicodeDecodeError) as exc:
        raise InvalidCursorError(f"Malformed cursor: {cursor!r}") from exc


def parse_page_params(request: Request, default_size: int = DEFAULT_PAGE_SIZE) -> tuple[str | None, int]:
    """Extract ``page[after]`` and ``page[size]`` from query params."""
    after = request.query_params.get("page[after]")
    size_raw = request.query_params.get("page[size]", str(default_size))
    try:
        size = max(1, min(int(size_raw), MAX_PAGE_SIZE))
    except (ValueError, TypeError):
        size = default_size
    return after, size
