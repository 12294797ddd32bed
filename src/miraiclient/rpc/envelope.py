"""
miraiclient/rpc/envelope.py — JSON Response Envelope

Every gateway response body is parsed into a ResponseEnvelope before any
field is read. The envelope knows the three payload shapes the gateway uses:

  status-only     {"code": 0}                         → nothing
  status + data   {"code": 0, "data": ..., ...}       → a field of the body
  bare payload    [...] or {...} without "code"       → the body itself

A body that is not JSON at all is an InvalidOperationError carrying the raw
text. A well-formed body with a non-zero code is mapped through
exceptions.error_for_code().
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

from miraiclient.exceptions import (
    InvalidOperationError,
    SUCCESS_CODE,
    UnknownResponseError,
    error_for_code,
)


@dataclass(frozen=True)
class ResponseEnvelope:
    """One parsed response. Transient: created per call, consumed immediately."""

    body: Any
    raw: str

    @property
    def code(self) -> Optional[int]:
        """The integer status code, or None when the body carries none."""
        if isinstance(self.body, dict):
            code = self.body.get("code")
            # bool is an int subclass; a boolean "code" is not a status code
            if isinstance(code, int) and not isinstance(code, bool):
                return code
        return None

    @property
    def has_code(self) -> bool:
        return self.code is not None

    def raise_for_code(self) -> None:
        """Raise the mapped error for a non-zero code. Requires a code to be present."""
        code = self.code
        if code is None:
            raise UnknownResponseError(self.raw)
        exc = error_for_code(code, self.raw)
        if exc is not None:
            raise exc

    def field(self, name: str) -> Any:
        """Return a top-level field of a successful status + data body."""
        self.raise_for_code()
        try:
            return self.body[name]
        except KeyError:
            raise UnknownResponseError(self.raw, code=SUCCESS_CODE) from None

    def payload(self) -> Any:
        """
        Return the bare payload. Bodies that do carry a code are checked
        first; a successful one yields its "data" field when present.
        """
        if not self.has_code:
            return self.body
        self.raise_for_code()
        if "data" in self.body:
            return self.body["data"]
        return self.body


def parse_envelope(raw: str) -> ResponseEnvelope:
    """Parse a response body. Raises InvalidOperationError if it is not JSON."""
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        raise InvalidOperationError(raw) from None
    return ResponseEnvelope(body=body, raw=raw)
