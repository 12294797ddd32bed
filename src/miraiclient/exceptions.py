"""
miraiclient/exceptions.py — Unified Error Hierarchy

Every failure the client surfaces is a typed subclass of MiraiError.
Remote calls map the gateway's numeric status code onto one of these
through a single table (STATUS_ERRORS); nothing else decides which
exception a code becomes.

Import from here, not from individual modules:
    from miraiclient.exceptions import BotMutedError, NotConnectedError

Hierarchy:
    MiraiError
    ├── RemoteCallError                 (carries .code and .raw)
    │   ├── AuthenticationError
    │   │   ├── InvalidAuthKeyError     code 1
    │   │   ├── BotNotFoundError        code 2
    │   │   └── InvalidSessionError     code 3, 4
    │   ├── AuthorizationError
    │   │   └── PermissionDeniedError   code 10
    │   ├── TargetError
    │   │   ├── TargetNotFoundError     code 5
    │   │   └── RemoteFileNotFoundError code 6
    │   ├── StateError
    │   │   ├── BotMutedError           code 20
    │   │   └── MessageTooLongError     code 30
    │   ├── ClientRequestError
    │   │   └── BadArgumentsError       code 400
    │   └── UnknownResponseError        any other code
    ├── TransportError
    │   ├── InvalidOperationError       body was not JSON
    │   └── DisconnectedError           event stream dropped
    ├── SessionError
    │   ├── NotConnectedError
    │   │   └── ClientDisposedError
    │   └── AlreadyConnectedError
    └── CapabilityNotSupportedError
"""

from __future__ import annotations

from typing import Optional


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class MiraiError(Exception):
    """Base class for all miraiclient exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Remote call failures (status code != 0)
# ─────────────────────────────────────────────────────────────────────────────

class RemoteCallError(MiraiError):
    """The gateway answered with a well-formed envelope and a non-zero code."""

    default_message = "The gateway rejected the request."

    def __init__(self, message: str = "", *, code: Optional[int] = None, raw: str = "") -> None:
        self.code = code
        self.raw = raw
        super().__init__(message or self.default_message)


class AuthenticationError(RemoteCallError):
    """Base for auth-key / bot / session failures."""


class InvalidAuthKeyError(AuthenticationError):
    default_message = "The auth key was rejected by the gateway."


class BotNotFoundError(AuthenticationError):
    default_message = "The requested bot account does not exist on the gateway."


class InvalidSessionError(AuthenticationError):
    default_message = "The session key is invalid or has expired."


class AuthorizationError(RemoteCallError):
    """Base for permission failures."""


class PermissionDeniedError(AuthorizationError):
    default_message = "The bot lacks the permission required for this operation."


class TargetError(RemoteCallError):
    """Base for missing-target failures."""


class TargetNotFoundError(TargetError):
    default_message = "The target of the operation does not exist."


class RemoteFileNotFoundError(TargetError):
    default_message = "The specified file does not exist."


class StateError(RemoteCallError):
    """Base for failures caused by the bot's current state."""


class BotMutedError(StateError):
    default_message = "The bot is muted in the target group."


class MessageTooLongError(StateError):
    default_message = "The message is too long to be sent."


class ClientRequestError(RemoteCallError):
    """Base for requests the gateway considers malformed."""


class BadArgumentsError(ClientRequestError):
    default_message = "The gateway rejected the call arguments (code 400)."


class UnknownResponseError(RemoteCallError):
    """Status code outside the known table. .raw holds the full response body."""

    def __init__(self, raw: str, *, code: Optional[int] = None) -> None:
        super().__init__(f"Unknown gateway response: {raw}", code=code, raw=raw)


# ─────────────────────────────────────────────────────────────────────────────
# Transport / protocol
# ─────────────────────────────────────────────────────────────────────────────

class TransportError(MiraiError):
    """Base for wire-level and protocol failures."""


class InvalidOperationError(TransportError):
    """The response body was not parsable JSON. .raw holds the body text."""

    def __init__(self, raw: str) -> None:
        self.raw = raw
        super().__init__(raw or "The gateway returned an empty, non-JSON body.")


class DisconnectedError(TransportError):
    """An event stream was dropped. .stream names it, __cause__ holds the fault."""

    def __init__(self, stream: str, cause: BaseException) -> None:
        self.stream = stream
        self.cause = cause
        super().__init__(f"Event stream '{stream}' disconnected: {cause!r}")


# ─────────────────────────────────────────────────────────────────────────────
# Local session state
# ─────────────────────────────────────────────────────────────────────────────

class SessionError(MiraiError):
    """Base for misuse of the local session lifecycle."""


class NotConnectedError(SessionError):
    """A session-scoped operation was called with no active session."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or "Connect to a session first.")


class ClientDisposedError(NotConnectedError):
    """The client has been closed and cannot be used again."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or "The client has been closed.")


class AlreadyConnectedError(SessionError):
    """connect() was called while a session is attached or being attached."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or "A session is already attached to this client.")


class CapabilityNotSupportedError(MiraiError):
    """The connected gateway version does not offer the requested capability."""

    def __init__(self, capability: str, version: str, message: str = "") -> None:
        self.capability = capability
        self.version = version
        super().__init__(
            message or f"Gateway version {version} does not support '{capability}'."
        )


# ─────────────────────────────────────────────────────────────────────────────
# Status code table
# ─────────────────────────────────────────────────────────────────────────────

SUCCESS_CODE = 0

STATUS_ERRORS: dict[int, type[RemoteCallError]] = {
    1:   InvalidAuthKeyError,
    2:   BotNotFoundError,
    3:   InvalidSessionError,
    4:   InvalidSessionError,
    5:   TargetNotFoundError,
    6:   RemoteFileNotFoundError,
    10:  PermissionDeniedError,
    20:  BotMutedError,
    30:  MessageTooLongError,
    400: BadArgumentsError,
}


def error_for_code(code: int, raw: str = "") -> Optional[RemoteCallError]:
    """
    Map a gateway status code to the exception it stands for.

    Returns None for SUCCESS_CODE. Unlisted codes become UnknownResponseError
    carrying the original raw body.
    """
    if code == SUCCESS_CODE:
        return None
    exc_type = STATUS_ERRORS.get(code)
    if exc_type is None:
        return UnknownResponseError(raw, code=code)
    return exc_type(code=code, raw=raw)


__all__ = [
    "MiraiError",
    # Remote
    "RemoteCallError",
    "AuthenticationError",
    "InvalidAuthKeyError",
    "BotNotFoundError",
    "InvalidSessionError",
    "AuthorizationError",
    "PermissionDeniedError",
    "TargetError",
    "TargetNotFoundError",
    "RemoteFileNotFoundError",
    "StateError",
    "BotMutedError",
    "MessageTooLongError",
    "ClientRequestError",
    "BadArgumentsError",
    "UnknownResponseError",
    # Transport
    "TransportError",
    "InvalidOperationError",
    "DisconnectedError",
    # Session
    "SessionError",
    "NotConnectedError",
    "ClientDisposedError",
    "AlreadyConnectedError",
    "CapabilityNotSupportedError",
    # Table
    "SUCCESS_CODE",
    "STATUS_ERRORS",
    "error_for_code",
]
