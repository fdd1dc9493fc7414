# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""pagewire exception hierarchy.

All pagewire-specific errors inherit from PageWireError. Errors that map to a
JSON-RPC error response derive from ProtocolError and carry their wire code;
the router turns them into exactly one error record.
"""

from __future__ import annotations

from mcp.types import INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND


class PageWireError(Exception):
    """Base exception for all pagewire errors."""


class FramingError(PageWireError):
    """Input record exceeded the size cap. Fatal for the message loop."""


class BrowserError(PageWireError):
    """Browser session launch failure."""


class ScriptError(PageWireError):
    """Script evaluation threw inside the page.

    Reported to the caller as a successful call with ``isError`` set,
    never as a protocol error.
    """


class ProtocolError(PageWireError):
    """Error reported to the caller as a JSON-RPC error response."""

    code: int = INTERNAL_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidParamsError(ProtocolError):
    """Missing or malformed params / tool arguments."""

    code = INVALID_PARAMS


class MethodNotFoundError(ProtocolError):
    """Unknown JSON-RPC method or tool name."""

    code = METHOD_NOT_FOUND


class InternalError(ProtocolError):
    """Operation failed inside the server."""

    code = INTERNAL_ERROR


class NavigationError(InternalError):
    """Navigation could not be started (malformed URL, load error)."""

    def __init__(self, message: str = "Internal error during navigation") -> None:
        super().__init__(message)
