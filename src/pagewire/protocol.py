# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""JSON-RPC 2.0 envelope models and MCP result helpers.

Requests are parsed with pydantic, ignoring unknown fields. Ids are opaque:
any JSON value is accepted and echoed back verbatim. Wire error codes are
the ones published by ``mcp.types``.
"""

from __future__ import annotations

from typing import Any

from mcp.types import ErrorData
from pydantic import BaseModel, ConfigDict

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"


class JsonRpcRequest(BaseModel):
    """Incoming record. ``id is None`` marks a notification."""

    model_config = ConfigDict(extra="ignore")

    jsonrpc: str = JSONRPC_VERSION
    id: Any = None
    method: str
    params: Any = None

    @property
    def is_notification(self) -> bool:
        return self.id is None


class CallToolParams(BaseModel):
    """``tools/call`` params."""

    model_config = ConfigDict(extra="ignore")

    name: str
    arguments: Any = None


class ReadResourceParams(BaseModel):
    """``resources/read`` params."""

    model_config = ConfigDict(extra="ignore")

    uri: str


def result_envelope(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_envelope(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": ErrorData(code=code, message=message)}


def text_result(text: Any, *, is_error: bool = False) -> dict[str, Any]:
    """Tool result with a single text content item.

    ``text`` is a ``str`` or a LazyText; ``isError`` is only emitted when set.
    """
    result: dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    return result
