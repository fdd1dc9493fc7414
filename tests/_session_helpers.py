# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared helpers for server, tool and loop tests.

Underscore prefix prevents pytest collection.
FakeSession implements the BrowserSession operations the tools use,
in memory, and records every call.
"""

from __future__ import annotations

import io
import json

from pagewire.browser_session import NavigationCause
from pagewire.dom import DomNode, NodeKind
from pagewire.errors import ScriptError
from pagewire.server import Server
from pagewire.writer import ResponseWriter


class FakeSession:
    """In-memory stand-in for BrowserSession."""

    def __init__(
        self,
        *,
        html: str = "",
        url: str = "about:blank",
        hrefs: list | None = None,
        snapshot: DomNode | None = None,
        eval_result: str | None = "",
        eval_error: str | None = None,
        navigate_error: Exception | None = None,
        settled: bool = True,
    ) -> None:
        self.html = html
        self.url = url
        self.hrefs = list(hrefs or [])  # str, or an Exception to raise on resolve
        self.snapshot = snapshot or DomNode(NodeKind.DOCUMENT)
        self.eval_result = eval_result
        self.eval_error = eval_error
        self.navigate_error = navigate_error
        self.settled = settled
        self.navigations: list[tuple[str, NavigationCause]] = []
        self.waits: list[int] = []
        self.queries: list[str] = []
        self.scripts: list[str] = []
        self.released: list[int] = []

    @property
    def page_url(self) -> str:
        return self.url

    async def navigate(self, url: str, cause: NavigationCause = NavigationCause.ADDRESS_BAR) -> None:
        self.navigations.append((url, cause))
        if self.navigate_error is not None:
            raise self.navigate_error
        self.url = url

    async def wait(self, timeout_ms: int) -> bool:
        self.waits.append(timeout_ms)
        return self.settled

    async def query_selector_all(self, selector: str) -> list[int]:
        self.queries.append(selector)
        return list(range(len(self.hrefs)))

    async def resolved_attribute(self, element: int, name: str) -> str:
        value = self.hrefs[element]
        if isinstance(value, Exception):
            raise value
        return value

    async def release(self, element: int) -> None:
        self.released.append(element)

    async def dom_snapshot(self) -> DomNode:
        return self.snapshot

    async def page_html(self) -> str:
        return self.html

    async def evaluate(self, script: str) -> str | None:
        self.scripts.append(script)
        if self.eval_error is not None:
            raise ScriptError(self.eval_error)
        return self.eval_result


class BytesReader:
    """Async reader over fixed bytes, returning at most ``chunk`` bytes per read."""

    def __init__(self, data: bytes, chunk: int = 7) -> None:
        self._data = data
        self._pos = 0
        self._chunk = chunk
        self.reads = 0

    async def read1(self, size: int = -1) -> bytes:
        self.reads += 1
        n = self._chunk if size < 0 else min(size, self._chunk)
        piece = self._data[self._pos : self._pos + n]
        self._pos += len(piece)
        return piece


def make_server(session=None) -> tuple[Server, io.BytesIO]:
    out = io.BytesIO()
    return Server(session or FakeSession(), ResponseWriter(out)), out


def request(method: str, params=None, *, id=1) -> bytes:
    msg: dict = {"jsonrpc": "2.0", "method": method}
    if id is not None:
        msg["id"] = id
    if params is not None:
        msg["params"] = params
    return json.dumps(msg).encode()


def tool_call(name: str, arguments=None, *, id=1) -> bytes:
    params: dict = {"name": name}
    if arguments is not None:
        params["arguments"] = arguments
    return request("tools/call", params, id=id)


def responses(out: io.BytesIO) -> list[dict]:
    """Parse every record written to ``out``. Each must be one complete JSON line."""
    data = out.getvalue()
    if not data:
        return []
    assert data.endswith(b"\n")
    return [json.loads(line) for line in data.decode("utf-8").split("\n")[:-1]]
