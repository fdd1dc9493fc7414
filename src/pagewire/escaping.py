# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Escaping sink and lazily produced text fields.

A LazyText is a response value that writes itself instead of returning a
string. The response writer opens a JSON string, hands the producer an
EscapingSink bound to the output stream, and closes the string once the
producer returns. Text never needs to exist in memory as a whole.
"""

from __future__ import annotations

import json
from typing import BinaryIO


def escape_json_text(text: str) -> str:
    """Return ``text`` escaped for use inside a JSON string literal (no quotes)."""
    return json.dumps(text, ensure_ascii=False)[1:-1]


class EscapingSink:
    """Forward-only byte sink that JSON-escapes everything written to it.

    Quote, backslash and control characters are escaped on the fly; the
    result is UTF-8 encoded straight into ``out``. A sink is single use:
    once closed it rejects further writes.
    """

    def __init__(self, out: BinaryIO) -> None:
        self._out = out
        self._closed = False
        self.bytes_written = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, text: str) -> int:
        if self._closed:
            raise ValueError("write to closed EscapingSink")
        if not text:
            return 0
        data = escape_json_text(text).encode("utf-8", errors="replace")
        self._out.write(data)
        self.bytes_written += len(data)
        return len(text)

    def writelines(self, lines) -> None:
        for line in lines:
            self.write(line)

    def close(self) -> None:
        self._closed = True


class LazyText:
    """Text field produced while the enclosing response is being serialized.

    Subclasses implement ``write_to``. It is invoked at most once per
    response; there is no restart and no cancellation. Exceptions escaping
    ``write_to`` are logged by the writer and the partial text stands.
    """

    label = "lazy text"

    async def write_to(self, sink: EscapingSink) -> None:
        raise NotImplementedError
