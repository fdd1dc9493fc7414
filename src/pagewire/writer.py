# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Response writer: one JSON record per line on the output stream.

Serialization is done by walking the value and writing pieces directly to
the stream, so LazyText fields can stream through an EscapingSink in the
middle of the envelope. The whole record, its newline and the flush happen
under one lock; nothing else can interleave bytes into a record.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, BinaryIO

from pydantic import BaseModel

from .escaping import EscapingSink, LazyText
from .protocol import error_envelope, result_envelope

logger = logging.getLogger(__name__)

RECORD_SEPARATOR = b"\n"


class ResponseWriter:
    """Serializes envelopes to a shared binary stream under mutual exclusion."""

    def __init__(self, out: BinaryIO) -> None:
        self._out = out
        self._lock = asyncio.Lock()

    async def send(self, message: dict[str, Any]) -> None:
        async with self._lock:
            await self._encode(message)
            self._out.write(RECORD_SEPARATOR)
            self._out.flush()

    async def send_result(self, request_id: Any, result: Any) -> None:
        await self.send(result_envelope(request_id, result))

    async def send_error(self, request_id: Any, code: int, message: str) -> None:
        await self.send(error_envelope(request_id, code, message))

    async def _encode(self, value: Any) -> None:
        out = self._out
        if isinstance(value, LazyText):
            await self._stream_lazy(value)
        elif isinstance(value, BaseModel):
            await self._encode(value.model_dump(mode="json", by_alias=True, exclude_none=True))
        elif isinstance(value, dict):
            out.write(b"{")
            first = True
            for key, item in value.items():
                if not first:
                    out.write(b",")
                first = False
                out.write(_dumps(str(key)))
                out.write(b":")
                await self._encode(item)
            out.write(b"}")
        elif isinstance(value, (list, tuple)):
            out.write(b"[")
            for i, item in enumerate(value):
                if i:
                    out.write(b",")
                await self._encode(item)
            out.write(b"]")
        else:
            out.write(_dumps(value))

    async def _stream_lazy(self, value: LazyText) -> None:
        # The envelope is already partially on the wire: producer errors can
        # only be logged, and the string is closed over whatever was emitted.
        self._out.write(b'"')
        sink = EscapingSink(self._out)
        try:
            await value.write_to(sink)
        except Exception:
            logger.error("%s failed after %d bytes", value.label, sink.bytes_written, exc_info=True)
        finally:
            sink.close()
        self._out.write(b'"')


def _dumps(value: Any) -> bytes:
    return json.dumps(value, ensure_ascii=False).encode("utf-8", errors="replace")
