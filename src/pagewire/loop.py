# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Message loop: newline-delimited records in, one dispatch per record.

Framing rules:
- records end at ``\\n``; a record longer than MAX_RECORD_SIZE is fatal
  (FramingError propagates and the loop ends)
- end of stream with buffered bytes yields them as a final record,
  end of stream with nothing buffered ends the loop
- empty records are skipped

Input accumulates in a ScratchRegion that is reused across iterations and
reset after each record. If one record made it grow past RETAINED_CAPACITY,
the reset swaps in a fresh buffer instead of keeping the large one alive.
Records are handled strictly one at a time.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from .errors import FramingError

if TYPE_CHECKING:
    from .server import Server

logger = logging.getLogger(__name__)

MAX_RECORD_SIZE = 10 * 1024 * 1024
RETAINED_CAPACITY = 32 * 1024
READ_CHUNK_SIZE = 8192
RECORD_DELIMITER = b"\n"


class ByteReader(Protocol):
    """Async byte source. ``read1`` returns b"" at end of stream."""

    async def read1(self, size: int = -1) -> bytes: ...


class ScratchRegion:
    """Reusable byte buffer owned by one loop iteration at a time."""

    def __init__(self, retained_capacity: int = RETAINED_CAPACITY) -> None:
        self.retained_capacity = retained_capacity
        self._buf = bytearray()
        self._high_water = 0
        self.reallocations = 0

    @property
    def buffer(self) -> bytearray:
        return self._buf

    @property
    def high_water(self) -> int:
        return self._high_water

    def extend(self, data: bytes) -> None:
        self._buf += data
        if len(self._buf) > self._high_water:
            self._high_water = len(self._buf)

    def reset(self, carry: bytes = b"") -> None:
        """Drop the current contents, keeping ``carry`` (bytes already read past the record)."""
        if self._high_water > self.retained_capacity:
            self._buf = bytearray(carry)
            self.reallocations += 1
        else:
            self._buf[:] = carry
        self._high_water = len(self._buf)


class RecordReader:
    """Splits a byte stream into delimiter-terminated records."""

    def __init__(
        self,
        stream: ByteReader,
        scratch: ScratchRegion,
        *,
        max_record_size: int = MAX_RECORD_SIZE,
        chunk_size: int = READ_CHUNK_SIZE,
    ) -> None:
        self._stream = stream
        self._scratch = scratch
        self._max_record_size = max_record_size
        self._chunk_size = chunk_size
        self._consumed = 0
        self._eof = False

    async def next_record(self) -> bytes | None:
        """Return the next record without its delimiter, or None at clean end of stream.

        Raises FramingError if a record exceeds the size cap.
        """
        buf = self._scratch.buffer
        search_from = 0
        while True:
            index = buf.find(RECORD_DELIMITER, search_from)
            if index >= 0:
                if index > self._max_record_size:
                    raise FramingError(f"record exceeds {self._max_record_size} bytes")
                self._consumed = index + len(RECORD_DELIMITER)
                return bytes(buf[:index])
            if len(buf) > self._max_record_size:
                raise FramingError(f"record exceeds {self._max_record_size} bytes")
            if self._eof:
                if not buf:
                    return None
                self._consumed = len(buf)
                return bytes(buf)
            search_from = len(buf)
            chunk = await self._stream.read1(self._chunk_size)
            if not chunk:
                self._eof = True
            else:
                self._scratch.extend(chunk)
                buf = self._scratch.buffer

    def release(self) -> None:
        """Reset the scratch region after the current record has been handled."""
        buf = self._scratch.buffer
        self._scratch.reset(bytes(buf[self._consumed :]))
        self._consumed = 0


async def process_requests(
    server: Server,
    stream: ByteReader,
    *,
    max_record_size: int = MAX_RECORD_SIZE,
    retained_capacity: int = RETAINED_CAPACITY,
) -> None:
    """Read and dispatch records until end of stream or shutdown.

    A record that fails to process is logged and skipped; only FramingError
    ends the loop abnormally.
    """
    scratch = ScratchRegion(retained_capacity)
    reader = RecordReader(stream, scratch, max_record_size=max_record_size)

    server.is_running = True
    try:
        while server.is_running:
            record = await reader.next_record()
            if record is None:
                logger.info("Input closed, stopping message loop")
                break
            try:
                if record:
                    await server.handle_message(record)
            except Exception:
                logger.warning("Error processing message", exc_info=True)
            finally:
                reader.release()
    finally:
        server.is_running = False
