# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Stderr logging for the STDIO server.

stdout carries protocol records only, so the single root handler writes to
stderr. stdlib ``logging`` calls are rendered by structlog's
ProcessorFormatter: console lines by default, JSON lines with ``--log-json``.
While a request is dispatched its id and method are bound as contextvars and
appear on every record logged on its behalf.

Leaf module, no pagewire imports.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def configure(*, json_output: bool = False, level: str = "INFO") -> None:
    """Install the stderr handler on the root logger, replacing any previous one.

    Args:
        json_output: JSON lines instead of console lines.
        level: Root logger level name. Unknown names fall back to INFO.
    """
    shared = _shared_processors()
    if json_output:
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        # No ANSI colors: stderr is usually captured by the MCP client.
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
            foreign_pre_chain=shared,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


@contextmanager
def request_context(request_id: Any, method: str) -> Iterator[None]:
    """Bind ``request_id`` and ``method`` to every log record emitted inside the block."""
    tokens = structlog.contextvars.bind_contextvars(request_id=request_id, method=method)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
