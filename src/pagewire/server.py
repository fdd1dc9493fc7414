# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""pagewire MCP server over STDIO.

One browser session, one page, one request at a time. Records are JSON-RPC
2.0 on stdin/stdout, one per line; all logging goes to stderr.

Methods:
- initialize: protocol version, capabilities, server identity
- notifications/initialized: acknowledged in the log, never answered
- resources/list, resources/read: views of the current page
- tools/list, tools/call: goto/navigate, search, markdown, links, evaluate, over
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any

import anyio
from mcp.types import (
    Implementation,
    InitializeResult,
    LoggingCapability,
    ResourcesCapability,
    ServerCapabilities,
    ToolsCapability,
)
from pydantic import ValidationError

from . import SERVER_NAME, __version__
from .browser_session import BrowserConfig, BrowserSession
from .errors import BrowserError, FramingError, InternalError, MethodNotFoundError, ProtocolError
from .logging_config import configure as configure_logging
from .logging_config import request_context
from .loop import process_requests
from .protocol import PROTOCOL_VERSION, JsonRpcRequest
from .resources import list_resources, read_resource
from .tools import handle_call, list_tools
from .writer import ResponseWriter

# Logging configured in main() via logging_config.configure()
logger = logging.getLogger("pagewire.server")

INITIALIZED_NOTIFICATION = "notifications/initialized"


class Server:
    """Process-wide context: the browser session plus the output writer.

    Constructed once at startup and handed to the message loop. Handlers
    receive everything they need from here; there is no module state.
    """

    def __init__(self, session: BrowserSession, writer: ResponseWriter) -> None:
        self.session = session
        self.writer = writer
        self.is_running = False
        self.client_initialized = False
        self._methods: dict[str, Callable[[Any], Awaitable[Any]]] = {
            "initialize": self._initialize,
            "resources/list": self._list_resources,
            "resources/read": self._read_resource,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }

    async def handle_message(self, record: bytes) -> None:
        """Dispatch one record. Writes exactly one response if the record has an id."""
        try:
            request = JsonRpcRequest.model_validate_json(record)
        except ValidationError as exc:
            # No reliable id to answer to.
            logger.warning("JSON parse error (%d errors): %.200r", exc.error_count(), record)
            return

        if request.is_notification:
            if request.method == INITIALIZED_NOTIFICATION:
                self.client_initialized = True
                logger.info("Client initialized")
            return

        with request_context(request.id, request.method):
            try:
                result = await self._route(request)
            except ProtocolError as exc:
                await self.writer.send_error(request.id, exc.code, exc.message)
                return
            except Exception:
                logger.error("Unhandled error in %s", request.method, exc_info=True)
                error = InternalError("Internal error")
                await self.writer.send_error(request.id, error.code, error.message)
                return
            await self.writer.send_result(request.id, result)

    async def _route(self, request: JsonRpcRequest) -> Any:
        handler = self._methods.get(request.method)
        if handler is None:
            raise MethodNotFoundError("Method not found")
        return await handler(request.params)

    async def _initialize(self, params: Any) -> InitializeResult:
        return InitializeResult(
            protocolVersion=PROTOCOL_VERSION,
            capabilities=ServerCapabilities(
                logging=LoggingCapability(),
                resources=ResourcesCapability(subscribe=False, listChanged=False),
                tools=ToolsCapability(listChanged=False),
            ),
            serverInfo=Implementation(name=SERVER_NAME, version=__version__),
        )

    async def _list_resources(self, params: Any) -> dict[str, Any]:
        return list_resources()

    async def _read_resource(self, params: Any) -> dict[str, Any]:
        return read_resource(self.session, params)

    async def _list_tools(self, params: Any) -> dict[str, Any]:
        return {"tools": list_tools()}

    async def _call_tool(self, params: Any) -> dict[str, Any]:
        return await handle_call(self.session, params)


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


def _parse_server_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI args and PAGEWIRE_* env vars for server configuration."""
    parser = argparse.ArgumentParser(description="pagewire MCP server (STDIO)")
    parser.add_argument(
        "--headed",
        action="store_true",
        default=False,
        help="Show the browser window (default: headless)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Log level for stderr output (default: INFO)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        default=False,
        help="Emit logs as JSON lines instead of console format",
    )
    parser.add_argument(
        "--timeout-ms",
        type=int,
        default=30000,
        help="Navigation commit timeout in milliseconds (default: 30000)",
    )
    parser.add_argument(
        "--user-agent",
        default="",
        help="Override the browser User-Agent",
    )
    args = parser.parse_args(argv)

    # Env var overrides
    args.headed = args.headed or _env_flag("PAGEWIRE_HEADED")
    args.log_json = args.log_json or _env_flag("PAGEWIRE_LOG_JSON")

    env_level = os.environ.get("PAGEWIRE_LOG_LEVEL", "").strip()
    if env_level:
        args.log_level = env_level

    env_timeout = os.environ.get("PAGEWIRE_TIMEOUT_MS", "").strip()
    if env_timeout:
        with suppress(ValueError):
            args.timeout_ms = int(env_timeout)

    env_ua = os.environ.get("PAGEWIRE_USER_AGENT", "").strip()
    if env_ua and not args.user_agent:
        args.user_agent = env_ua

    return args


def browser_config_from_args(args: argparse.Namespace) -> BrowserConfig:
    config = BrowserConfig(headless=not args.headed, timeout_ms=args.timeout_ms)
    if args.user_agent:
        config.user_agent = args.user_agent
    return config


async def serve(args: argparse.Namespace) -> int:
    """Run the STDIO server until stdin closes. Returns the process exit code."""
    session = BrowserSession(browser_config_from_args(args))
    try:
        await session.start()
    except BrowserError as exc:
        logger.error("Browser launch failed: %s", exc)
        await session.stop()
        return 1

    server = Server(session, ResponseWriter(sys.stdout.buffer))
    task = asyncio.current_task()

    def _shutdown() -> None:
        logger.info("Shutdown signal received")
        server.is_running = False
        task.cancel()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        with suppress(NotImplementedError):  # Windows
            loop.add_signal_handler(sig, _shutdown)

    try:
        await process_requests(server, anyio.wrap_file(sys.stdin.buffer))
    except FramingError as exc:
        logger.error("Framing error, stopping: %s", exc)
        return 1
    except asyncio.CancelledError:
        return 0
    finally:
        await session.stop()
    return 0


def main(argv: list[str] | None = None) -> None:
    """Entry point for the MCP server."""
    args = _parse_server_args(argv if argv is not None else sys.argv[1:])

    # Configure structlog BEFORE any log output
    configure_logging(json_output=args.log_json, level=args.log_level)

    logger.info("Starting pagewire MCP server (stdio, version=%s, headless=%s)", __version__, not args.headed)
    sys.exit(asyncio.run(serve(args)))


if __name__ == "__main__":
    main()
