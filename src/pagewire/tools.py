# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tool catalog and ``tools/call`` execution.

The catalog is closed: six tools, one ToolSpec each, looked up by exact
(case-sensitive) name. ``navigate`` is accepted as an alias of ``goto`` but
not advertised.

Error policy:
- malformed call params, missing or invalid tool arguments -> InvalidParamsError
- unknown tool name -> MethodNotFoundError
- navigation that cannot start -> NavigationError (internal error), tool aborted
- script that throws -> successful result with ``isError`` set
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from mcp.types import Tool
from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import InvalidParamsError, MethodNotFoundError, ScriptError
from .escaping import EscapingSink, LazyText
from .markdown import MarkdownText
from .navigation import navigate_and_settle
from .protocol import CallToolParams, text_result

if TYPE_CHECKING:
    from .browser_session import BrowserSession

logger = logging.getLogger(__name__)

SEARCH_URL_TEMPLATE = "https://duckduckgo.com/?q={query}"

NAVIGATED_TEXT = "Navigated successfully."
SEARCHED_TEXT = "Search performed successfully."
SCRIPT_FAILED_TEXT = "Script evaluation failed."
UNDEFINED_TEXT = "undefined"


class ToolName(str, Enum):
    GOTO = "goto"
    SEARCH = "search"
    MARKDOWN = "markdown"
    LINKS = "links"
    EVALUATE = "evaluate"
    OVER = "over"


# ── Arguments ──────────────────────────────────────────────────────


class _Arguments(BaseModel):
    model_config = ConfigDict(extra="ignore")


class GotoArguments(_Arguments):
    url: str


class SearchArguments(_Arguments):
    text: str


class OptionalUrlArguments(_Arguments):
    url: str | None = None


class EvaluateArguments(_Arguments):
    script: str
    url: str | None = None


class OverArguments(_Arguments):
    result: str


# ── Lazy link list ─────────────────────────────────────────────────


class LinksText(LazyText):
    """Resolved ``href`` of every anchor, newline-joined, document order, duplicates kept."""

    label = "links extraction"

    def __init__(self, session: BrowserSession) -> None:
        self.session = session

    async def write_to(self, sink: EscapingSink) -> None:
        anchors = await self.session.query_selector_all("a[href]")
        try:
            first = True
            for anchor in anchors:
                try:
                    href = await self.session.resolved_attribute(anchor, "href")
                except Exception:
                    logger.error("resolve href failed", exc_info=True)
                    continue
                if not href:
                    continue
                if not first:
                    sink.write("\n")
                sink.write(href)
                first = False
        finally:
            # Handles pin their nodes in the page until disposed.
            for anchor in anchors:
                await self.session.release(anchor)


# ── Handlers ───────────────────────────────────────────────────────


async def _goto(session: BrowserSession, args: GotoArguments) -> dict[str, Any]:
    await navigate_and_settle(session, args.url)
    return text_result(NAVIGATED_TEXT)


def build_search_url(text: str) -> str:
    """Search engine URL with ``text`` percent-encoded as one query component."""
    return SEARCH_URL_TEMPLATE.format(query=quote(text, safe=""))


async def _search(session: BrowserSession, args: SearchArguments) -> dict[str, Any]:
    await navigate_and_settle(session, build_search_url(args.text))
    return text_result(SEARCHED_TEXT)


async def _markdown(session: BrowserSession, args: OptionalUrlArguments) -> dict[str, Any]:
    if args.url is not None:
        await navigate_and_settle(session, args.url)
    return text_result(MarkdownText(session))


async def _links(session: BrowserSession, args: OptionalUrlArguments) -> dict[str, Any]:
    if args.url is not None:
        await navigate_and_settle(session, args.url)
    return text_result(LinksText(session))


async def _evaluate(session: BrowserSession, args: EvaluateArguments) -> dict[str, Any]:
    if args.url is not None:
        await navigate_and_settle(session, args.url)
    try:
        text = await session.evaluate(args.script)
    except ScriptError as exc:
        logger.info("Script evaluation failed: %.200s", exc)
        return text_result(SCRIPT_FAILED_TEXT, is_error=True)
    return text_result(text if text is not None else UNDEFINED_TEXT)


async def _over(session: BrowserSession, args: OverArguments) -> dict[str, Any]:
    return text_result(args.result)


# ── Catalog ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    description: str
    input_schema: dict[str, Any]
    arguments: type[_Arguments]
    handler: Callable[[BrowserSession, Any], Awaitable[dict[str, Any]]]
    requires_arguments: bool = True

    def to_tool(self) -> Tool:
        return Tool(name=self.name.value, description=self.description, inputSchema=self.input_schema)


def _optional_url_schema(purpose: str) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "url": {"type": "string", "description": f"Optional URL to navigate to before {purpose}."},
        },
    }


TOOLS: dict[ToolName, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            name=ToolName.GOTO,
            description=(
                "Navigate to a specified URL and load the page in memory so it can be reused later "
                "for info extraction."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "url": {"type": "string", "description": "The URL to navigate to, must be a valid URL."},
                },
                "required": ["url"],
            },
            arguments=GotoArguments,
            handler=_goto,
        ),
        ToolSpec(
            name=ToolName.SEARCH,
            description=(
                "Use a search engine to look for specific words, terms, sentences. "
                "The search page will then be loaded in memory."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "text": {"type": "string", "description": "The text to search for, must be a valid search query."},
                },
                "required": ["text"],
            },
            arguments=SearchArguments,
            handler=_search,
        ),
        ToolSpec(
            name=ToolName.MARKDOWN,
            description="Get the page content in markdown format. If a url is provided, it navigates to that url first.",
            input_schema=_optional_url_schema("fetching markdown"),
            arguments=OptionalUrlArguments,
            handler=_markdown,
            requires_arguments=False,
        ),
        ToolSpec(
            name=ToolName.LINKS,
            description="Extract all links in the opened page. If a url is provided, it navigates to that url first.",
            input_schema=_optional_url_schema("extracting links"),
            arguments=OptionalUrlArguments,
            handler=_links,
            requires_arguments=False,
        ),
        ToolSpec(
            name=ToolName.EVALUATE,
            description=(
                "Evaluate JavaScript in the current page context. If a url is provided, it navigates to that url first."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "script": {"type": "string"},
                    "url": {"type": "string", "description": "Optional URL to navigate to before evaluating."},
                },
                "required": ["script"],
            },
            arguments=EvaluateArguments,
            handler=_evaluate,
        ),
        ToolSpec(
            name=ToolName.OVER,
            description=(
                "Used to indicate that the task is over and give the final answer if there is any. "
                "This is the last tool to be called in a task."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "result": {"type": "string", "description": "The final result of the task."},
                },
                "required": ["result"],
            },
            arguments=OverArguments,
            handler=_over,
        ),
    )
}

TOOL_ALIASES = {"navigate": ToolName.GOTO}

TOOL_LOOKUP: dict[str, ToolSpec] = {
    **{name.value: spec for name, spec in TOOLS.items()},
    **{alias: TOOLS[name] for alias, name in TOOL_ALIASES.items()},
}


def list_tools() -> list[Tool]:
    return [spec.to_tool() for spec in TOOLS.values()]


def parse_arguments(spec: ToolSpec, called_as: str, arguments: Any) -> _Arguments:
    """Validate ``arguments`` against the tool's model. Messages name the tool as called."""
    if arguments is None:
        if spec.requires_arguments:
            raise InvalidParamsError(f"Missing arguments for {called_as}")
        return spec.arguments()
    try:
        return spec.arguments.model_validate(arguments)
    except ValidationError:
        raise InvalidParamsError(f"Invalid arguments for {called_as}") from None


async def handle_call(session: BrowserSession, params: Any) -> dict[str, Any]:
    """Execute a ``tools/call`` request and return its result value."""
    if params is None:
        raise InvalidParamsError("Missing params")
    try:
        call = CallToolParams.model_validate(params)
    except ValidationError:
        # Raw params echoed so the caller can see what was rejected.
        raise InvalidParamsError(f"Invalid params: {_compact_json(params)}") from None

    spec = TOOL_LOOKUP.get(call.name)
    if spec is None:
        raise MethodNotFoundError("Tool not found")

    args = parse_arguments(spec, call.name, call.arguments)
    logger.debug("Calling tool %s", spec.name.value)
    return await spec.handler(session, args)


def _compact_json(value: Any) -> str:
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError):
        return repr(value)
