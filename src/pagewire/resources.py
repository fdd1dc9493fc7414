# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Static page resources: ``resources/list`` and ``resources/read``.

Every resource is a view of the session's current page and is streamed
into the response as a lazy text field.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from mcp.types import Resource
from pydantic import ValidationError

from .distiller import SemanticText
from .errors import InvalidParamsError
from .escaping import EscapingSink, LazyText
from .markdown import MarkdownText
from .protocol import ReadResourceParams

if TYPE_CHECKING:
    from .browser_session import BrowserSession

HTML_URI = "mcp://page/html"
MARKDOWN_URI = "mcp://page/markdown"
SEMANTIC_URI = "mcp://page/semantic"


class PageHtmlText(LazyText):
    """Serialized HTML DOM of the current page."""

    label = "html dump"

    def __init__(self, session: BrowserSession) -> None:
        self.session = session

    async def write_to(self, sink: EscapingSink) -> None:
        sink.write(await self.session.page_html())


RESOURCES: list[Resource] = [
    Resource(
        uri=HTML_URI,
        name="Page HTML",
        description="The serialized HTML DOM of the current page",
        mimeType="text/html",
    ),
    Resource(
        uri=MARKDOWN_URI,
        name="Page Markdown",
        description="The token-efficient markdown representation of the current page",
        mimeType="text/markdown",
    ),
    Resource(
        uri=SEMANTIC_URI,
        name="Page Semantic Tree",
        description="Distilled element tree of the current page with element ids and viewport geometry",
        mimeType="text/plain",
    ),
]

_PRODUCERS: dict[str, tuple[str, Callable[[BrowserSession], LazyText]]] = {
    HTML_URI: ("text/html", PageHtmlText),
    MARKDOWN_URI: ("text/markdown", MarkdownText),
    SEMANTIC_URI: ("text/plain", SemanticText),
}


def list_resources() -> dict[str, Any]:
    return {"resources": RESOURCES}


def read_resource(session: BrowserSession, params: Any) -> dict[str, Any]:
    """Resolve a ``resources/read`` request to its (lazy) contents."""
    if params is None:
        raise InvalidParamsError("Missing params")
    try:
        uri = ReadResourceParams.model_validate(params).uri
    except ValidationError:
        raise InvalidParamsError("Invalid params for resources/read") from None

    entry = _PRODUCERS.get(uri)
    if entry is None:
        raise InvalidParamsError(f"Resource not found: {uri}")
    mime_type, producer = entry
    return {"contents": [{"uri": uri, "mimeType": mime_type, "text": producer(session)}]}
