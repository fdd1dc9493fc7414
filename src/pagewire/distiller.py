# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Semantic distiller: DOM tree to compact, id-annotated text.

Output (two spaces of indent per level):

    [0] <html loc="0,0,1280,800">
      [1] <body loc="8,8,1264,18">
        [2] <a loc="8,8,40,18" action="click">
          Home
        </a>
      </body>
    </html>

Ids are assigned in pre-order to retained elements only, starting at 0 on
every ``write`` call, so they are not stable across calls. Non-semantic
elements are dropped together with their whole subtree. Interactive
elements are marked clickable. Text is whitespace-trimmed; empty text is
dropped.
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING, Protocol

from .dom import DomNode, NodeKind, Rect
from .escaping import EscapingSink, LazyText

if TYPE_CHECKING:
    from .browser_session import BrowserSession

FILTERED_TAGS = frozenset({"script", "style", "head", "meta", "link"})
CLICKABLE_TAGS = frozenset({"button", "a", "input"})

_INDENT = "  "
_EMPTY_RECT = Rect()


class TextWriter(Protocol):
    def write(self, text: str) -> int: ...


class SemanticDistiller:
    def __init__(self, root: DomNode) -> None:
        self.root = root
        self.next_id = 0

    def write(self, out: TextWriter) -> None:
        self.next_id = 0
        # Explicit stack: pages nest deeper than the interpreter recursion limit.
        # Entries are (node, depth) to open, or (closing tag line, None).
        stack: list[tuple[DomNode | str, int | None]] = [(self.root, 0)]
        while stack:
            item, depth = stack.pop()
            if depth is None:
                out.write(item)
                continue
            node = item
            if node.kind is NodeKind.DOCUMENT:
                stack.extend((child, depth) for child in reversed(node.children))
            elif node.kind is NodeKind.ELEMENT:
                if node.tag in FILTERED_TAGS:
                    continue
                self._open(node, depth, out, stack)
            elif node.kind is NodeKind.TEXT:
                trimmed = node.text.strip()
                if trimmed:
                    out.write(f"{_INDENT * depth}{trimmed}\n")

    def _open(self, node: DomNode, depth: int, out: TextWriter, stack: list) -> None:
        element_id = self.next_id
        self.next_id += 1

        x, y, width, height = (node.rect or _EMPTY_RECT).rounded()
        line = f'{_INDENT * depth}[{element_id}] <{node.tag} loc="{x},{y},{width},{height}"'
        if node.tag in CLICKABLE_TAGS:
            line += ' action="click"'

        if not node.children:
            out.write(f"{line}></{node.tag}>\n")
            return

        out.write(f"{line}>\n")
        stack.append((f"{_INDENT * depth}</{node.tag}>\n", None))
        stack.extend((child, depth + 1) for child in reversed(node.children))


def distill(root: DomNode) -> str:
    """Distill ``root`` into a string. Convenience for callers that need the whole text."""
    buf = io.StringIO()
    SemanticDistiller(root).write(buf)
    return buf.getvalue()


class SemanticText(LazyText):
    """Distilled tree of the session's current page, streamed into a response."""

    label = "semantic distill"

    def __init__(self, session: BrowserSession) -> None:
        self.session = session

    async def write_to(self, sink: EscapingSink) -> None:
        root = await self.session.dom_snapshot()
        SemanticDistiller(root).write(sink)
