# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Streaming HTML-to-markdown rendering.

The page HTML is parsed with lxml and walked once; markdown is written to the
output as the walk proceeds, never assembled into one string. Handles
headings, paragraphs, nested lists, block quotes, preformatted code, inline
emphasis, links, images, rules and simple tables. Non-content elements
(scripts, styles, form controls, embedded media) are skipped with their
subtrees.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import lxml.html
from lxml import etree

from .distiller import TextWriter
from .escaping import EscapingSink, LazyText

if TYPE_CHECKING:
    from .browser_session import BrowserSession

SKIP_TAGS = frozenset(
    {
        "head",
        "script",
        "style",
        "noscript",
        "template",
        "svg",
        "canvas",
        "iframe",
        "object",
        "embed",
        "input",
        "select",
        "textarea",
        "meta",
        "link",
    }
)

_PARAGRAPH_TAGS = frozenset({"p", "blockquote", "pre", "table", "figure", "ul", "ol", "dl"})
_PLAIN_PARAGRAPH_TAGS = _PARAGRAPH_TAGS - {"pre", "blockquote", "ul", "ol", "table"}
_LINE_TAGS = frozenset(
    {
        "div",
        "section",
        "article",
        "main",
        "header",
        "footer",
        "nav",
        "aside",
        "form",
        "fieldset",
        "address",
        "details",
        "summary",
        "figcaption",
        "dt",
        "dd",
        "caption",
    }
)
_HEADINGS = {"h1": 1, "h2": 2, "h3": 3, "h4": 4, "h5": 5, "h6": 6}
_STRONG = frozenset({"strong", "b"})
_EMPHASIS = frozenset({"em", "i"})

_WS_RE = re.compile(r"\s+")

_ENTER, _EXIT, _TEXT = 0, 1, 2


class MarkdownRenderer:
    """Walks an lxml tree and writes markdown to ``out``."""

    def __init__(self, out: TextWriter) -> None:
        self._out = out
        self._pending_newlines = 0
        self._line_start = True
        self._started = False
        self._last_char = ""
        self._quote_depth = 0
        self._pre_depth = 0
        self._lists: list[list] = []  # [ordered, next_number]
        self._marker = ""
        self._table_rows: list[int] = []

    def render(self, root: etree._Element) -> None:
        # Explicit stack, same reason as the distiller: deep pages.
        stack: list[tuple[int, object]] = [(_ENTER, root)]
        while stack:
            action, item = stack.pop()
            if action == _TEXT:
                self._text(item)
            elif action == _EXIT:
                self._exit(item)
            elif self._enter(item):
                stack.append((_EXIT, item))
                for child in reversed(item):
                    if child.tail:
                        stack.append((_TEXT, child.tail))
                    if isinstance(child.tag, str):
                        stack.append((_ENTER, child))
                if item.text:
                    stack.append((_TEXT, item.text))
        self._finish()

    # ── Element handlers ────────────────────────────────────────────

    def _enter(self, el: etree._Element) -> bool:
        """Open ``el``. Returns False when the subtree must be skipped."""
        tag = el.tag.lower() if isinstance(el.tag, str) else ""
        if tag in SKIP_TAGS:
            return False
        if tag in _HEADINGS:
            self._block(2)
            self._write("#" * _HEADINGS[tag] + " ")
        elif tag == "pre":
            self._block(2)
            self._write("```\n")
            self._pre_depth += 1
        elif tag == "blockquote":
            self._block(2)
            self._quote_depth += 1
        elif tag in ("ul", "ol"):
            self._block(2 if not self._lists else 1)
            start = el.get("start", "1")
            self._lists.append([tag == "ol", int(start) if start.isdigit() else 1])
        elif tag == "li":
            self._block(1)
            if self._lists:
                current = self._lists[-1]
                if current[0]:
                    self._marker = f"{current[1]}. "
                    current[1] += 1
                else:
                    self._marker = "- "
            else:
                self._marker = "- "
        elif tag == "table":
            self._block(2)
            self._table_rows.append(0)
        elif tag == "tr":
            self._block(1)
            self._write("|")
        elif tag in ("td", "th"):
            self._write(" ")
        elif tag in _PARAGRAPH_TAGS:
            self._block(2)
        elif tag in _LINE_TAGS:
            self._block(1)
        elif tag == "br":
            self._pending_newlines = max(self._pending_newlines, 1)
        elif tag == "hr":
            self._block(2)
            self._write("---")
            self._block(2)
        elif tag == "img":
            src = el.get("src", "")
            if src:
                self._write(f"![{_collapse(el.get('alt', ''))}]({src})")
        elif tag == "a":
            if el.get("href"):
                self._write("[")
        elif tag in _STRONG:
            self._write("**")
        elif tag in _EMPHASIS:
            self._write("*")
        elif tag == "code" and not self._pre_depth:
            self._write("`")
        return True

    def _exit(self, el: etree._Element) -> None:
        tag = el.tag.lower()
        if tag in _HEADINGS or tag in _PLAIN_PARAGRAPH_TAGS:
            self._block(2)
        elif tag == "pre":
            self._pre_depth -= 1
            if self._last_char != "\n":
                self._write("\n")
            self._write("```")
            self._block(2)
        elif tag == "blockquote":
            self._quote_depth -= 1
            self._block(2)
        elif tag in ("ul", "ol"):
            self._lists.pop()
            self._block(2 if not self._lists else 1)
        elif tag == "li":
            self._marker = ""
            self._block(1)
        elif tag == "table":
            self._table_rows.pop()
            self._block(2)
        elif tag == "tr":
            if self._table_rows:
                self._table_rows[-1] += 1
                if self._table_rows[-1] == 1:
                    cells = sum(1 for c in el if isinstance(c.tag, str) and c.tag.lower() in ("td", "th"))
                    self._block(1)
                    self._write("|" + " --- |" * cells)
            self._block(1)
        elif tag in ("td", "th"):
            self._write(" |")
        elif tag in _LINE_TAGS:
            self._block(1)
        elif tag == "a":
            href = el.get("href")
            if href:
                self._write(f"]({href})")
        elif tag in _STRONG:
            self._write("**")
        elif tag in _EMPHASIS:
            self._write("*")
        elif tag == "code" and not self._pre_depth:
            self._write("`")

    # ── Output primitives ───────────────────────────────────────────

    def _text(self, text: str) -> None:
        if self._pre_depth:
            self._write(text)
            return
        text = _WS_RE.sub(" ", text)
        if self._line_start or self._pending_newlines or self._last_char == " ":
            text = text.lstrip(" ")
        if text:
            self._write(text)

    def _block(self, newlines: int) -> None:
        if self._started:
            self._pending_newlines = max(self._pending_newlines, newlines)

    def _write(self, text: str) -> None:
        if self._pending_newlines:
            self._out.write("\n" * self._pending_newlines)
            self._pending_newlines = 0
            self._line_start = True
        if self._line_start:
            self._out.write(self._line_prefix())
            self._line_start = False
        self._out.write(text)
        self._started = True
        self._last_char = text[-1]

    def _line_prefix(self) -> str:
        prefix = "> " * self._quote_depth
        if self._lists:
            prefix += "  " * (len(self._lists) - 1)
            if self._marker:
                prefix += self._marker
                self._marker = ""
            else:
                prefix += "  "
        return prefix

    def _finish(self) -> None:
        if self._started:
            self._out.write("\n")


def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def render_markdown(html: str, out: TextWriter, base_url: str | None = None) -> None:
    """Render ``html`` as markdown into ``out``. Links are made absolute against ``base_url``."""
    if not html.strip():
        return
    try:
        doc = lxml.html.document_fromstring(html)
    except etree.ParserError:
        # Comments or processing instructions only: no element to render.
        return
    if base_url:
        doc.make_links_absolute(base_url, resolve_base_href=True, handle_failures="ignore")
    body = doc.find("body")
    MarkdownRenderer(out).render(body if body is not None else doc)


class MarkdownText(LazyText):
    """Markdown of the session's current page, streamed into a response."""

    label = "markdown dump"

    def __init__(self, session: BrowserSession) -> None:
        self.session = session

    async def write_to(self, sink: EscapingSink) -> None:
        html = await self.session.page_html()
        render_markdown(html, sink, base_url=self.session.page_url)
