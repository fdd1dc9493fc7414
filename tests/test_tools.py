# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for pagewire.tools: catalog, argument validation, and tool behavior.

Verifies:
1. Catalog: six tools, exact names, schemas, navigate alias
2. Call params: missing, malformed (raw echo), unknown tool
3. Arguments: missing/invalid messages name the tool as called
4. goto/search/markdown/links/evaluate/over semantics
5. Navigation failure aborts the tool with an internal error
"""

from __future__ import annotations

import io
import json

import pytest
from mcp.types import INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND
from playwright.async_api import Error as PlaywrightError

from pagewire.errors import InvalidParamsError, MethodNotFoundError, NavigationError
from pagewire.escaping import EscapingSink
from pagewire.markdown import MarkdownText
from pagewire.tools import (
    NAVIGATED_TEXT,
    SCRIPT_FAILED_TEXT,
    SEARCHED_TEXT,
    TOOL_LOOKUP,
    TOOLS,
    LinksText,
    ToolName,
    build_search_url,
    handle_call,
    list_tools,
)
from tests._session_helpers import FakeSession


def _text(result: dict) -> object:
    return result["content"][0]["text"]


async def _drain(lazy) -> str:
    out = io.BytesIO()
    await lazy.write_to(EscapingSink(out))
    return json.loads(b'"' + out.getvalue() + b'"')


# ── Catalog ────────────────────────────────────────────────────────


class TestCatalog:
    def test_six_tools_in_order(self):
        assert [t.name for t in list_tools()] == ["goto", "search", "markdown", "links", "evaluate", "over"]

    def test_names_unique(self):
        names = [t.name for t in list_tools()]
        assert len(names) == len(set(names))

    def test_navigate_alias_not_listed(self):
        assert "navigate" not in [t.name for t in list_tools()]
        assert TOOL_LOOKUP["navigate"] is TOOLS[ToolName.GOTO]

    def test_required_fields_in_schema(self):
        schemas = {t.name: t.model_dump(by_alias=True)["inputSchema"] for t in list_tools()}
        assert schemas["goto"]["required"] == ["url"]
        assert schemas["search"]["required"] == ["text"]
        assert schemas["evaluate"]["required"] == ["script"]
        assert schemas["over"]["required"] == ["result"]
        assert "required" not in schemas["markdown"]
        assert "required" not in schemas["links"]

    def test_lookup_is_case_sensitive(self):
        assert "Goto" not in TOOL_LOOKUP
        assert "GOTO" not in TOOL_LOOKUP


# ── Call params ────────────────────────────────────────────────────


class TestCallParams:
    async def test_missing_params(self):
        with pytest.raises(InvalidParamsError, match="Missing params") as exc_info:
            await handle_call(FakeSession(), None)
        assert exc_info.value.code == INVALID_PARAMS

    async def test_malformed_params_echoed(self):
        with pytest.raises(InvalidParamsError) as exc_info:
            await handle_call(FakeSession(), {"nom": "goto"})
        assert exc_info.value.message == 'Invalid params: {"nom":"goto"}'

    async def test_non_object_params(self):
        with pytest.raises(InvalidParamsError, match=r"Invalid params: \[1,2\]"):
            await handle_call(FakeSession(), [1, 2])

    async def test_unknown_tool(self):
        with pytest.raises(MethodNotFoundError, match="Tool not found") as exc_info:
            await handle_call(FakeSession(), {"name": "teleport", "arguments": {}})
        assert exc_info.value.code == METHOD_NOT_FOUND


# ── Arguments ──────────────────────────────────────────────────────


class TestArguments:
    @pytest.mark.parametrize("name", ["goto", "navigate", "search", "evaluate", "over"])
    async def test_missing_arguments_name_the_tool(self, name):
        with pytest.raises(InvalidParamsError) as exc_info:
            await handle_call(FakeSession(), {"name": name})
        assert exc_info.value.message == f"Missing arguments for {name}"
        assert exc_info.value.code == INVALID_PARAMS

    @pytest.mark.parametrize(
        ("name", "arguments"),
        [
            ("goto", {"href": "x"}),
            ("goto", {"url": 5}),
            ("search", {"text": None}),
            ("evaluate", {"url": "https://e.com"}),
            ("over", "done"),
            ("markdown", {"url": 42}),
            ("links", ["https://e.com"]),
        ],
    )
    async def test_invalid_arguments_name_the_tool(self, name, arguments):
        with pytest.raises(InvalidParamsError, match=f"^Invalid arguments for {name}$"):
            await handle_call(FakeSession(), {"name": name, "arguments": arguments})

    async def test_unknown_argument_fields_ignored(self):
        session = FakeSession()
        result = await handle_call(session, {"name": "goto", "arguments": {"url": "https://e.com", "x": 1}})
        assert _text(result) == NAVIGATED_TEXT

    async def test_invalid_arguments_do_not_touch_session(self):
        session = FakeSession()
        with pytest.raises(InvalidParamsError):
            await handle_call(session, {"name": "goto", "arguments": {}})
        assert session.navigations == []


# ── goto / search ──────────────────────────────────────────────────


class TestGotoAndSearch:
    async def test_goto(self):
        session = FakeSession()
        result = await handle_call(session, {"name": "goto", "arguments": {"url": "https://example.com/"}})
        assert result == {"content": [{"type": "text", "text": NAVIGATED_TEXT}]}
        assert [url for url, _ in session.navigations] == ["https://example.com/"]
        assert session.waits == [5000]

    async def test_navigate_alias(self):
        session = FakeSession()
        result = await handle_call(session, {"name": "navigate", "arguments": {"url": "https://example.com/"}})
        assert _text(result) == NAVIGATED_TEXT

    async def test_goto_settle_timeout_still_succeeds(self):
        session = FakeSession(settled=False)
        result = await handle_call(session, {"name": "goto", "arguments": {"url": "https://slow.example/"}})
        assert _text(result) == NAVIGATED_TEXT

    async def test_goto_navigation_failure(self):
        session = FakeSession(navigate_error=PlaywrightError("net::ERR_ABORTED"))
        with pytest.raises(NavigationError) as exc_info:
            await handle_call(session, {"name": "goto", "arguments": {"url": "https://bad.example/"}})
        assert exc_info.value.code == INTERNAL_ERROR

    def test_search_url_percent_encoded(self):
        url = build_search_url("a b")
        assert " " not in url
        assert url == "https://duckduckgo.com/?q=a%20b"

    def test_search_url_encodes_reserved_characters(self):
        assert build_search_url("c++ & rust?") == "https://duckduckgo.com/?q=c%2B%2B%20%26%20rust%3F"

    async def test_search_navigates(self):
        session = FakeSession()
        result = await handle_call(session, {"name": "search", "arguments": {"text": "a b"}})
        assert _text(result) == SEARCHED_TEXT
        assert session.navigations[0][0] == "https://duckduckgo.com/?q=a%20b"


# ── markdown / links ───────────────────────────────────────────────


class TestMarkdownAndLinks:
    async def test_markdown_without_arguments_does_not_navigate(self):
        session = FakeSession(html="<p>x</p>")
        result = await handle_call(session, {"name": "markdown"})
        assert isinstance(_text(result), MarkdownText)
        assert session.navigations == []

    async def test_markdown_with_url_navigates_first(self):
        session = FakeSession(html="<h1>Doc</h1>")
        result = await handle_call(session, {"name": "markdown", "arguments": {"url": "https://e.com/"}})
        assert session.navigations[0][0] == "https://e.com/"
        assert await _drain(_text(result)) == "# Doc\n"

    async def test_markdown_navigation_failure_is_internal_error(self):
        session = FakeSession(navigate_error=PlaywrightError("boom"))
        with pytest.raises(NavigationError):
            await handle_call(session, {"name": "markdown", "arguments": {"url": "https://e.com/"}})

    async def test_links_skip_empty_keep_order_and_duplicates(self):
        session = FakeSession(hrefs=["/a", "", "/b", "/a"])
        result = await handle_call(session, {"name": "links", "arguments": {}})
        assert isinstance(_text(result), LinksText)
        assert await _drain(_text(result)) == "/a\n/b\n/a"
        assert session.queries == ["a[href]"]

    async def test_links_exact_join(self):
        session = FakeSession(hrefs=["/a", "", "/b"])
        result = await handle_call(session, {"name": "links"})
        assert await _drain(_text(result)) == "/a\n/b"

    async def test_links_resolution_failure_skips_anchor(self):
        session = FakeSession(hrefs=["/a", PlaywrightError("detached"), "/c"])
        result = await handle_call(session, {"name": "links"})
        assert await _drain(_text(result)) == "/a\n/c"

    async def test_links_release_every_anchor(self):
        session = FakeSession(hrefs=["/a", "", PlaywrightError("detached"), "/d"])
        result = await handle_call(session, {"name": "links"})
        await _drain(_text(result))
        assert session.released == [0, 1, 2, 3]

    async def test_links_release_anchors_when_output_fails(self):
        session = FakeSession(hrefs=["/a", "/b"])
        sink = EscapingSink(io.BytesIO())
        sink.close()
        with pytest.raises(ValueError):
            await LinksText(session).write_to(sink)
        assert session.released == [0, 1]

    async def test_links_empty_page(self):
        result = await handle_call(FakeSession(), {"name": "links"})
        assert await _drain(_text(result)) == ""

    async def test_links_with_url_navigates(self):
        session = FakeSession(hrefs=["https://e.com/x"])
        await handle_call(session, {"name": "links", "arguments": {"url": "https://e.com/"}})
        assert session.navigations[0][0] == "https://e.com/"


# ── evaluate / over ────────────────────────────────────────────────


class TestEvaluateAndOver:
    async def test_evaluate_value(self):
        session = FakeSession(eval_result="2")
        result = await handle_call(session, {"name": "evaluate", "arguments": {"script": "1 + 1"}})
        assert result == {"content": [{"type": "text", "text": "2"}]}
        assert session.scripts == ["1 + 1"]

    async def test_evaluate_failure_sets_application_error_flag(self):
        session = FakeSession(eval_error="ReferenceError: nope is not defined")
        result = await handle_call(session, {"name": "evaluate", "arguments": {"script": "nope()"}})
        assert result["isError"] is True
        assert _text(result) == SCRIPT_FAILED_TEXT

    async def test_evaluate_unstringifiable_value(self):
        session = FakeSession(eval_result=None)
        result = await handle_call(session, {"name": "evaluate", "arguments": {"script": "Object.create(null)"}})
        assert _text(result) == "undefined"
        assert "isError" not in result

    async def test_evaluate_navigates_before_running(self):
        session = FakeSession(eval_result="Example")
        arguments = {"script": "document.title", "url": "https://e.com/"}
        await handle_call(session, {"name": "evaluate", "arguments": arguments})
        assert session.navigations[0][0] == "https://e.com/"
        assert session.scripts == ["document.title"]

    async def test_evaluate_navigation_failure_skips_script(self):
        session = FakeSession(navigate_error=PlaywrightError("boom"))
        with pytest.raises(NavigationError):
            await handle_call(session, {"name": "evaluate", "arguments": {"script": "1", "url": "https://e.com/"}})
        assert session.scripts == []

    async def test_over_echoes_result_without_session_action(self):
        session = FakeSession()
        result = await handle_call(session, {"name": "over", "arguments": {"result": "The answer is 42.\n"}})
        assert _text(result) == "The answer is 42.\n"
        assert session.navigations == []
        assert session.scripts == []
