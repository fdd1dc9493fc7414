# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Playwright browser session: the single long-lived page pagewire drives.

One BrowserSession per process. It owns Chromium, one context and exactly
one page, and exposes the handful of operations the tools need: navigate,
settle wait, element queries, resolved attributes, DOM snapshot with render
geometry, page HTML and script evaluation.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum

from playwright.async_api import (
    Browser,
    BrowserContext,
    Dialog,
    ElementHandle,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .dom import DOM_SNAPSHOT_JS, DomNode
from .errors import BrowserError, ScriptError

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en-US"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

# Runs the caller's script through indirect eval: global scope, completion
# value of the last statement. Stringification happens in-page so any value
# type comes back as text; null means String() itself threw.
_EVALUATE_JS = """(source) => {
  const value = (0, eval)(source);
  try {
    return String(value);
  } catch (e) {
    return null;
  }
}"""


class NavigationCause(str, Enum):
    """Why a navigation was started. Recorded in logs for the session history."""

    ADDRESS_BAR = "address_bar"
    SCRIPT = "script"


@dataclass
class BrowserConfig:
    """How the session's Chromium is launched and what the page looks like to sites."""

    headless: bool = True
    locale: str = DEFAULT_LOCALE
    viewport_width: int = 1280
    viewport_height: int = 800
    user_agent: str = DEFAULT_USER_AGENT
    timeout_ms: int = 30000  # commit timeout for goto

    def context_options(self) -> dict:
        return {
            "viewport": {"width": self.viewport_width, "height": self.viewport_height},
            "locale": self.locale,
            "user_agent": self.user_agent,
            "accept_downloads": False,
        }


_CHROMIUM_FLAGS = (
    "--disable-blink-features=AutomationControlled",
    "--disable-extensions",
    "--disable-dev-shm-usage",
    "--disable-background-networking",
    "--disable-sync",
    "--disable-gpu",
    "--no-first-run",
    "--disable-breakpad",
    "--noerrdialogs",
)


def chromium_launch_args(config: BrowserConfig) -> list[str]:
    return [*_CHROMIUM_FLAGS, f"--lang={config.locale}"]


# ── Missing browser binary ─────────────────────────────────────────

_INSTALL_TIMEOUT_S = 300
_install_tried = False


def _is_missing_executable(exc: Exception) -> bool:
    return "executable doesn't exist" in str(exc).lower()


async def _install_chromium() -> bool:
    """``python -m playwright install chromium``, at most once per process.

    Output is captured because stdout carries protocol records.
    """
    global _install_tried  # noqa: PLW0603
    if _install_tried:
        return False
    _install_tried = True

    logger.info("No Chromium build found, installing it with playwright")
    try:
        proc = await asyncio.create_subprocess_exec(
            sys.executable, "-m", "playwright", "install", "chromium",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _, err = await asyncio.wait_for(proc.communicate(), timeout=_INSTALL_TIMEOUT_S)
    except TimeoutError:
        logger.warning("Chromium install gave up after %ds", _INSTALL_TIMEOUT_S)
        return False
    except OSError:
        logger.warning("Could not run the playwright installer", exc_info=True)
        return False

    if proc.returncode != 0:
        logger.warning("Chromium install exited with %d: %.500s", proc.returncode, err.decode(errors="replace"))
        return False
    logger.info("Chromium install finished")
    return True


class BrowserSession:
    """Owns Chromium, one browser context and exactly one page."""

    def __init__(self, config: BrowserConfig | None = None):
        self.config = config or BrowserConfig()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session not started; call start() first.")
        return self._page

    @property
    def page_url(self) -> str:
        return self.page.url

    async def _launch(self) -> Browser:
        chromium = self._playwright.chromium
        options = {"headless": self.config.headless, "args": chromium_launch_args(self.config)}
        try:
            return await chromium.launch(**options)
        except PlaywrightError as exc:
            if not _is_missing_executable(exc):
                raise BrowserError(f"Chromium launch failed: {exc}") from exc
            if not await _install_chromium():
                raise BrowserError("Chromium is missing; run `playwright install chromium`") from exc
        try:
            return await chromium.launch(**options)
        except PlaywrightError as exc:
            raise BrowserError(f"Chromium launch failed after install: {exc}") from exc

    async def start(self) -> None:
        """Launch Chromium and open the session's only page. Raises BrowserError."""
        self._playwright = await async_playwright().start()
        self._browser = await self._launch()
        self._context = await self._browser.new_context(**self.config.context_options())
        # An unanswered dialog blocks every later evaluate on the page.
        self._context.on("dialog", self._on_dialog)
        self._page = await self._context.new_page()
        logger.info(
            "Page ready (headless=%s, viewport=%dx%d)",
            self.config.headless,
            self.config.viewport_width,
            self.config.viewport_height,
        )

    async def stop(self) -> None:
        """Tear everything down. Tolerates a browser that already died."""
        page_owner, browser, playwright = self._context, self._browser, self._playwright
        self._page = self._context = self._browser = self._playwright = None
        for closer in (
            page_owner.close if page_owner else None,
            browser.close if browser else None,
            playwright.stop if playwright else None,
        ):
            if closer is not None:
                with suppress(Exception):
                    await closer()
        logger.info("Browser closed")

    async def __aenter__(self) -> BrowserSession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def _on_dialog(self, dialog: Dialog) -> None:
        """Accept alert/beforeunload, dismiss confirm/prompt. The dialog must never stay open."""
        accept = dialog.type in ("alert", "beforeunload")
        try:
            await (dialog.accept() if accept else dialog.dismiss())
        except PlaywrightError:
            logger.warning("Dialog %s could not be answered, dismissing", dialog.type, exc_info=True)
            with suppress(PlaywrightError):
                await dialog.dismiss()
            return
        logger.info("Answered %s dialog (%s): %.100s", dialog.type, "accept" if accept else "dismiss", dialog.message)

    # ── Session handle operations ──────────────────────────────────

    async def navigate(self, url: str, cause: NavigationCause = NavigationCause.ADDRESS_BAR) -> None:
        """Start a navigation that pushes a new history entry.

        Returns once the new document is committed; loading continues in the
        background. Raises PlaywrightError on malformed URLs and load errors.
        """
        logger.info("Navigating to %s (cause=%s)", url, cause.value)
        await self.page.goto(url, wait_until="commit", timeout=self.config.timeout_ms)

    async def wait(self, timeout_ms: int) -> bool:
        """Wait up to ``timeout_ms`` for network activity to go idle.

        Returns True when settled, False on timeout. Never raises for a slow page.
        """
        try:
            await self.page.wait_for_load_state("networkidle", timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as exc:
            logger.debug("Settle wait interrupted: %s", exc)
            return False

    async def query_selector_all(self, selector: str) -> list[ElementHandle]:
        return await self.page.query_selector_all(selector)

    async def resolved_attribute(self, element: ElementHandle, name: str) -> str:
        """Return the resolved DOM property ``name`` (e.g. an absolute ``href``).

        An empty or missing attribute gives "" even though the DOM property
        would resolve it to the document URL.
        """
        raw = await element.get_attribute(name)
        if not raw or not raw.strip():
            return ""
        handle = await element.get_property(name)
        try:
            value = await handle.json_value()
        finally:
            await handle.dispose()
        return value if isinstance(value, str) else ""

    async def release(self, element: ElementHandle) -> None:
        """Dispose an element handle. A handle from a page that went away is ignored."""
        with suppress(PlaywrightError):
            await element.dispose()

    async def dom_snapshot(self) -> DomNode:
        """Capture the document tree with viewport-relative element geometry."""
        return DomNode.from_dict(await self.page.evaluate(DOM_SNAPSHOT_JS))

    async def page_html(self) -> str:
        return await self.page.content()

    async def evaluate(self, script: str) -> str | None:
        """Run ``script`` in the page and return its completion value as text.

        Returns None when the value cannot be converted to a string.
        Raises ScriptError when the script throws.
        """
        try:
            return await self.page.evaluate(_EVALUATE_JS, script)
        except PlaywrightError as exc:
            raise ScriptError(str(exc)) from exc
