# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import pagewire  # noqa: F401
except ImportError:
    raise ImportError("pagewire is not installed. Run: pip install -e '.[dev]'") from None

import pytest

from tests._session_helpers import FakeSession


@pytest.fixture(autouse=True)
def _block_real_browser(request, monkeypatch):
    """Safety net: prevent real Chromium launches in unit tests.

    Tests drive a FakeSession (or a BrowserSession with a mocked page).
    Opt out with ``@pytest.mark.allow_real_browser``.
    """
    if "allow_real_browser" in request.keywords:
        return

    async def _no_real_browser(self):
        raise RuntimeError("Test tried to start a real browser session. Use FakeSession or mock the page.")

    monkeypatch.setattr("pagewire.browser_session.BrowserSession.start", _no_real_browser)


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()
