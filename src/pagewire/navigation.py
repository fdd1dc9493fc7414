# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Navigation gate: navigate, then wait a bounded time for the page to settle.

The settle wait is advisory. A page that is still busy after
SETTLE_TIMEOUT_MS is read as-is; only a navigation that cannot start is an
error.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .browser_session import NavigationCause
from .errors import NavigationError

if TYPE_CHECKING:
    from .browser_session import BrowserSession

logger = logging.getLogger(__name__)

SETTLE_TIMEOUT_MS = 5000


async def navigate_and_settle(session: BrowserSession, url: str) -> bool:
    """Navigate ``session`` to ``url`` as an address-bar navigation.

    Returns whether the page settled within SETTLE_TIMEOUT_MS.
    Raises NavigationError if the navigation itself fails.
    """
    try:
        await session.navigate(url, NavigationCause.ADDRESS_BAR)
    except Exception as exc:
        logger.warning("Navigation to %s failed: %s", url, exc)
        raise NavigationError() from exc

    settled = await session.wait(SETTLE_TIMEOUT_MS)
    if not settled:
        logger.debug("Page not settled after %dms, continuing with current state: %s", SETTLE_TIMEOUT_MS, url)
    return settled
