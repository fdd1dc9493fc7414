# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""pagewire: drive one headless browser page over line-delimited JSON-RPC.

An MCP server for agent loops: navigate, search, read the page as markdown,
list its links, evaluate scripts, and distill the DOM into an id-annotated
element tree with viewport geometry.
"""

from __future__ import annotations

SERVER_NAME = "pagewire"

try:
    from importlib.metadata import version as _pkg_version

    __version__ = _pkg_version("pagewire")
except Exception:
    __version__ = "0.1.0"
