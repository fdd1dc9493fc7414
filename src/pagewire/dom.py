# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""DOM snapshot model.

The live document is captured by a single in-page walk (DOM_SNAPSHOT_JS)
that returns nested plain objects; ``DomNode.from_dict`` turns them into a
tree the distiller can traverse without further round-trips. Each element
carries its viewport-relative bounding box as reported by the renderer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class NodeKind(str, Enum):
    DOCUMENT = "document"
    ELEMENT = "element"
    TEXT = "text"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class Rect:
    """Viewport-relative bounding box in CSS pixels."""

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    def rounded(self) -> tuple[int, int, int, int]:
        return round(self.x), round(self.y), round(self.width), round(self.height)


@dataclass
class DomNode:
    kind: NodeKind
    tag: str = ""  # lowercase local name, elements only
    text: str = ""  # text nodes only
    rect: Rect | None = None
    children: list[DomNode] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> DomNode:
        """Build a tree from the DOM_SNAPSHOT_JS result (iterative, no recursion limit)."""
        root = cls._shallow(data)
        stack = [(root, data.get("children") or [])]
        while stack:
            parent, raw_children = stack.pop()
            for raw in raw_children:
                child = cls._shallow(raw)
                parent.children.append(child)
                grandchildren = raw.get("children") or []
                if grandchildren:
                    stack.append((child, grandchildren))
        return root

    @classmethod
    def _shallow(cls, data: dict) -> DomNode:
        try:
            kind = NodeKind(data.get("kind", "other"))
        except ValueError:
            kind = NodeKind.OTHER
        rect = None
        raw_rect = data.get("rect")
        if raw_rect:
            rect = Rect(
                x=float(raw_rect.get("x", 0)),
                y=float(raw_rect.get("y", 0)),
                width=float(raw_rect.get("width", 0)),
                height=float(raw_rect.get("height", 0)),
            )
        return cls(
            kind=kind,
            tag=str(data.get("tag", "")).lower(),
            text=str(data.get("text", "")),
            rect=rect,
        )


# Static walk, no interpolation. Filtered subtrees are still captured here;
# filtering is the distiller's job.
DOM_SNAPSHOT_JS = """() => {
  const walk = (node) => {
    switch (node.nodeType) {
      case Node.DOCUMENT_NODE:
        return { kind: 'document', children: Array.from(node.childNodes, walk) };
      case Node.ELEMENT_NODE: {
        const r = node.getBoundingClientRect();
        return {
          kind: 'element',
          tag: node.localName,
          rect: { x: r.x, y: r.y, width: r.width, height: r.height },
          children: Array.from(node.childNodes, walk),
        };
      }
      case Node.TEXT_NODE:
        return { kind: 'text', text: node.nodeValue || '' };
      default:
        return { kind: 'other' };
    }
  };
  return walk(document);
}"""
