"""
DOM snapshot for the region locator.

A single ``evaluate_handle`` call records every element the locator policies may
look at (tables, the element under the viewport centre, headings, trailing marker
candidates, content wrappers) together with its ancestor chain, layout box and
computed visibility. The heuristics then run as plain Python over ``DomNode``
objects, and the chosen node is resolved back to a Playwright ``ElementHandle``
through the registry handle that keeps the recorded elements alive.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from .models import BoundingBox, SelectorConfig

COLLECT_JS = """
({tableSelectors, wrapperSelectors, headingWrappers, markerSelectors}) => {
  const elements = [];
  const nodes = [];
  const ids = new Map();
  const matchSelectors = [...new Set([...wrapperSelectors, ...headingWrappers])];
  const sx = window.scrollX, sy = window.scrollY;

  const queryAll = (selector) => {
    try { return [...document.querySelectorAll(selector)]; } catch (e) { return []; }
  };
  const matches = (el, selector) => {
    try { return el.matches(selector); } catch (e) { return false; }
  };

  const add = (el) => {
    if (!el || el.nodeType !== 1) return null;
    if (ids.has(el)) return ids.get(el);
    const parent = el.parentElement ? add(el.parentElement) : null;
    const id = elements.length;
    ids.set(el, id);
    elements.push(el);
    const r = el.getBoundingClientRect();
    const s = getComputedStyle(el);
    nodes.push({
      id,
      parent,
      tag: el.tagName.toLowerCase(),
      text: '',
      box: {x: r.x + sx, y: r.y + sy, width: r.width, height: r.height},
      display: s.display,
      visibility: s.visibility,
      opacity: parseFloat(s.opacity),
      matches: matchSelectors.filter(sel => matches(el, sel)),
    });
    return id;
  };
  const addWithText = (el) => {
    const id = add(el);
    nodes[id].text = (el.textContent || '').replace(/\\s+/g, ' ').trim().slice(0, 500);
    return id;
  };
  const unique = (lists) => [...new Set(lists.flat())];

  const tables = unique(tableSelectors.map(queryAll)).map(add);
  const centerEl = document.elementFromPoint(window.innerWidth / 2, window.innerHeight / 2);
  const center = centerEl ? add(centerEl) : null;
  const headings = queryAll('h1, h2, h3, h4, h5, h6').map(addWithText);
  const markers = unique(markerSelectors.map(queryAll)).map(addWithText);
  const wrappers = {};
  for (const sel of wrapperSelectors) {
    const found = queryAll(sel)[0];
    wrappers[sel] = found ? add(found) : null;
  }
  const body = add(document.body);

  const order = [...elements].sort((a, b) => {
    if (a === b) return 0;
    return a.compareDocumentPosition(b) & Node.DOCUMENT_POSITION_FOLLOWING ? -1 : 1;
  }).map(el => ids.get(el));

  return {
    elements,
    data: {nodes, order, tables, center, headings, markers, wrappers, body},
  };
}
"""


@dataclass(frozen=True)
class Visibility:
    """Computed style values that decide whether an element is rendered."""

    display: str
    visibility: str
    opacity: float

    @property
    def is_hidden(self) -> bool:
        return self.display == "none" or self.visibility == "hidden" or self.opacity <= 0


class DomNode:
    """One recorded element. Implements the tree-node interface used by the locator."""

    def __init__(self, node_id: int, tag: str, box: BoundingBox, display: str = "block",
                 visibility: str = "visible", opacity: float = 1.0, matches=(),
                 text: str = "", order: int = 0):
        self.id = node_id
        self.tag = tag
        self.text = text
        self.order = order
        self._box = box
        self._visibility = Visibility(display, visibility, opacity)
        self._matches = frozenset(matches)
        self._parent: Optional["DomNode"] = None

    def bounding_box(self) -> BoundingBox:
        return self._box

    def computed_visibility(self) -> Visibility:
        return self._visibility

    def parent(self) -> Optional["DomNode"]:
        return self._parent

    def matches(self, selector: str) -> bool:
        return selector in self._matches

    def ancestors(self) -> Iterator["DomNode"]:
        node = self._parent
        while node is not None:
            yield node
            node = node._parent

    def contains(self, other: "DomNode") -> bool:
        """True if ``other`` is this node or one of its descendants."""
        return other is self or any(a is self for a in other.ancestors())

    def __repr__(self) -> str:
        box = self._box
        return f"<DomNode #{self.id} {self.tag} {box.width:.0f}x{box.height:.0f}@{box.x:.0f},{box.y:.0f}>"


class DomSnapshot:
    """Everything the locator policies need from one rendered page."""

    def __init__(self, nodes: Dict[int, DomNode], tables: List[DomNode], center: Optional[DomNode],
                 headings: List[DomNode], markers: List[DomNode],
                 wrappers: Dict[str, Optional[DomNode]], body: Optional[DomNode]):
        self.nodes = nodes
        self.tables = tables
        self.center = center
        self.headings = headings
        self.markers = markers
        self.wrappers = wrappers
        self.body = body
        self._registry = None

    @classmethod
    def from_dict(cls, data: dict) -> "DomSnapshot":
        """Build a snapshot from the payload produced by ``COLLECT_JS``."""
        order = {node_id: index for index, node_id in enumerate(data.get('order', []))}
        nodes: Dict[int, DomNode] = {}
        for raw in data['nodes']:
            node_id = raw['id']
            nodes[node_id] = DomNode(
                node_id,
                raw['tag'],
                BoundingBox.from_dict(raw['box']),
                display=raw.get('display', 'block'),
                visibility=raw.get('visibility', 'visible'),
                opacity=float(raw.get('opacity', 1.0)),
                matches=raw.get('matches', ()),
                text=raw.get('text', ''),
                order=order.get(node_id, node_id),
            )
        for raw in data['nodes']:
            if raw.get('parent') is not None:
                nodes[raw['id']]._parent = nodes[raw['parent']]

        def pick(node_id):
            return nodes.get(node_id) if node_id is not None else None

        def pick_all(ids):
            found = [nodes[i] for i in dict.fromkeys(ids) if i in nodes]
            return sorted(found, key=lambda node: node.order)

        return cls(
            nodes=nodes,
            tables=pick_all(data.get('tables', [])),
            center=pick(data.get('center')),
            headings=pick_all(data.get('headings', [])),
            markers=pick_all(data.get('markers', [])),
            wrappers={sel: pick(node_id) for sel, node_id in (data.get('wrappers') or {}).items()},
            body=pick(data.get('body')),
        )

    def wrapper_candidates(self, selectors: List[str]) -> List[DomNode]:
        """First match of each wrapper selector, in selector order."""
        return [self.wrappers[sel] for sel in selectors if self.wrappers.get(sel) is not None]

    async def resolve(self, node: DomNode):
        """Return a Playwright ElementHandle for a recorded node. The caller disposes it."""
        if self._registry is None:
            raise RuntimeError("snapshot is not attached to a live page")
        handle = await self._registry.evaluate_handle("(r, i) => r.elements[i]", node.id)
        element = handle.as_element()
        if element is None:
            await handle.dispose()
            raise RuntimeError(f"recorded node {node!r} is no longer an element")
        return element


@asynccontextmanager
async def live_snapshot(page, selectors: SelectorConfig):
    """
    Record a snapshot of ``page`` and keep its element registry alive for the scope.

    The page is scrolled to the origin first so layout boxes are in document
    coordinates.
    """
    await page.evaluate("() => window.scrollTo(0, 0)")
    registry = await page.evaluate_handle(COLLECT_JS, {
        'tableSelectors': selectors.table_selectors,
        'wrapperSelectors': selectors.content_wrappers,
        'headingWrappers': selectors.heading_wrappers,
        'markerSelectors': selectors.marker_selectors,
    })
    try:
        data = await registry.evaluate("r => r.data")
        snapshot = DomSnapshot.from_dict(data)
        snapshot._registry = registry
        yield snapshot
    finally:
        await registry.dispose()
