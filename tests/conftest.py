"""
Shared fixtures: hand-built DOM trees and small stand-ins for Playwright objects.
"""

import pytest

from region_capture.snapshot import DomSnapshot


class TreeBuilder:
    """Build snapshot payloads node by node. Creation order is document order."""

    def __init__(self):
        self.nodes = []

    def add(self, tag, box, parent=None, display="block", visibility="visible",
            opacity=1.0, matches=(), text=""):
        node_id = len(self.nodes)
        x, y, width, height = box
        self.nodes.append({
            'id': node_id,
            'parent': parent,
            'tag': tag,
            'text': text,
            'box': {'x': x, 'y': y, 'width': width, 'height': height},
            'display': display,
            'visibility': visibility,
            'opacity': opacity,
            'matches': list(matches),
        })
        return node_id

    def payload(self, tables=(), center=None, headings=(), markers=(), wrappers=None, body=None) -> dict:
        return {
            'nodes': self.nodes,
            'order': list(range(len(self.nodes))),
            'tables': list(tables),
            'center': center,
            'headings': list(headings),
            'markers': list(markers),
            'wrappers': wrappers or {},
            'body': body,
        }

    def snapshot(self, **kwargs) -> DomSnapshot:
        return DomSnapshot.from_dict(self.payload(**kwargs))


@pytest.fixture
def tree():
    return TreeBuilder()


class FakeElement:
    """Element whose box is computed from the owning page's current viewport."""

    def __init__(self, page, layout):
        self.page = page
        self.layout = layout
        self.disposed = False

    async def bounding_box(self):
        return self.layout(self.page.viewport)

    async def evaluate(self, expression, arg=None):
        if "outerHTML" in expression:
            return "<table><tr><td>1</td></tr></table>"
        return self.layout(self.page.viewport)

    async def dispose(self):
        self.disposed = True


class FakePage:
    def __init__(self, viewport, layout=None, selector_error=None):
        self.viewport = dict(viewport)
        self.layout = layout
        self.selector_error = selector_error
        self.content = None
        self.screenshots = []
        self.resizes = []
        self.element = None

    async def set_content(self, html, wait_until=None):
        self.content = html

    async def wait_for_selector(self, selector, state=None, timeout=None):
        if self.selector_error is not None:
            raise self.selector_error
        self.element = FakeElement(self, self.layout)
        return self.element

    async def evaluate(self, expression, arg=None):
        if "scrollWidth" in expression:
            box = self.layout(self.viewport) if self.layout else {'x': 0, 'y': 0, 'width': 0, 'height': 0}
            return {
                'width': max(self.viewport['width'], box['x'] + box['width']),
                'height': max(self.viewport['height'], box['y'] + box['height']),
            }
        if "scrollX" in expression:
            return {'x': 0, 'y': 0}
        return None

    async def set_viewport_size(self, size):
        self.resizes.append(dict(size))
        self.viewport = dict(size)

    async def screenshot(self, **kwargs):
        self.screenshots.append(kwargs)
        return b"\x89PNG fake"


class FakeContext:
    def __init__(self, page):
        self.page = page
        self.closed = False

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed = True


class FakeBrowser:
    """Hands out one FakePage per context, built by ``page_factory(viewport)``."""

    def __init__(self, page_factory):
        self.page_factory = page_factory
        self.contexts = []

    async def new_context(self, viewport=None, device_scale_factor=1):
        context = FakeContext(self.page_factory(viewport))
        context.device_scale_factor = device_scale_factor
        self.contexts.append(context)
        return context


class RecordedElement:
    """ElementHandle for a node of a live page, with a fixed box."""

    def __init__(self, box, markup="<table><tr><td>1</td></tr></table>"):
        x, y, width, height = box
        self.box = {'x': x, 'y': y, 'width': width, 'height': height}
        self.markup = markup
        self.kept_links = []
        self.scripts = []
        self.disposed = False

    async def bounding_box(self):
        return dict(self.box)

    async def evaluate(self, expression, arg=None):
        self.scripts.append(expression)
        if "querySelectorAll('a')" in expression:
            self.kept_links.append(arg)
            return 1
        if "outerHTML" in expression or "innerHTML" in expression:
            return self.markup
        return dict(self.box)

    def as_element(self):
        return self

    async def dispose(self):
        self.disposed = True


class Registry:
    """Stands in for the JS handle that keeps recorded elements alive."""

    def __init__(self, data, elements):
        self.data = data
        self.elements = elements
        self.disposed = False

    async def evaluate(self, expression, arg=None):
        return self.data

    async def evaluate_handle(self, expression, arg=None):
        return self.elements[arg]

    async def dispose(self):
        self.disposed = True


class LivePage(FakePage):
    """A navigated page whose snapshot payload and element handles are scripted."""

    def __init__(self, viewport, payload, elements, extent=(1366, 2000)):
        width, height = extent
        super().__init__(viewport, layout=lambda _: {'x': 0, 'y': 0, 'width': width, 'height': height})
        self.registry = Registry(payload, elements)
        self.visited = []

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append(url)

    async def wait_for_load_state(self, state=None, timeout=None):
        pass

    async def evaluate_handle(self, expression, arg=None):
        return self.registry
