import os

import pytest

# Qt tests run without a display.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from diagmaker.context import EditorContext
from diagmaker.graph import GraphStore

GLYPH_ADVANCE = 10.0
NARROW_ADVANCE = {"i": 4.0, " ": 5.0}
GLYPH_HEIGHT = 20.0


class FakeFontMetrics:
    """Every glyph is 10px wide (a few narrower) and 20px tall."""

    def advance(self, char):
        return (NARROW_ADVANCE.get(char, GLYPH_ADVANCE), 0.0)

    def bitmap_size(self, char):
        return (NARROW_ADVANCE.get(char, GLYPH_ADVANCE) - 2.0, GLYPH_HEIGHT)

    def bitmap_offset(self, char):
        return (1.0, GLYPH_HEIGHT - 4.0)


class RecordingRenderer:
    """Hands out integer handles and remembers which are alive."""

    def __init__(self):
        self._next = 0
        self.live = {}
        self.destroyed = []
        self.positions = {}
        self.texts = {}
        self.lines = {}

    def _new(self, kind):
        self._next += 1
        self.live[self._next] = kind
        return self._next

    def _destroy(self, handle, kind):
        assert self.live.get(handle) == kind, f"destroying {handle} as {kind}, live: {self.live.get(handle)}"
        del self.live[handle]
        self.destroyed.append(handle)

    def count(self, kind):
        return sum(1 for k in self.live.values() if k == kind)

    def create_node_visual(self, position, scale):
        handle = self._new("node")
        self.positions[handle] = position
        return handle

    def destroy_node_visual(self, handle):
        self._destroy(handle, "node")

    def create_text_visual(self, text, position, scale):
        handle = self._new("text")
        self.texts[handle] = text
        self.positions[handle] = position
        return handle

    def destroy_text_visual(self, handle):
        self._destroy(handle, "text")

    def create_line_visual(self, p0, p1):
        handle = self._new("line")
        self.lines[handle] = (p0, p1)
        return handle

    def update_line_visual(self, handle, p0, p1):
        assert self.live.get(handle) == "line"
        self.lines[handle] = (p0, p1)

    def destroy_line_visual(self, handle):
        self._destroy(handle, "line")

    def move_visual(self, handle, position):
        assert handle in self.live
        self.positions[handle] = position


def assert_consistent(store, renderer=None):
    store.check_invariants()
    if renderer is not None:
        assert renderer.count("node") == store.node_count + 1
        assert renderer.count("text") == len(store.fragments)
        assert renderer.count("line") == len(store.overlays)


@pytest.fixture
def metrics():
    return FakeFontMetrics()


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def context(metrics, renderer):
    return EditorContext(metrics=metrics, renderer=renderer)


@pytest.fixture
def store(context):
    return GraphStore(context)


@pytest.fixture
def consistent(renderer):
    def check(graph):
        assert_consistent(graph, renderer)

    return check


@pytest.fixture
def make_store():
    """Builds independent stores, each with its own renderer."""

    def build():
        return GraphStore(EditorContext(metrics=FakeFontMetrics(), renderer=RecordingRenderer()))

    return build
