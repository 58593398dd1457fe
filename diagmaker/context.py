from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from diagmaker import config
from diagmaker.lifetime import ReleaseQueue
from diagmaker.text_layout import FontMetrics, TextLayout, Vec2


class Renderer(Protocol):
    """Visual side of the editor. Handles are opaque to the graph."""

    def create_node_visual(self, position: Vec2, scale: Vec2) -> Any: ...

    def destroy_node_visual(self, handle: Any) -> None: ...

    def create_text_visual(self, text: str, position: Vec2, scale: float) -> Any: ...

    def destroy_text_visual(self, handle: Any) -> None: ...

    def create_line_visual(self, p0: Vec2, p1: Vec2) -> Any: ...

    def update_line_visual(self, handle: Any, p0: Vec2, p1: Vec2) -> None: ...

    def destroy_line_visual(self, handle: Any) -> None: ...

    def move_visual(self, handle: Any, position: Vec2) -> None: ...


class NullRenderer:
    """Renderer for headless use: document conversion, scripting."""

    def create_node_visual(self, position: Vec2, scale: Vec2) -> Any:
        return None

    def destroy_node_visual(self, handle: Any) -> None:
        pass

    def create_text_visual(self, text: str, position: Vec2, scale: float) -> Any:
        return None

    def destroy_text_visual(self, handle: Any) -> None:
        pass

    def create_line_visual(self, p0: Vec2, p1: Vec2) -> Any:
        return None

    def update_line_visual(self, handle: Any, p0: Vec2, p1: Vec2) -> None:
        pass

    def destroy_line_visual(self, handle: Any) -> None:
        pass

    def move_visual(self, handle: Any, position: Vec2) -> None:
        pass


@dataclass
class EditorContext:
    """State shared by the graph, the layout and the editor window.

    Owned by the top-level editor and passed to the graph explicitly.
    `selected` is a 0-based node index, kept in step by graph mutations.
    """

    metrics: FontMetrics
    renderer: Renderer = field(default_factory=NullRenderer)
    text_scale: float = config.TEXT_SCALE
    release_queue: ReleaseQueue = field(default_factory=ReleaseQueue)
    selected: Optional[int] = None

    def text_layout(self) -> TextLayout:
        return TextLayout(self.metrics, scale=self.text_scale)
