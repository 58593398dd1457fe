import logging
from dataclasses import dataclass, field
from typing import Any, List, NewType, Optional, Protocol, Sequence, Tuple

from diagmaker import config
from diagmaker.context import EditorContext
from diagmaker.text_layout import Vec2, clamp_text

# 1-based index into GraphStore.anchors. Slot 0 is the cursor, so node k sits at k + 1.
AnchorIndex = NewType("AnchorIndex", int)
CURSOR_SLOT = 0


def to_anchor_index(node_index: int) -> AnchorIndex:
    return AnchorIndex(node_index + 1)


def anchor_to_node_index(anchor_index: AnchorIndex) -> int:
    return int(anchor_index) - 1


class GraphInvariantError(AssertionError):
    pass


@dataclass
class Anchor:
    position: Vec2
    scale: Vec2
    visual: Any = None

    def contains(self, point: Vec2) -> bool:
        half_w, half_h = self.scale[0] / 2, self.scale[1] / 2
        return (
            self.position[0] - half_w <= point[0] <= self.position[0] + half_w
            and self.position[1] - half_h <= point[1] <= self.position[1] + half_h
        )


@dataclass
class TextFragment:
    text: str
    position: Vec2
    offset: Vec2
    visual: Any = None


@dataclass
class LineOverlay:
    source: int  # 0-based node indices
    target: int
    visual: Any = None

    def references(self, node_index: int) -> bool:
        return self.source == node_index or self.target == node_index


@dataclass
class Node:
    text: str = ""
    event: str = ""
    edges: List[AnchorIndex] = field(default_factory=list)
    beginning_text_index: int = 0
    count: int = 0

    @property
    def text_run(self) -> Tuple[int, int]:
        return (self.beginning_text_index, self.count)


class GraphListener(Protocol):
    def node_inserted(self, index: int) -> None: ...

    def node_removed(self, index: int) -> None: ...

    def graph_cleared(self) -> None: ...


def _add(a: Vec2, b: Vec2) -> Vec2:
    return (a[0] + b[0], a[1] + b[1])


def _as_vec2(value: Sequence[float]) -> Vec2:
    if len(value) != 2:
        raise ValueError(f"Expected a 2D position, got {value!r}")
    return (float(value[0]), float(value[1]))


class GraphStore:
    """Nodes, their anchors, text fragments and line overlays, kept in step.

    Every structural mutation finishes its whole rebase before returning,
    so a reader never sees a half-updated graph.
    """

    def __init__(self, context: EditorContext):
        self.context = context
        self.nodes: List[Node] = []
        self.fragments: List[TextFragment] = []
        self.overlays: List[LineOverlay] = []
        self.listeners: List[GraphListener] = []
        cursor_pos = config.DEFAULT_POSITION
        self.anchors: List[Anchor] = [
            Anchor(
                position=cursor_pos,
                scale=config.CURSOR_SCALE,
                visual=context.renderer.create_node_visual(cursor_pos, config.CURSOR_SCALE),
            )
        ]

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def cursor(self) -> Anchor:
        return self.anchors[CURSOR_SLOT]

    def _check_index(self, index: int, what: str = "node"):
        if not isinstance(index, int) or not 0 <= index < len(self.nodes):
            raise IndexError(f"Stale or invalid {what} index {index!r} (node count {len(self.nodes)}).")

    def node(self, index: int) -> Node:
        self._check_index(index)
        return self.nodes[index]

    def anchor_for(self, index: int) -> Anchor:
        self._check_index(index)
        return self.anchors[to_anchor_index(index)]

    def position_of(self, index: int) -> Vec2:
        return self.anchor_for(index).position

    def fragments_for(self, index: int) -> List[TextFragment]:
        node = self.node(index)
        return self.fragments[node.beginning_text_index : node.beginning_text_index + node.count]

    def edge_targets(self, index: int) -> List[int]:
        """Outgoing connections of a node as 0-based node indices."""
        return [anchor_to_node_index(edge) for edge in self.node(index).edges]

    # --- Structural mutation ---

    def insert_node_at(self, index: int, text: str, position: Sequence[float]) -> Node:
        if not isinstance(index, int) or not 0 <= index <= len(self.nodes):
            raise IndexError(f"Insert index {index!r} out of range 0..{len(self.nodes)}.")
        if index < len(self.nodes):
            self._shift_links_up(index)
        node = self._attach(index, text, _as_vec2(position))
        if self.context.selected is not None and self.context.selected >= index:
            self.context.selected += 1
        for listener in self.listeners:
            listener.node_inserted(index)
        logging.info(f"Added node {index} ({node.count} lines).")
        return node

    def append_node(self, text: str, position: Sequence[float]) -> Node:
        return self.insert_node_at(len(self.nodes), text, position)

    def remove_node_at(self, index: int):
        self._check_index(index)
        self._detach(index)

        removed_anchor = to_anchor_index(index)
        for node in self.nodes:
            node.edges = [
                AnchorIndex(edge - 1) if edge > removed_anchor else edge
                for edge in node.edges
                if edge != removed_anchor
            ]

        surviving: List[LineOverlay] = []
        for overlay in self.overlays:
            if overlay.references(index):
                self._release(self.context.renderer.destroy_line_visual, overlay.visual)
                continue
            if overlay.source > index:
                overlay.source -= 1
            if overlay.target > index:
                overlay.target -= 1
            surviving.append(overlay)
        logging.debug(
            f"Removed {len(self.overlays) - len(surviving)} line overlays touching node {index}."
        )
        self.overlays = surviving

        selected = self.context.selected
        if selected is not None:
            if selected == index:
                self.context.selected = None
            elif selected > index:
                self.context.selected = selected - 1

        for listener in self.listeners:
            listener.node_removed(index)
        logging.info(f"Deleted node {index}. {len(self.nodes)} nodes remain.")

    def update_node_text(self, index: int, new_text: str) -> Node:
        """Rebuilds the node with new text. Fragment and visual handles are replaced."""
        self._check_index(index)
        old = self.nodes[index]
        event = old.event
        edges = list(old.edges)
        position = self.anchors[to_anchor_index(index)].position

        # Other nodes keep their edges into this one: detach/attach skip the link cascade.
        self._detach(index)
        node = self._attach(index, new_text, position)
        node.event = event
        node.edges = edges
        logging.debug(f"Rebuilt node {index} with {node.count} lines.")
        return node

    def clear(self):
        for overlay in self.overlays:
            self._release(self.context.renderer.destroy_line_visual, overlay.visual)
        self.overlays = []
        while self.nodes:
            self._detach(len(self.nodes) - 1)
        self.context.selected = None
        for listener in self.listeners:
            listener.graph_cleared()
        logging.info("Cleared graph.")

    def _attach(self, index: int, text: str, position: Vec2) -> Node:
        text = clamp_text(text)
        layout = self.context.text_layout().layout(text)
        renderer = self.context.renderer

        anchor = Anchor(
            position=position,
            scale=layout.size,
            visual=renderer.create_node_visual(position, layout.size),
        )
        self.anchors.insert(to_anchor_index(index), anchor)

        beginning = sum(node.count for node in self.nodes[:index])
        new_fragments = []
        for frag in layout.fragments:
            frag_pos = _add(position, frag.offset)
            new_fragments.append(
                TextFragment(
                    text=frag.text,
                    position=frag_pos,
                    offset=frag.offset,
                    visual=renderer.create_text_visual(frag.text, frag_pos, self.context.text_scale),
                )
            )
        self.fragments[beginning:beginning] = new_fragments

        for later in self.nodes[index:]:
            later.beginning_text_index += len(new_fragments)

        node = Node(text=text, beginning_text_index=beginning, count=len(new_fragments))
        self.nodes.insert(index, node)
        return node

    def _detach(self, index: int) -> Node:
        node = self.nodes[index]
        renderer = self.context.renderer
        start, count = node.text_run

        for i in range(start + count - 1, start - 1, -1):
            self._release(renderer.destroy_text_visual, self.fragments[i].visual)
            del self.fragments[i]

        anchor = self.anchors.pop(to_anchor_index(index))
        self._release(renderer.destroy_node_visual, anchor.visual)
        del self.nodes[index]

        for later in self.nodes[index:]:
            later.beginning_text_index -= count
        return node

    def _shift_links_up(self, index: int):
        first_shifted = to_anchor_index(index)
        for node in self.nodes:
            node.edges = [AnchorIndex(edge + 1) if edge >= first_shifted else edge for edge in node.edges]
        for overlay in self.overlays:
            if overlay.source >= index:
                overlay.source += 1
            if overlay.target >= index:
                overlay.target += 1

    def _release(self, destroy, handle):
        self.context.release_queue.defer(destroy, handle)

    # --- In-place edits ---

    def move_node(self, index: int, delta: Sequence[float]):
        anchor = self.anchor_for(index)
        delta = _as_vec2(delta)
        renderer = self.context.renderer
        anchor.position = _add(anchor.position, delta)
        renderer.move_visual(anchor.visual, anchor.position)
        for frag in self.fragments_for(index):
            frag.position = _add(frag.position, delta)
            renderer.move_visual(frag.visual, frag.position)

    def set_node_position(self, index: int, position: Sequence[float]):
        current = self.anchor_for(index).position
        target = _as_vec2(position)
        self.move_node(index, (target[0] - current[0], target[1] - current[1]))

    def set_event(self, index: int, event: str):
        self.node(index).event = clamp_text(event, what="event")

    def move_cursor(self, position: Sequence[float]):
        cursor = self.cursor
        cursor.position = _as_vec2(position)
        self.context.renderer.move_visual(cursor.visual, cursor.position)

    def connect(self, source: int, target: int) -> LineOverlay:
        self._check_index(source, "source node")
        self._check_index(target, "target node")
        self.nodes[source].edges.append(to_anchor_index(target))
        overlay = LineOverlay(
            source=source,
            target=target,
            visual=self.context.renderer.create_line_visual(
                self.anchors[to_anchor_index(source)].position,
                self.anchors[to_anchor_index(target)].position,
            ),
        )
        self.overlays.append(overlay)
        logging.info(f"Connected node {source} -> node {target}.")
        return overlay

    # --- Queries ---

    def node_at(self, point: Sequence[float]) -> Optional[int]:
        point = _as_vec2(point)
        hit = None
        for index in range(len(self.nodes)):
            if self.anchors[to_anchor_index(index)].contains(point):
                hit = index
        return hit

    def line_segments(self) -> List[Tuple[Vec2, Vec2]]:
        return [
            (self.anchors[to_anchor_index(o.source)].position, self.anchors[to_anchor_index(o.target)].position)
            for o in self.overlays
        ]

    def sync_lines(self):
        renderer = self.context.renderer
        for overlay, (p0, p1) in zip(self.overlays, self.line_segments()):
            renderer.update_line_visual(overlay.visual, p0, p1)

    def check_invariants(self):
        if len(self.anchors) != len(self.nodes) + 1:
            raise GraphInvariantError(
                f"{len(self.anchors)} anchors for {len(self.nodes)} nodes (expected nodes + 1)."
            )
        running = 0
        for k, node in enumerate(self.nodes):
            if node.beginning_text_index != running:
                raise GraphInvariantError(
                    f"Node {k} text run starts at {node.beginning_text_index}, expected {running}."
                )
            running += node.count
            for edge in node.edges:
                if not 1 <= edge <= len(self.nodes):
                    raise GraphInvariantError(f"Node {k} has dangling edge {edge}.")
        if running != len(self.fragments):
            raise GraphInvariantError(
                f"Text runs cover {running} fragments but {len(self.fragments)} exist."
            )
        for overlay in self.overlays:
            if not (0 <= overlay.source < len(self.nodes) and 0 <= overlay.target < len(self.nodes)):
                raise GraphInvariantError(f"Line overlay {overlay.source}->{overlay.target} is dangling.")
