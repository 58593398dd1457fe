import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, NewType, Sequence

from diagmaker import config
from diagmaker.graph import AnchorIndex, GraphStore, anchor_to_node_index
from diagmaker.text_layout import Vec2, clamp_text

# 1-based index into the document's node array. No cursor slot.
DocIndex = NewType("DocIndex", int)


class DocumentError(ValueError):
    pass


def to_doc_index(node_index: int) -> DocIndex:
    return DocIndex(node_index + 1)


def doc_to_node_index(doc_index: DocIndex) -> int:
    return int(doc_index) - 1


def anchor_to_doc_index(anchor_index: AnchorIndex) -> DocIndex:
    return to_doc_index(anchor_to_node_index(anchor_index))


@dataclass
class NodeRecord:
    position: Vec2 = config.DEFAULT_POSITION
    text: str = ""
    event: str = ""
    connections: List[DocIndex] = field(default_factory=list)

    def to_dict(self, fields: Sequence[str] = config.SAVE_FIELDS) -> Dict[str, Any]:
        values = {
            "position": [self.position[0], self.position[1]],
            "text": self.text,
            "event": self.event,
            "connections": [int(c) for c in self.connections],
        }
        return {config.get_document_key(name): values[name] for name in fields}

    @classmethod
    def from_dict(cls, data: Any, element: int = 0) -> "NodeRecord":
        if not isinstance(data, dict):
            raise DocumentError(f"Element {element} must be an object, got {type(data).__name__}.")
        rev_map = config.DOCUMENT_REVERSE_KEY_MAP
        values = {rev_map.get(k, k): v for k, v in data.items()}
        record = cls()

        pos_data = values.get("position")
        if isinstance(pos_data, (list, tuple)) and len(pos_data) == 2:
            try:
                record.position = (float(pos_data[0]), float(pos_data[1]))
            except (ValueError, TypeError):
                logging.warning(
                    f"Could not parse position data {pos_data} for element {element}. Using default."
                )
        elif pos_data is not None:
            logging.warning(
                f"Invalid position {pos_data!r} for element {element}. Using default."
            )

        for name in ("text", "event"):
            raw = values.get(name, "")
            if not isinstance(raw, str):
                logging.warning(
                    f"Invalid type for {name} ({type(raw).__name__}) in element {element}. Converting to string."
                )
                raw = "" if raw is None else str(raw)
            setattr(record, name, clamp_text(raw, what=name))

        connections_data = values.get("connections", [])
        if isinstance(connections_data, list):
            for i, c in enumerate(connections_data):
                if isinstance(c, float) and c.is_integer():
                    c = int(c)
                if isinstance(c, int) and not isinstance(c, bool):
                    record.connections.append(DocIndex(c))
                else:
                    logging.warning(
                        f"Invalid connection {i} ({c!r}) in element {element}. Skipping."
                    )
        else:
            logging.warning(
                f"Invalid connections format ({connections_data!r}) in element {element}. Setting to empty list."
            )
        return record


def node_records(store: GraphStore) -> List[NodeRecord]:
    return [
        NodeRecord(
            position=store.position_of(i),
            text=node.text,
            event=node.event,
            connections=[anchor_to_doc_index(edge) for edge in node.edges],
        )
        for i, node in enumerate(store.nodes)
    ]


def save_document(store: GraphStore) -> List[Dict[str, Any]]:
    return [record.to_dict(config.SAVE_FIELDS) for record in node_records(store)]


def export_document(store: GraphStore) -> List[Dict[str, Any]]:
    return [record.to_dict(config.EXPORT_FIELDS) for record in node_records(store)]


def parse_document(document: Any) -> List[NodeRecord]:
    if not isinstance(document, list):
        raise DocumentError(
            f"Invalid format: expected a top-level array, got {type(document).__name__}."
        )
    return [NodeRecord.from_dict(element, i) for i, element in enumerate(document)]


def load_document(store: GraphStore, document: Any) -> GraphStore:
    """Replaces the graph with the document's nodes.

    The document is validated first; on DocumentError the graph is untouched.
    """
    return apply_records(store, parse_document(document))


def apply_records(store: GraphStore, records: List[NodeRecord]) -> GraphStore:
    store.clear()

    # Connections can point forward, so every node must exist before any edge is made.
    for record in records:
        store.append_node(record.text, record.position)
        store.set_event(store.node_count - 1, record.event)

    node_count = store.node_count
    for i, record in enumerate(records):
        for c in record.connections:
            target = doc_to_node_index(c)
            if 0 <= target < node_count:
                store.connect(i, target)
            else:
                logging.warning(
                    f"Element {i} connects to {c}, outside 1..{node_count}. Skipping connection."
                )
    logging.info(f"Loaded {node_count} nodes and {len(store.overlays)} connections.")
    return store


def ensure_extension(file_path: str, extension: str) -> str:
    if not file_path.lower().endswith(extension.lower()):
        file_path += extension
    return file_path


def _write_json(data: Any, file_path: str) -> bool:
    try:
        with open(file_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=config.JSON_INDENT)
        return True
    except (OSError, TypeError, ValueError) as e:
        logging.exception(f"Could not write {file_path}: {e}")
        return False


def save_to_file(store: GraphStore, file_path: str) -> bool:
    logging.info(f"Saving {store.node_count} nodes to: {file_path}")
    return _write_json(save_document(store), file_path)


def export_to_file(store: GraphStore, file_path: str) -> bool:
    logging.info(f"Exporting {store.node_count} nodes to: {file_path}")
    return _write_json(export_document(store), file_path)


def load_from_file(store: GraphStore, file_path: str) -> bool:
    """Loads a document into the store. On failure logs and leaves the graph as it was."""
    try:
        logging.info(f"Loading document from: {file_path}")
        with open(file_path, "r", encoding="utf-8") as f:
            document = json.load(f)
        records = parse_document(document)
    except (OSError, ValueError) as e:
        logging.exception(f"Failed to load document from {file_path}: {e}")
        return False
    apply_records(store, records)
    return True
