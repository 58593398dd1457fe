import logging
from typing import Optional

from diagmaker.graph import GraphStore, LineOverlay


class ConnectionProtocol:
    """Two-click connection: the first secondary click picks the source, the second the target.

    Registers itself as a graph listener so a pending source index follows
    structural changes, and is dropped when that node is deleted.
    """

    def __init__(self, store: GraphStore):
        self.store = store
        self.first: Optional[int] = None
        store.listeners.append(self)

    @property
    def is_idle(self) -> bool:
        return self.first is None

    @property
    def awaiting_second(self) -> bool:
        return self.first is not None

    def click(self, index: int) -> Optional[LineOverlay]:
        """Feeds a secondary click on node `index`. Returns the overlay when a connection is made."""
        self.store.node(index)
        if self.first is None:
            self.first = index
            logging.debug(f"Connection started from node {index}.")
            return None
        first, self.first = self.first, None
        return self.store.connect(first, index)

    def cancel(self):
        if self.first is not None:
            logging.debug(f"Connection from node {self.first} cancelled.")
        self.first = None

    def node_inserted(self, index: int):
        if self.first is not None and self.first >= index:
            self.first += 1

    def node_removed(self, index: int):
        if self.first is None:
            return
        if self.first == index:
            logging.info(f"Pending connection source node {index} was deleted. Connection cancelled.")
            self.first = None
        elif self.first > index:
            self.first -= 1

    def graph_cleared(self):
        self.first = None
