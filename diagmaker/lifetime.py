import logging
from typing import Any, Callable, List, Tuple

from diagmaker import config


class ReleaseQueue:
    """Holds visual destruction requests until no in-flight frame can reference them.

    A request made while frames 0..n-1 have been submitted is released once
    frame n-1 has completed. With nothing in flight it is released at once.
    """

    def __init__(self, frames_in_flight: int = config.FRAMES_IN_FLIGHT):
        if frames_in_flight < 0:
            raise ValueError(f"frames_in_flight must be >= 0, got {frames_in_flight}")
        self.frames_in_flight = frames_in_flight
        self._submitted = 0
        self._completed = -1
        self._pending: List[Tuple[int, Callable[[Any], None], Any]] = []

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def in_flight(self) -> int:
        return self._submitted - 1 - self._completed

    def defer(self, destroy: Callable[[Any], None], handle: Any):
        if self.in_flight == 0:
            destroy(handle)
            return
        self._pending.append((self._submitted, destroy, handle))

    def frame_submitted(self) -> int:
        frame_id = self._submitted
        self._submitted += 1
        return frame_id

    def frame_completed(self, frame_id: int):
        if frame_id >= self._submitted:
            raise ValueError(
                f"Frame {frame_id} completed but only {self._submitted} frames were submitted."
            )
        if frame_id <= self._completed:
            return
        self._completed = frame_id
        self._release_ready()

    def advance_frame(self) -> int:
        """Submits a frame and completes every frame older than the in-flight window."""
        frame_id = self.frame_submitted()
        oldest_running = frame_id - self.frames_in_flight
        if oldest_running > self._completed:
            self.frame_completed(oldest_running)
        return frame_id

    def flush(self):
        """Releases everything. Only valid once the renderer is idle."""
        self._completed = self._submitted - 1
        self._release_ready()

    def _release_ready(self):
        ready = [entry for entry in self._pending if entry[0] <= self._completed + 1]
        if not ready:
            return
        self._pending = [entry for entry in self._pending if entry[0] > self._completed + 1]
        for _, destroy, handle in ready:
            destroy(handle)
        logging.debug(f"Released {len(ready)} deferred visuals ({len(self._pending)} still pending).")
