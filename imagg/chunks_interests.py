"""Base class of the services that fetch every chunk of a flow, one pipeline per chunk."""

from __future__ import annotations

import abc
import logging
import sys
from typing import Callable, Optional

from imagg.face import Data, Face, Name
from imagg.options import Options
from imagg.pipeline_interests import format_throughput

logger = logging.getLogger(__name__)

ChunkData = dict[int, Data]
ChunkCallback = Callable[[ChunkData], None]
FailureCallback = Callable[[str], None]

__all__ = ["ChunksInterests", "format_throughput"]


class ChunksInterests(abc.ABC):
    """Retrieves all chunks under a prefix and reports each completed chunk.

    A completed chunk is a mapping from segment number to Data. Every chunk is
    passed to the user callback and then to the split-interest service, if one
    is attached. The split-interest service may provide ``received`` (a byte
    counter shared by all chunk fetchers), ``received_split_increment()``,
    ``on_data(data)`` and ``flow_controller.should_pause_flow(flow)``.
    """

    def __init__(self, face: Face, options: Options) -> None:
        self.face = face
        self.options = options
        self.prefix = Name()
        self.split_interest = None
        self.has_final_chunk_id = False
        self.last_chunk_no = 0
        self.n_received = 0
        self.received_size = 0
        self.start_time = 0.0
        self.time_stamp = 0.0
        self._own_received = 0
        self._data_callback: Optional[ChunkCallback] = None
        self._failure_callback: Optional[FailureCallback] = None
        self._next_chunk = 0
        self._is_stopping = False

    @property
    def is_stopping(self) -> bool:
        return self._is_stopping

    @property
    def received(self) -> int:
        """Bytes received in the current recording cycle, shared with the split service."""
        if self.split_interest is not None and hasattr(self.split_interest, "received"):
            return self.split_interest.received
        return self._own_received

    @received.setter
    def received(self, value: int) -> None:
        if self.split_interest is not None and hasattr(self.split_interest, "received"):
            self.split_interest.received = value
        else:
            self._own_received = value

    def should_pause_flow(self, flow: str) -> bool:
        """Ask the split service's flow controller whether ``flow`` must pause."""
        controller = getattr(self.split_interest, "flow_controller", None)
        if controller is None:
            return False
        return bool(controller.should_pause_flow(flow))

    def run(self, versioned_name: Name, on_data: ChunkCallback,
            on_failure: Optional[FailureCallback] = None) -> None:
        """Start fetching every chunk of ``versioned_name``."""
        if not self.options.disable_version_discovery and (
                len(versioned_name) == 0 or not versioned_name[-1].is_version()):
            raise ValueError(f"{versioned_name.to_uri()} does not end with a version")
        if on_data is None:
            raise ValueError("a data callback is required")

        self.prefix = versioned_name
        self._data_callback = on_data
        self._failure_callback = on_failure
        self.start_time = self.face.now
        self.time_stamp = self.face.now
        self._do_run()

    def cancel(self) -> None:
        """Stop all fetch operations."""
        if self._is_stopping:
            return
        self._is_stopping = True
        self._do_cancel()

    def all_chunks_received(self) -> bool:
        logger.debug("received %d of %d chunks",
                     self.n_received, self.options.total_chunks_number)
        return self.n_received == self.options.total_chunks_number

    def _next_chunk_number(self) -> int:
        number = self._next_chunk
        self._next_chunk += 1
        return number

    def received_chunk_increment(self) -> None:
        self.n_received += 1

    def on_data(self, data: ChunkData) -> None:
        """Record a completed chunk and pass it on to the user and the split service."""
        self.n_received += 1
        self._data_callback(data)
        if self.all_chunks_received():
            if self.split_interest is not None:
                self.split_interest.received_split_increment()
            self.print_summary()
        if self.split_interest is not None:
            self.split_interest.on_data(data)

    def print_summary(self) -> str:
        text = "All chunks received\n"
        sys.stderr.write(text)
        logger.info("All chunks received")
        return text

    @abc.abstractmethod
    def _do_run(self) -> None:
        """Fetch all chunks; must call ``on_data`` once per chunk received."""

    @abc.abstractmethod
    def _do_cancel(self) -> None:
        """Stop subclass-specific fetching."""