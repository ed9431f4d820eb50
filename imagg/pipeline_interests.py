"""Base class of the interest pipelines that fetch all segments under a prefix."""

from __future__ import annotations

import abc
import logging
import math
import re
import sys
from typing import Callable, Optional

from imagg.data_fetcher import DataFetcher
from imagg.face import Data, Face, Name
from imagg.options import Options

logger = logging.getLogger(__name__)

SegmentCallback = Callable[[Data], None]
FailureCallback = Callable[[str], None]

_UNITS = ("bit/s", "kbit/s", "Mbit/s", "Gbit/s", "Tbit/s")
_LEADING_INT = re.compile(r"\s*[+-]?\d+")


def format_throughput(throughput: float) -> str:
    """Render a throughput in bits per second with a decimal unit prefix."""
    power = 0
    while throughput >= 1000.0 and power < len(_UNITS) - 1:
        throughput /= 1000.0
        power += 1
    return f"{throughput:.6f} {_UNITS[power]}"


def segment_from_packet(packet) -> int:
    """Segment number carried by the last component of a packet's name."""
    return packet.name[-1].to_segment()


class PipelineInterests(abc.ABC):
    """Retrieves all segments under a prefix; delivery order is not guaranteed."""

    def __init__(self, face: Face, options: Options, chunker=None) -> None:
        self.face = face
        self.options = options
        self.chunker = chunker
        self.prefix = Name()
        self.has_final_block_id = False
        self.last_segment_no = 0
        self.n_received = 0
        self.received_size = 0
        self.can_schedule_next = False
        self.start_time = 0.0
        self._data_callback: Optional[SegmentCallback] = None
        self._failure_callback: Optional[FailureCallback] = None
        self._next_segment = 0
        self._is_stopping = False

    @property
    def is_stopping(self) -> bool:
        return self._is_stopping

    def run(self, versioned_name: Name, on_data: SegmentCallback,
            on_failure: Optional[FailureCallback] = None) -> None:
        """Start fetching every segment of ``versioned_name``."""
        if not self.options.disable_version_discovery and (
                len(versioned_name) == 0 or not versioned_name[-1].is_version()):
            raise ValueError(f"{versioned_name.to_uri()} does not end with a version")
        if on_data is None:
            raise ValueError("a data callback is required")

        logger.debug("PipelineInterests.run()")
        self.prefix = versioned_name
        self._data_callback = on_data
        self._failure_callback = on_failure
        self.start_time = self.face.now
        self._do_run()

    def cancel(self) -> None:
        """Stop all fetch operations."""
        if self._is_stopping:
            return
        self._is_stopping = True
        self._do_cancel()

    def all_segments_received(self) -> bool:
        return (self.n_received > 0 and self.has_final_block_id
                and self.n_received - 1 >= self.last_segment_no)

    def _next_segment_number(self) -> int:
        number = self._next_segment
        self._next_segment += 1
        return number

    def _on_data(self, data: Data) -> None:
        """Record a successfully retrieved segment and hand it to the user."""
        self.n_received += 1
        self.received_size += len(data.content)
        self._data_callback(data)

    def _on_failure(self, reason: str) -> None:
        """Stop the pipeline and report an unrecoverable failure from the event loop."""
        if self._is_stopping:
            return
        self.cancel()
        callback = self._failure_callback
        if callback is not None:
            self.face.post(lambda: callback(reason))

    def print_options(self) -> str:
        retries = self.options.max_retries_on_timeout_or_nack
        retries_text = "infinite" if retries == DataFetcher.MAX_RETRIES_INFINITE else str(retries)
        text = (
            "Pipeline parameters:\n"
            f"\tRequest fresh content = {'yes' if self.options.must_be_fresh else 'no'}\n"
            f"\tInterest lifetime = {round(self.options.interest_lifetime * 1000)} milliseconds\n"
            f"\tMax retries on timeout or Nack = {retries_text}\n"
        )
        sys.stderr.write(text)
        logger.info("%s", text.rstrip("\n"))
        return text

    def print_summary(self) -> str:
        """Report elapsed time, received segments, size and goodput of this session."""
        chunk_uri = self.prefix[-1].to_uri()
        match = _LEADING_INT.match(chunk_uri)
        if match is None:
            raise ValueError(f"{chunk_uri!r} is not a chunk number")
        chunk_no = int(match.group())

        elapsed = self.face.now - self.start_time
        bits = 8 * self.received_size
        if elapsed > 0:
            throughput = bits / elapsed
        else:
            throughput = math.inf if bits else math.nan

        text = (
            f"\n\nAll segments of chunk{chunk_no} of flow {self.prefix[0].to_uri()} have been received.\n"
            f"Time elapsed: {elapsed:g} seconds\n"
            f"Segments received: {self.n_received}\n"
            f"Transferred size: {self.received_size / 1e3:g} kB\n"
            f"Goodput: {format_throughput(throughput)}\n"
        )
        sys.stderr.write(text)
        logger.info("%s", text.strip("\n"))
        return text

    @abc.abstractmethod
    def _do_run(self) -> None:
        """Fetch all segments; must call ``_on_data`` once per segment received."""

    @abc.abstractmethod
    def _do_cancel(self) -> None:
        """Stop subclass-specific fetching."""