"""Fetch one Data packet, retrying after timeouts and Nacks."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Optional

from imagg.face import Data, EventHandle, Face, Interest, Nack, NackReason, PendingInterest

logger = logging.getLogger(__name__)

DataCallback = Callable[[Interest, Data], None]
FailureCallback = Callable[[Interest, str], None]


class DataFetcher:
    """Expresses an interest and re-expresses it with a fresh nonce on timeout or Nack.

    Nacks and timeouts have separate retry counters. Once one of them passes
    its maximum the matching failure callback is called.
    """

    MAX_RETRIES_INFINITE = -1
    MAX_CONGESTION_BACKOFF_TIME = 10.0

    def __init__(
        self,
        face: Face,
        max_nack_retries: int,
        max_timeout_retries: int,
        on_data: DataCallback,
        on_nack: Optional[FailureCallback] = None,
        on_timeout: Optional[FailureCallback] = None,
        is_verbose: bool = False,
    ) -> None:
        if on_data is None:
            raise ValueError("a data callback is required")
        self._face = face
        self._on_data = on_data
        self._on_nack = on_nack
        self._on_timeout = on_timeout
        self._max_nack_retries = max_nack_retries
        self._max_timeout_retries = max_timeout_retries
        self._is_verbose = is_verbose
        self._n_nacks = 0
        self._n_timeouts = 0
        self._n_congestion_retries = 0
        self._is_stopped = False
        self._has_error = False
        self._pending: Optional[PendingInterest] = None
        self._events: list[EventHandle] = []

    @classmethod
    def fetch(
        cls,
        face: Face,
        interest: Interest,
        max_nack_retries: int,
        max_timeout_retries: int,
        on_data: DataCallback,
        on_nack: Optional[FailureCallback] = None,
        on_timeout: Optional[FailureCallback] = None,
        is_verbose: bool = False,
    ) -> DataFetcher:
        """Create a fetcher and express the interest at once."""
        fetcher = cls(face, max_nack_retries, max_timeout_retries,
                      on_data, on_nack, on_timeout, is_verbose)
        fetcher._express_interest(interest)
        return fetcher

    def cancel(self) -> None:
        """Stop fetching without calling any callback."""
        if self.is_running():
            self._is_stopped = True
            if self._pending is not None:
                self._pending.cancel()
            for event in self._events:
                event.cancel()
            self._events.clear()

    def is_running(self) -> bool:
        return not self._is_stopped and not self._has_error

    def has_error(self) -> bool:
        return self._has_error

    def _express_interest(self, interest: Interest) -> None:
        self._n_congestion_retries = 0
        self._pending = self._face.express_interest(
            interest, self._handle_data, self._handle_nack, self._handle_timeout)

    def _retry_copy(self, interest: Interest) -> Interest:
        new_interest = replace(interest)
        new_interest.refresh_nonce()
        return new_interest

    def _handle_data(self, interest: Interest, data: Data) -> None:
        if not self.is_running():
            return
        self._is_stopped = True
        self._on_data(interest, data)

    def _handle_nack(self, interest: Interest, nack: Nack) -> None:
        if not self.is_running():
            return
        infinite = self._max_nack_retries == self.MAX_RETRIES_INFINITE
        if not infinite:
            self._n_nacks += 1
        if self._is_verbose:
            logger.info("Received Nack with reason %s for Interest %s", nack.reason, interest.name.to_uri())

        if infinite or self._n_nacks <= self._max_nack_retries:
            new_interest = self._retry_copy(interest)
            if nack.reason is NackReason.DUPLICATE:
                self._express_interest(new_interest)
            elif nack.reason is NackReason.CONGESTION:
                backoff = 2 ** self._n_congestion_retries / 1000.0
                if backoff > self.MAX_CONGESTION_BACKOFF_TIME:
                    backoff = self.MAX_CONGESTION_BACKOFF_TIME
                else:
                    self._n_congestion_retries += 1
                self._events = [e for e in self._events if e]
                self._events.append(
                    self._face.schedule(backoff, lambda: self._express_interest(new_interest)))
            else:
                self._fail(self._on_nack, interest,
                           f"Could not retrieve data for {interest.name.to_uri()}, reason: {nack.reason}")
        else:
            self._fail(self._on_nack, interest,
                       f"Reached the maximum number of nack retries ({self._max_nack_retries}) "
                       f"while retrieving data for {interest.name.to_uri()}")

    def _handle_timeout(self, interest: Interest) -> None:
        if not self.is_running():
            return
        infinite = self._max_timeout_retries == self.MAX_RETRIES_INFINITE
        if not infinite:
            self._n_timeouts += 1
        if self._is_verbose:
            logger.info("Timeout for Interest %s", interest.name.to_uri())

        if infinite or self._n_timeouts <= self._max_timeout_retries:
            self._express_interest(self._retry_copy(interest))
        else:
            self._fail(self._on_timeout, interest,
                       f"Reached the maximum number of timeout retries ({self._max_timeout_retries}) "
                       f"while retrieving data for {interest.name.to_uri()}")

    def _fail(self, callback: Optional[FailureCallback], interest: Interest, reason: str) -> None:
        self._has_error = True
        if callback is not None:
            callback(interest, reason)