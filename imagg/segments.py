"""Segment bookkeeping and the round-trip-time estimator used by adaptive pipelines."""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Optional

from imagg.face import PendingInterest


class SegmentState(enum.Enum):
    FIRST_TIME_SENT = "FirstTimeSent"
    IN_RETX_QUEUE = "InRetxQueue"
    RETRANSMITTED = "Retransmitted"

    def __str__(self) -> str:
        return self.value


@dataclass
class SegmentInfo:
    """Transmission state of one sent but unacknowledged segment."""

    interest_handle: Optional[PendingInterest] = None
    time_sent: float = 0.0
    rto: float = 0.0
    state: SegmentState = SegmentState.FIRST_TIME_SENT


@dataclass(frozen=True)
class RttSample:
    """One RTT measurement with the estimator state after it; times in seconds."""

    seg_num: int
    rtt: float
    s_rtt: float
    rtt_var: float
    rto: float


@dataclass
class RttEstimatorOptions:
    alpha: float = 0.125
    beta: float = 0.25
    initial_rto: float = 1.0
    min_rto: float = 0.2
    max_rto: float = 60.0
    k: int = 4
    rto_backoff_multiplier: float = 2.0


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


class RttEstimator:
    """Smoothed RTT and retransmission timeout estimation, with min/avg/max statistics."""

    def __init__(self, options: Optional[RttEstimatorOptions] = None) -> None:
        self.options = replace(options) if options is not None else RttEstimatorOptions()
        self._srtt: Optional[float] = None
        self._rtt_var = 0.0
        self._rto = self.options.initial_rto
        self._min_rtt: Optional[float] = None
        self._max_rtt: Optional[float] = None
        self._avg_rtt = 0.0
        self._samples = 0

    @property
    def has_samples(self) -> bool:
        return self._srtt is not None

    @property
    def smoothed_rtt(self) -> Optional[float]:
        return self._srtt

    @property
    def rtt_variation(self) -> float:
        return self._rtt_var

    @property
    def estimated_rto(self) -> float:
        return self._rto

    @property
    def min_rtt(self) -> Optional[float]:
        return self._min_rtt

    @property
    def max_rtt(self) -> Optional[float]:
        return self._max_rtt

    @property
    def avg_rtt(self) -> float:
        return self._avg_rtt

    @property
    def sample_count(self) -> int:
        return self._samples

    def add_measurement(self, rtt: float, n_expected_samples: int = 1) -> None:
        if n_expected_samples <= 0:
            raise ValueError("n_expected_samples must be positive")
        opts = self.options
        if self._srtt is None:
            self._srtt = rtt
            self._rtt_var = rtt / 2
        else:
            alpha = opts.alpha / n_expected_samples
            beta = opts.beta / n_expected_samples
            self._rtt_var = (1 - beta) * self._rtt_var + beta * abs(self._srtt - rtt)
            self._srtt = (1 - alpha) * self._srtt + alpha * rtt
        self._rto = _clamp(self._srtt + opts.k * self._rtt_var, opts.min_rto, opts.max_rto)

        self._avg_rtt = (self._samples * self._avg_rtt + rtt) / (self._samples + 1)
        self._max_rtt = rtt if self._max_rtt is None else max(self._max_rtt, rtt)
        self._min_rtt = rtt if self._min_rtt is None else min(self._min_rtt, rtt)
        self._samples += 1

    def backoff_rto(self) -> None:
        opts = self.options
        self._rto = _clamp(self._rto * opts.rto_backoff_multiplier, opts.min_rto, opts.max_rto)