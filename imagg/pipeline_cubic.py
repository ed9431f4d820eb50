"""Adaptive pipeline with CUBIC window control."""

from __future__ import annotations

import math
import sys

from imagg.face import Face
from imagg.options import Options
from imagg.pipeline_adaptive import PipelineInterestsAdaptive
from imagg.segments import RttEstimator

CUBIC_C = 0.4


def _cube_root(value: float) -> float:
    return math.copysign(abs(value) ** (1.0 / 3.0), value)


class PipelineInterestsCubic(PipelineInterestsAdaptive):
    """Window increase and decrease following the CUBIC congestion control scheme.

    The window state (``cwnd``, ``ssthresh``, ``wmax``, ``last_wmax`` and
    ``last_decrease``) lives on the chunker. Until an RTT has been measured the
    Reno-friendly window estimate only counts its constant term.
    """

    def __init__(self, face: Face, rtt_estimator: RttEstimator, options: Options,
                 chunker=None) -> None:
        super().__init__(face, rtt_estimator, options, chunker)
        if options.is_verbose:
            self.print_options()
            sys.stderr.write(
                f"\tCubic beta = {options.cubic_beta:g}\n"
                f"\tFast convergence = {'yes' if options.enable_fast_conv else 'no'}\n")

    def _emit_cwnd_change(self) -> None:
        self.after_cwnd_change.emit(self.face.now - self.start_time, self.chunker.cwnd)

    def increase_window(self) -> None:
        window = self.chunker
        beta = self.options.cubic_beta
        if window.cwnd < window.ssthresh:
            window.cwnd += 1.0  # slow start
        else:
            if window.wmax < self.options.init_cwnd:
                window.wmax = window.cwnd

            elapsed = self.face.now - window.last_decrease
            k = _cube_root(window.wmax * (1 - beta) / CUBIC_C)
            w_cubic = CUBIC_C * (elapsed - k) ** 3 + window.wmax

            w_est = window.wmax * beta
            srtt = self.rtt_estimator.smoothed_rtt
            if srtt:
                w_est += (3 * (1 - beta) / (1 + beta)) * (elapsed / srtt)

            increment = max(0.0, max(w_cubic, w_est) - window.cwnd)
            window.cwnd += increment / window.cwnd

        self._emit_cwnd_change()

    def decrease_window(self) -> None:
        window = self.chunker
        beta = self.options.cubic_beta
        if self.options.enable_fast_conv and window.cwnd < window.last_wmax:
            window.last_wmax = window.cwnd
            window.wmax = window.cwnd * (1.0 + beta) / 2.0
        else:
            window.last_wmax = window.cwnd
            window.wmax = window.cwnd

        window.ssthresh = max(self.options.init_cwnd, window.cwnd * beta)
        window.cwnd = window.ssthresh
        window.last_decrease = self.face.now
        self._emit_cwnd_change()