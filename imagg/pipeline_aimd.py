"""Adaptive pipeline with additive-increase, multiplicative-decrease window control."""

from __future__ import annotations

import logging
import math

from imagg.face import Face
from imagg.options import Options
from imagg.pipeline_adaptive import PipelineInterestsAdaptive
from imagg.segments import RttEstimator

logger = logging.getLogger(__name__)


class PipelineInterestsAimd(PipelineInterestsAdaptive):
    """Grows the window additively and halves it (by ``md_coef``) on loss."""

    def __init__(self, face: Face, rtt_estimator: RttEstimator, options: Options,
                 chunker=None) -> None:
        super().__init__(face, rtt_estimator, options, chunker)
        if options.is_verbose:
            self.print_options()

    def _emit_cwnd_change(self) -> None:
        self.after_cwnd_change.emit(self.face.now - self.start_time, self.chunker.cwnd)

    def increase_window(self) -> None:
        window = self.chunker
        step = self.options.ai_step
        if window.cwnd < window.ssthresh:
            window.cwnd += step  # slow start
        else:
            window.cwnd += step / math.floor(window.cwnd)  # congestion avoidance
        self._emit_cwnd_change()

    def decrease_window(self) -> None:
        # RFC 5681, section 3.1
        window = self.chunker
        window.ssthresh = max(self.MIN_SSTHRESH, window.cwnd * self.options.md_coef)
        window.cwnd = self.options.init_cwnd if self.options.reset_cwnd_to_init else window.ssthresh
        logger.debug("The cwnd is %g after decreasing", window.cwnd)
        self._emit_cwnd_change()