"""Writes congestion window and RTT samples of an adaptive pipeline as tab-separated text."""

from __future__ import annotations

from typing import TextIO

from imagg.segments import RttSample


class StatisticsCollector:
    """Subscribes to a pipeline's signals and logs every cwnd change and RTT sample."""

    def __init__(self, pipeline, os_cwnd: TextIO, os_rtt: TextIO) -> None:
        self._os_cwnd = os_cwnd
        self._os_rtt = os_rtt
        os_cwnd.write("time\tcwndsize\n")
        os_rtt.write("segment\trtt\trttvar\tsrtt\trto\n")
        pipeline.after_cwnd_change.connect(self._on_cwnd_change)
        pipeline.after_rtt_measurement.connect(self._on_rtt_sample)

    def _on_cwnd_change(self, time_elapsed: float, cwnd: float) -> None:
        self._os_cwnd.write(f"{time_elapsed:g}\t{cwnd:g}\n")

    def _on_rtt_sample(self, sample: RttSample) -> None:
        fields = (sample.rtt, sample.rtt_var, sample.s_rtt, sample.rto)
        millis = "\t".join(f"{value * 1000:g}" for value in fields)
        self._os_rtt.write(f"{sample.seg_num}\t{millis}\n")