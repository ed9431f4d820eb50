"""Interest pipeline with an adaptive congestion window and conservative loss adaptation."""

from __future__ import annotations

import abc
import logging
import sys
from collections import deque
from typing import Optional

from imagg.data_fetcher import DataFetcher
from imagg.face import Data, Face, Interest, Nack, NackReason
from imagg.options import Options
from imagg.pipeline_interests import PipelineInterests, segment_from_packet
from imagg.segments import RttEstimator, RttSample, SegmentInfo, SegmentState
from imagg.face import Signal

logger = logging.getLogger(__name__)


class _OwnWindow:
    """Window state used when the pipeline is not driven by a chunk fetcher."""

    def __init__(self, options: Options, now: float) -> None:
        self.cwnd = options.init_cwnd
        self.ssthresh = options.init_ssthresh
        self.in_flight = 0
        self.received = 0
        self.wmax = 0.0
        self.last_wmax = 0.0
        self.last_decrease = now
        self.last_max_win = 0.0

    def should_pause_flow(self, flow: str) -> bool:
        return False


class PipelineInterestsAdaptive(PipelineInterests):
    """Fetches every segment under a prefix while adapting a congestion window.

    The window, the in-flight count and the received-bytes counter live on the
    chunker, so several pipelines of one chunk fetcher share them. The chunker
    must provide ``cwnd``, ``ssthresh``, ``in_flight``, ``received`` and
    ``should_pause_flow(flow)``; without one the pipeline keeps its own.
    """

    MIN_SSTHRESH = 2.0

    def __init__(self, face: Face, rtt_estimator: RttEstimator, options: Options,
                 chunker=None) -> None:
        super().__init__(face, options,
                         chunker if chunker is not None else _OwnWindow(options, face.now))
        self.rtt_estimator = rtt_estimator
        self.after_cwnd_change = Signal()
        self.after_rtt_measurement = Signal()

        self._check_rto_event = None
        self._wait_event = None
        self._schedule_event = None

        self._high_data = 0
        self._high_interest = 0
        self._rec_point = 0

        self._n_in_flight = 0
        self._n_loss_decr = 0
        self._n_mark_decr = 0
        self._n_timeouts = 0
        self._n_skipped_retx = 0
        self._n_retransmitted = 0
        self._n_cong_marks = 0
        self._n_sent = 0

        self._segment_info: dict[int, SegmentInfo] = {}
        self._retx_count: dict[int, int] = {}
        self._retx_queue: deque[int] = deque()

        self._has_failure = False
        self._failed_seg_no = 0
        self._failure_reason = ""

    @abc.abstractmethod
    def increase_window(self) -> None:
        """Grow the congestion window after a successful delivery."""

    @abc.abstractmethod
    def decrease_window(self) -> None:
        """Shrink the congestion window after a loss or congestion event."""

    # -- helpers -------------------------------------------------------------

    @property
    def _poll_delay(self) -> float:
        return self.options.rto_check_interval

    def _should_pause(self) -> bool:
        return self.chunker.should_pause_flow(self.prefix[0].to_uri())

    def _schedule_unless_paused(self) -> None:
        if not self._should_pause():
            self._schedule_packets()
        else:
            logger.debug("should pause flow")

    def _drop_segment(self, seg_no: int) -> None:
        info = self._segment_info.pop(seg_no, None)
        if info is not None and info.interest_handle is not None:
            info.interest_handle.cancel()

    def _decrement_in_flight(self) -> None:
        self.chunker.in_flight -= 1
        self._n_in_flight -= 1

    @staticmethod
    def _cancel_event(event) -> None:
        if event:
            event.cancel()

    # -- lifecycle -----------------------------------------------------------

    def _do_run(self) -> None:
        logger.info("PipelineInterestsAdaptive.run()")
        if self.all_segments_received():
            self.cancel()
            if not self.options.is_quiet:
                self.print_summary()
            return
        self._check_rto_event = self.face.schedule(self.options.rto_check_interval, self._check_rto)
        self._schedule_packets()

    def _do_cancel(self) -> None:
        for event in (self._check_rto_event, self._wait_event, self._schedule_event):
            self._cancel_event(event)
        for seg_no in list(self._segment_info):
            self._drop_segment(seg_no)

    def _check_rto(self) -> None:
        if self.is_stopping:
            return

        has_timeout = False
        high_timeout_seg = 0
        for seg_no, info in list(self._segment_info.items()):
            if self._segment_info.get(seg_no) is not info:
                continue
            if info.state is SegmentState.IN_RETX_QUEUE:
                continue
            if self.face.now - info.time_sent > info.rto:
                self._n_timeouts += 1
                has_timeout = True
                high_timeout_seg = max(high_timeout_seg, seg_no)
                logger.debug("enqueue happened from checkRto")
                self._enqueue_for_retransmission(seg_no)

        if has_timeout:
            self._record_timeout(high_timeout_seg)
            self._schedule_unless_paused()

        if not self.is_stopping:
            self._check_rto_event = self.face.schedule(self.options.rto_check_interval,
                                                       self._check_rto)

    # -- sending -------------------------------------------------------------

    def _send_interest(self, seg_no: int, is_retransmission: bool) -> None:
        if self.is_stopping:
            return
        if self.has_final_block_id and seg_no > self.last_segment_no:
            return
        if not is_retransmission and self._has_failure:
            return

        logger.info("Send interest for segment #%d", seg_no)
        if self.options.is_verbose:
            logger.info("%s segment #%d",
                        "Retransmitting" if is_retransmission else "Requesting", seg_no)

        if is_retransmission:
            if seg_no not in self._retx_count:
                self._retx_count[seg_no] = 1
            else:
                self._retx_count[seg_no] += 1
                max_retries = self.options.max_retries_on_timeout_or_nack
                if (max_retries != DataFetcher.MAX_RETRIES_INFINITE
                        and self._retx_count[seg_no] > max_retries):
                    self._handle_fail(seg_no,
                                      f"Reached the maximum number of retries ({max_retries}) "
                                      f"while retrieving segment #{seg_no}")
                    return
                if self.options.is_verbose:
                    logger.info("# of retries for segment #%d is %d",
                                seg_no, self._retx_count[seg_no])

        interest = Interest(self.prefix.append_segment(seg_no),
                            must_be_fresh=self.options.must_be_fresh,
                            lifetime=self.options.interest_lifetime)

        info = self._segment_info.setdefault(seg_no, SegmentInfo())
        if info.interest_handle is not None:
            info.interest_handle.cancel()
        info.interest_handle = self.face.express_interest(
            interest, self._handle_data, self._handle_nack, self._handle_lifetime_expiration)
        logger.debug("Interest name: %s", interest.name.to_uri())
        info.time_sent = self.face.now
        info.rto = self.rtt_estimator.estimated_rto
        self.chunker.in_flight += 1
        self._n_in_flight += 1
        self._n_sent += 1

        if is_retransmission:
            info.state = SegmentState.RETRANSMITTED
            self._n_retransmitted += 1
        else:
            self._high_interest = seg_no
            info.state = SegmentState.FIRST_TIME_SENT

    def _schedule_packets(self) -> None:
        if self.is_stopping:
            return
        available = int(self.chunker.cwnd) - self.chunker.in_flight
        logger.debug("Available window size: %d", available)
        while available > 0:
            if self._retx_queue:
                retx_seg_no = self._retx_queue.popleft()
                if retx_seg_no not in self._segment_info:
                    self._n_skipped_retx += 1
                    continue
                self._send_interest(retx_seg_no, True)
            else:
                self._send_interest(self._next_segment_number(), False)
            available -= 1

        if self._n_in_flight == 0:
            self._cancel_event(self._schedule_event)
            self._schedule_event = self.face.schedule(self._poll_delay, self._schedule_packets)

        self._wait()

    def _wait(self) -> None:
        """Keep scheduling until every segment has been requested at least once."""
        self._cancel_event(self._wait_event)
        if self.is_stopping:
            return
        first_sends = self._n_sent - self._n_retransmitted
        if not self.has_final_block_id or first_sends <= self.last_segment_no:
            if not self._should_pause():
                self._wait_event = self.face.schedule(self._poll_delay, self._schedule_packets)
            else:
                logger.debug("should pause flow")
                self._wait_event = self.face.schedule(self._poll_delay, self._wait)
        else:
            self.can_schedule_next = True

    # -- replies -------------------------------------------------------------

    def _handle_data(self, interest: Interest, data: Data) -> None:
        logger.info("Received data for interest %s", interest.name.to_uri())
        if self.is_stopping:
            return

        self.chunker.received += len(data.content)

        if not self.has_final_block_id and data.final_block is not None:
            self.last_segment_no = data.final_block.to_segment()
            self.has_final_block_id = True
            self._cancel_in_flight_segments_greater_than(self.last_segment_no)
            if self._has_failure and self.last_segment_no >= self._failed_seg_no:
                self._on_failure(self._failure_reason)
                return
            self._has_failure = False

        recv_seg_no = segment_from_packet(data)
        info = self._segment_info.get(recv_seg_no)
        if info is None:
            return

        rtt = self.face.now - info.time_sent
        if self.options.is_verbose:
            logger.info("Received segment #%d: rtt=%gms, rto=%gms",
                        recv_seg_no, rtt * 1000, info.rto * 1000)

        self._high_data = max(self._high_data, recv_seg_no)

        # a segment in the retx queue was already taken off the in-flight count
        if info.state is not SegmentState.IN_RETX_QUEUE:
            self._decrement_in_flight()

        if data.congestion_mark > 0:
            self._n_cong_marks += 1
            if not self.options.ignore_cong_marks:
                if self.options.disable_cwa or self._high_data > self._rec_point:
                    self._rec_point = self._high_interest
                    self._n_mark_decr += 1
                    self.decrease_window()
                    if self.options.is_verbose:
                        logger.info("Received congestion mark, value = %d, new cwnd = %g",
                                    data.congestion_mark, self.chunker.cwnd)
            else:
                self.increase_window()
        else:
            self.increase_window()

        self._on_data(data)

        if (info.state in (SegmentState.FIRST_TIME_SENT, SegmentState.IN_RETX_QUEUE)
                and recv_seg_no not in self._retx_count):
            n_expected = max((self._n_in_flight + 1) >> 1, 1)
            self.rtt_estimator.add_measurement(rtt, n_expected)
            self.after_rtt_measurement.emit(RttSample(
                recv_seg_no, rtt,
                self.rtt_estimator.smoothed_rtt,
                self.rtt_estimator.rtt_variation,
                self.rtt_estimator.estimated_rto))

        self._segment_info.pop(recv_seg_no, None)

        if self.all_segments_received():
            self.cancel()
            if not self.options.is_quiet:
                self.print_summary()
        else:
            self._schedule_unless_paused()

    def _handle_nack(self, interest: Interest, nack: Nack) -> None:
        if self.is_stopping:
            return
        if self.options.is_verbose:
            logger.info("Received Nack with reason %s for Interest %s",
                        nack.reason, interest.name.to_uri())

        seg_no = segment_from_packet(interest)
        if nack.reason is NackReason.DUPLICATE:
            return
        if nack.reason is NackReason.CONGESTION:
            logger.debug("enqueue happened from handleNack")
            self._enqueue_for_retransmission(seg_no)
            self._record_timeout(seg_no)
            self._schedule_unless_paused()
            return
        self._handle_fail(seg_no, f"Could not retrieve data for {interest.name.to_uri()}, "
                                  f"reason: {nack.reason}")

    def _handle_lifetime_expiration(self, interest: Interest) -> None:
        if self.is_stopping:
            return
        seg_no = segment_from_packet(interest)
        if self._segment_info[seg_no].state is SegmentState.IN_RETX_QUEUE:
            logger.debug("handleLifetimeExpiration, the segment is already in retx queue")
            return

        self._n_timeouts += 1
        logger.debug("enqueue happened from handleLifetimeExpiration")
        self._enqueue_for_retransmission(seg_no)
        self._record_timeout(seg_no)
        self._schedule_unless_paused()

    def _record_timeout(self, seg_no: int) -> None:
        if self.options.disable_cwa or seg_no > self._rec_point:
            # outstanding interests must not cause another decrease later
            self._rec_point = self._high_interest
            self.decrease_window()
            logger.info("Timeout event, new cwnd = %g", self.chunker.cwnd)
            self.rtt_estimator.backoff_rto()
            self._n_loss_decr += 1
            if self.options.is_verbose:
                logger.info("Packet loss event, new cwnd = %g, ssthresh = %g",
                            self.chunker.cwnd, self.chunker.ssthresh)

    def _enqueue_for_retransmission(self, seg_no: int) -> None:
        self._decrement_in_flight()
        self._retx_queue.append(seg_no)
        self._segment_info[seg_no].state = SegmentState.IN_RETX_QUEUE
        if self._n_in_flight == 0:
            retx_seg_no = self._retx_queue.popleft()
            if retx_seg_no not in self._segment_info:
                return
            self._send_interest(retx_seg_no, True)

    def _handle_fail(self, seg_no: int, reason: str) -> None:
        logger.error("Failed to retrieve segment #%d: %s", seg_no, reason)
        if self.is_stopping:
            return

        if self.has_final_block_id and seg_no <= self.last_segment_no:
            self._on_failure(reason)
            return

        if not self.has_final_block_id:
            self._drop_segment(seg_no)
            self._decrement_in_flight()
            if not self._segment_info:
                self._on_failure("Fetching terminated but no final segment number has been found")
            else:
                self._cancel_in_flight_segments_greater_than(seg_no)
                self._has_failure = True
                self._failed_seg_no = seg_no
                self._failure_reason = reason

    def _cancel_in_flight_segments_greater_than(self, seg_no: int) -> None:
        logger.debug("cancelInFlightSegmentsGreaterThan %d", seg_no)
        for number in [n for n in self._segment_info if n > seg_no]:
            if self._segment_info[number].state is not SegmentState.IN_RETX_QUEUE:
                self._decrement_in_flight()
            self._drop_segment(number)

    # -- reporting -----------------------------------------------------------

    def print_options(self) -> str:
        text = super().print_options()
        opts = self.options
        extra = (
            f"\tInitial congestion window size = {opts.init_cwnd:g}\n"
            f"\tInitial slow start threshold = {opts.init_ssthresh:g}\n"
            f"\tAdditive increase step = {opts.ai_step:g}\n"
            f"\tMultiplicative decrease factor = {opts.md_coef:g}\n"
            f"\tRTO check interval = {round(opts.rto_check_interval * 1000)} milliseconds\n"
            f"\tReact to congestion marks = {'no' if opts.ignore_cong_marks else 'yes'}\n"
            f"\tConservative window adaptation = {'no' if opts.disable_cwa else 'yes'}\n"
            f"\tResetting window to {'initial value' if opts.reset_cwnd_to_init else 'ssthresh'}"
            " upon loss event\n"
        )
        sys.stderr.write(extra)
        logger.info("%s", extra.rstrip("\n"))
        return text + extra

    def print_summary(self) -> str:
        text = super().print_summary()
        percent = 0 if self._n_sent == 0 else self._n_retransmitted * 100.0 / self._n_sent
        extra = (
            f"Congestion marks: {self._n_cong_marks} (caused {self._n_mark_decr} window decreases)\n"
            f"Timeouts: {self._n_timeouts} (caused {self._n_loss_decr} window decreases)\n"
            f"Retransmitted segments: {self._n_retransmitted} ({percent:g}%)"
            f", skipped: {self._n_skipped_retx}\n"
            "RTT "
        )
        est = self.rtt_estimator
        if est.min_rtt is None or est.max_rtt is None:
            extra += "stats unavailable\n"
        else:
            extra += (f"min/avg/max = {est.min_rtt * 1000:.3f}/{est.avg_rtt * 1000:.3f}/"
                      f"{est.max_rtt * 1000:.3f} ms\n")
        sys.stderr.write(extra)
        logger.info("%s", extra.rstrip("\n"))
        return text + extra