import pytest

from imagg.face import Face
from imagg.options import Options
from imagg.pipeline_cubic import PipelineInterestsCubic
from imagg.segments import RttEstimator


def make_pipeline(**option_values):
    face = Face()
    options = Options(**option_values)
    return PipelineInterestsCubic(face, RttEstimator(), options), face, options


def advance(face, seconds):
    face.schedule(seconds, lambda: None)
    face.process_events()


def test_slow_start_adds_one_segment():
    pipeline, _, _ = make_pipeline()
    before = pipeline.chunker.cwnd
    pipeline.increase_window()
    assert pipeline.chunker.cwnd == before + 1.0


def test_decrease_saves_wmax_and_scales_window():
    pipeline, face, options = make_pipeline()
    advance(face, 3.0)
    pipeline.chunker.cwnd = 10.0
    pipeline.decrease_window()
    window = pipeline.chunker
    assert window.wmax == 10.0
    assert window.last_wmax == 10.0
    assert window.ssthresh == pytest.approx(10.0 * options.cubic_beta)
    assert window.cwnd == window.ssthresh
    assert window.last_decrease == face.now


def test_decrease_is_floored_at_initial_window():
    pipeline, _, options = make_pipeline(init_cwnd=4.0)
    pipeline.chunker.cwnd = 4.5
    pipeline.decrease_window()
    assert pipeline.chunker.cwnd == options.init_cwnd


def test_fast_convergence_lowers_wmax():
    pipeline, _, _ = make_pipeline(enable_fast_conv=True)
    window = pipeline.chunker
    window.last_wmax = 10.0
    window.cwnd = 6.0
    pipeline.decrease_window()
    assert window.last_wmax == 6.0
    assert window.wmax < 6.0


def test_no_growth_right_after_decrease():
    pipeline, _, _ = make_pipeline()
    window = pipeline.chunker
    window.cwnd = window.ssthresh = window.wmax = 10.0
    pipeline.increase_window()
    assert window.cwnd == 10.0


def test_window_grows_with_time_since_decrease():
    pipeline, face, _ = make_pipeline()
    pipeline.rtt_estimator.add_measurement(0.05)
    window = pipeline.chunker
    window.cwnd = window.ssthresh = window.wmax = 10.0
    advance(face, 50.0)
    pipeline.increase_window()
    assert window.cwnd > 10.0


def test_missing_wmax_is_set_to_current_window():
    pipeline, _, _ = make_pipeline()
    window = pipeline.chunker
    window.cwnd = window.ssthresh = 10.0
    window.wmax = 0.0
    pipeline.increase_window()
    assert window.wmax == 10.0


def test_window_changes_are_signalled():
    pipeline, _, _ = make_pipeline()
    changes = []
    pipeline.after_cwnd_change.connect(lambda age, cwnd: changes.append(cwnd))
    pipeline.chunker.cwnd = 8.0
    pipeline.decrease_window()
    pipeline.increase_window()
    assert len(changes) == 2
    assert changes[-1] == pipeline.chunker.cwnd