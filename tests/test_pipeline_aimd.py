import pytest

from imagg.face import Data, Face, Name, NameComponent
from imagg.options import Options
from imagg.pipeline_aimd import PipelineInterestsAimd
from imagg.segments import RttEstimator


def make_pipeline(**option_values):
    options = Options(**option_values)
    return PipelineInterestsAimd(Face(), RttEstimator(), options), options


def test_slow_start_adds_ai_step():
    pipeline, options = make_pipeline(ai_step=1.5)
    before = pipeline.chunker.cwnd
    pipeline.increase_window()
    assert pipeline.chunker.cwnd == before + options.ai_step


def test_congestion_avoidance_divides_step_by_window():
    pipeline, _ = make_pipeline()
    pipeline.chunker.ssthresh = 4.0
    pipeline.chunker.cwnd = 4.5
    pipeline.increase_window()
    assert pipeline.chunker.cwnd == pytest.approx(4.75)


def test_decrease_resets_window_to_ssthresh():
    pipeline, options = make_pipeline()
    pipeline.chunker.cwnd = 10.0
    pipeline.decrease_window()
    assert pipeline.chunker.ssthresh == pytest.approx(10.0 * options.md_coef)
    assert pipeline.chunker.cwnd == pipeline.chunker.ssthresh


def test_decrease_never_goes_below_min_ssthresh():
    pipeline, _ = make_pipeline()
    pipeline.chunker.cwnd = 2.0
    pipeline.decrease_window()
    assert pipeline.chunker.ssthresh == PipelineInterestsAimd.MIN_SSTHRESH
    assert pipeline.chunker.cwnd == PipelineInterestsAimd.MIN_SSTHRESH


def test_decrease_can_reset_to_initial_window():
    pipeline, options = make_pipeline(reset_cwnd_to_init=True, init_cwnd=3.0)
    pipeline.chunker.cwnd = 20.0
    pipeline.decrease_window()
    assert pipeline.chunker.cwnd == options.init_cwnd
    assert pipeline.chunker.ssthresh == pytest.approx(20.0 * options.md_coef)


def test_window_changes_are_signalled():
    pipeline, _ = make_pipeline()
    changes = []
    pipeline.after_cwnd_change.connect(lambda age, cwnd: changes.append((age, cwnd)))
    pipeline.increase_window()
    pipeline.decrease_window()
    assert len(changes) == 2
    assert changes[-1][1] == pipeline.chunker.cwnd
    assert all(age >= 0 for age, _ in changes)


def test_fetches_all_segments_end_to_end():
    last = 2

    def responder(interest):
        seg = interest.name[-1].to_segment()
        if seg > last:
            return None
        return Data(interest.name, content=b"abc", final_block=NameComponent.from_segment(last))

    face = Face(responder)
    pipeline = PipelineInterestsAimd(face, RttEstimator(), Options(is_quiet=True))
    received = []
    pipeline.run(Name.from_uri("/flow/0"), received.append)
    face.process_events()

    assert pipeline.all_segments_received()
    assert sorted(d.name[-1].to_segment() for d in received) == list(range(last + 1))
    assert pipeline.chunker.received == (last + 1) * len(b"abc")
    assert pipeline.chunker.cwnd > Options().init_cwnd