import pytest

from imagg.chunks_interests import ChunksInterests
from imagg.face import Data, Face, Name, NameComponent
from imagg.options import Options


class RecordingChunks(ChunksInterests):
    def __init__(self, face, options):
        super().__init__(face, options)
        self.runs = 0
        self.cancels = 0
        self.numbers = []

    def _do_run(self):
        self.runs += 1
        self.numbers = [self._next_chunk_number() for _ in range(3)]

    def _do_cancel(self):
        self.cancels += 1


class FakeSplit:
    def __init__(self):
        self.received = 0
        self.increments = 0
        self.delivered = []

    def received_split_increment(self):
        self.increments += 1

    def on_data(self, data):
        self.delivered.append(data)


class FakeController:
    def __init__(self, paused):
        self.paused = paused

    def should_pause_flow(self, flow):
        return flow in self.paused


def make_chunk(n):
    name = Name.from_uri("/pro0/chunk").append(str(n)).append_segment(0)
    return {0: Data(name, b"abc")}


def make_chunks(total=2, **kwargs):
    return RecordingChunks(Face(), Options(total_chunks_number=total, **kwargs))


def test_run_stores_prefix_and_starts():
    chunks = make_chunks()
    prefix = Name.from_uri("/pro0/task")
    chunks.run(prefix, lambda data: None)
    assert chunks.prefix == prefix
    assert chunks.runs == 1
    assert chunks.start_time == chunks.face.now


def test_chunk_numbers_are_sequential():
    chunks = make_chunks()
    chunks.run(Name.from_uri("/pro0"), lambda data: None)
    assert chunks.numbers == [0, 1, 2]


def test_run_requires_version_when_discovery_enabled():
    chunks = make_chunks(disable_version_discovery=False)
    with pytest.raises(ValueError):
        chunks.run(Name.from_uri("/pro0/task"), lambda data: None)


def test_run_accepts_versioned_name_when_discovery_enabled():
    chunks = make_chunks(disable_version_discovery=False)
    prefix = Name.from_uri("/pro0").append(NameComponent.from_version(3))
    chunks.run(prefix, lambda data: None)
    assert chunks.runs == 1


def test_run_requires_data_callback():
    chunks = make_chunks()
    with pytest.raises(ValueError):
        chunks.run(Name.from_uri("/pro0"), None)
    assert chunks.runs == 0


def test_cancel_runs_once():
    chunks = make_chunks()
    chunks.cancel()
    chunks.cancel()
    assert chunks.cancels == 1
    assert chunks.is_stopping


def test_on_data_counts_and_forwards():
    chunks = make_chunks(total=2)
    split = FakeSplit()
    chunks.split_interest = split
    seen = []
    chunks.run(Name.from_uri("/pro0"), seen.append)

    first, second = make_chunk(0), make_chunk(1)
    chunks.on_data(first)
    assert not chunks.all_chunks_received()
    assert split.increments == 0

    chunks.on_data(second)
    assert chunks.all_chunks_received()
    assert chunks.n_received == 2
    assert split.increments == 1
    assert seen == [first, second]
    assert split.delivered == [first, second]


def test_on_data_without_split_service():
    chunks = make_chunks(total=1)
    seen = []
    chunks.run(Name.from_uri("/pro0"), seen.append)
    chunk = make_chunk(0)
    chunks.on_data(chunk)
    assert seen == [chunk]
    assert chunks.all_chunks_received()


def test_received_counter_is_shared_with_split():
    chunks = make_chunks()
    split = FakeSplit()
    chunks.split_interest = split
    chunks.received += 40
    assert split.received == 40
    split.received = 7
    assert chunks.received == 7


def test_received_counter_without_split():
    chunks = make_chunks()
    chunks.received += 5
    chunks.received += 6
    assert chunks.received == 11


def test_received_chunk_increment():
    chunks = make_chunks()
    chunks.received_chunk_increment()
    assert chunks.n_received == 1


def test_should_pause_flow_uses_flow_controller():
    chunks = make_chunks()
    assert chunks.should_pause_flow("pro0") is False
    split = FakeSplit()
    split.flow_controller = FakeController({"pro0"})
    chunks.split_interest = split
    assert chunks.should_pause_flow("pro0") is True
    assert chunks.should_pause_flow("pro1") is False


def test_print_summary_text():
    chunks = make_chunks()
    assert chunks.print_summary() == "All chunks received\n"