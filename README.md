# imagg

These are consumer-side building blocks for fetching segmented, named data
over an Interest/Data exchange. The package provides a fetcher that retries
on timeout and Nack, and an RTT and retransmission-timeout estimator. It has
adaptive Interest pipelines with AIMD or CUBIC congestion control, a
collector for window and RTT statistics, and a base class for retrieval one
chunk at a time.

Everything runs in-process. `imagg.face.Face` is an event loop driven by a
virtual clock. You give it a *responder*, a function that receives each
expressed `Interest`. The responder returns a `Data` packet, a `Nack`, or
`None` to let the Interest time out after its lifetime. This makes every
component deterministic and easy to drive from tests.

## Installation

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Modules

| Module | Contents |
| --- | --- |
| `imagg.options` | `Options`: lifetimes, retry limits, window parameters (AIMD and CUBIC), chunk count; durations in seconds |
| `imagg.face` | `Name`, `NameComponent`, `Interest`, `Data`, `Nack`, `NackReason`, `Signal`, `EventHandle`, `PendingInterest` and `Face` |
| `imagg.data_fetcher` | `DataFetcher`: fetches one packet, re-expresses with a fresh nonce on timeout or Nack, backs off on congestion Nacks |
| `imagg.segments` | `SegmentState`, `SegmentInfo`, `RttSample`, `RttEstimatorOptions` and `RttEstimator` (smoothed RTT, RTO, min/avg/max) |
| `imagg.pipeline_interests` | `PipelineInterests` base class, `format_throughput` and `segment_from_packet` |
| `imagg.pipeline_adaptive` | `PipelineInterestsAdaptive`: windowed pipeline with RTO checking, retransmission queue and conservative window adaptation |
| `imagg.pipeline_aimd` | `PipelineInterestsAimd`: additive increase, multiplicative decrease |
| `imagg.pipeline_cubic` | `PipelineInterestsCubic`: CUBIC window growth, with optional fast convergence |
| `imagg.statistics_collector` | `StatisticsCollector`: writes cwnd changes and RTT samples as tab-separated text |
| `imagg.chunks_interests` | `ChunksInterests`: abstract base for fetching every chunk of a flow |

## Example: fetching all segments with an AIMD pipeline

```python
from imagg.face import Data, Face, Name, NameComponent
from imagg.options import Options
from imagg.pipeline_aimd import PipelineInterestsAimd
from imagg.segments import RttEstimator

LAST_SEGMENT = 3

def responder(interest):
    return Data(interest.name, content=b"x" * 100,
                final_block=NameComponent.from_segment(LAST_SEGMENT))

face = Face(responder)
pipeline = PipelineInterestsAimd(face, RttEstimator(), Options(is_quiet=True))

received = []
pipeline.run(Name.from_uri("/flow/0"), received.append)
face.process_events()

print(sorted(d.name[-1].to_segment() for d in received))  # [0, 1, 2, 3]
```

If no chunker is passed, an adaptive pipeline keeps its own congestion
window. When a chunker is passed, several pipelines share its `cwnd`,
`ssthresh`, `in_flight` and `received` counters and its
`should_pause_flow(flow)` check.

To record window and RTT statistics, attach a collector before calling `run`:

```python
import io
from imagg.statistics_collector import StatisticsCollector

cwnd_log, rtt_log = io.StringIO(), io.StringIO()
StatisticsCollector(pipeline, cwnd_log, rtt_log)
```

Throughput formatting:

```python
from imagg.pipeline_interests import format_throughput

print(format_throughput(2_500_000.0))   # "2.500000 Mbit/s"
```

## What the package does not do

- It has no command-line tool. Everything is used as a library.
- It does not discover the latest data version. Pipelines are started
  directly on a name, and `Options.disable_version_discovery` is on by
  default.
- It does not read topology files or plan Interest names for an
  aggregation tree.
- `ChunksInterests` is only an abstract base. No concrete chunk fetcher is
  included that starts one pipeline per chunk, and no consumer object is
  included that combines discovery with retrieval.
- It has no network transport. `Face` only talks to the in-process responder
  you give it.