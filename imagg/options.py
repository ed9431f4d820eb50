"""Settings shared by the version discovery, pipeline and chunk services."""

from __future__ import annotations

import sys
from dataclasses import dataclass

from imagg.face import DEFAULT_INTEREST_LIFETIME


@dataclass
class Options:
    """Tunable parameters of a fetching session; durations are in seconds."""

    pipeline_type: str = "aimd"

    # Common options
    interest_lifetime: float = DEFAULT_INTEREST_LIFETIME
    max_retries_on_timeout_or_nack: int = 15
    disable_version_discovery: bool = True
    must_be_fresh: bool = False
    is_quiet: bool = False
    is_verbose: bool = False

    # Fixed pipeline options
    max_pipeline_size: int = 1

    # Adaptive pipeline common options
    init_cwnd: float = 2.0
    init_ssthresh: float = sys.float_info.max
    rto_check_interval: float = 0.001
    ignore_cong_marks: bool = False
    disable_cwa: bool = False

    # AIMD pipeline options
    ai_step: float = 1.0
    md_coef: float = 0.5
    reset_cwnd_to_init: bool = False

    # Cubic pipeline options
    cubic_beta: float = 0.7
    enable_fast_conv: bool = False

    # Chunk options
    total_chunks_number: int = 5

    output_file: str = "../experiments/output.txt"
    recording_cycle: float = 1.0
    topo_file: str = "../../topologies/Customtest.conf"