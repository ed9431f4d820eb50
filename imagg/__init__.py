"""Retrying fetchers, adaptive AIMD and CUBIC Interest pipelines, RTT estimation and chunk retrieval over an in-process face."""

__version__ = "0.1.0"