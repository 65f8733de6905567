"""Ingestion pipeline — HTTP → Rows → Observations → Kafka.

Components:
- Fetcher: downloads the CSV and splits it into rows
- Transformer: reshapes wide rows into long-format Observations
- Publisher: concurrent, failure-isolated publishing to a sink
- Orchestrator: runs the three in sequence
"""

from covidstream.pipeline.fetcher import Fetcher
from covidstream.pipeline.orchestrator import Orchestrator
from covidstream.pipeline.publisher import Publisher, PublishFailure, PublishReport, serialize
from covidstream.pipeline.transformer import Observation, Transformer, reshape

__all__ = [
    "Fetcher",
    "Observation",
    "Orchestrator",
    "Publisher",
    "PublishFailure",
    "PublishReport",
    "Transformer",
    "reshape",
    "serialize",
]
