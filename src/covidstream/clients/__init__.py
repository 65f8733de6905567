"""Client layer for covid-stream.

- DocumentClient: async HTTP download of the source CSV
- KafkaSink: async Kafka producer behind the PublishSink contract
"""

from covidstream.clients.http import DocumentClient
from covidstream.clients.kafka import KafkaSink, PublishSink

__all__ = [
    "DocumentClient",
    "KafkaSink",
    "PublishSink",
]
