"""Publisher — Observations → broker, concurrently.

Each Observation is serialized and published by its own task. A semaphore caps
the number of publishes in flight, and a per-record timeout keeps one stalled
call from holding up the batch. Failures are isolated: a record that cannot be
serialized or delivered is logged and counted, and the remaining records are
still attempted.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Sequence

from covidstream.config import settings
from covidstream.clients.kafka import PublishSink
from covidstream.pipeline.transformer import Observation

logger = logging.getLogger(__name__)

# Bump when the payload's field names or types change
PAYLOAD_SCHEMA_VERSION = 1


def serialize(observation: Observation) -> bytes:
    """Encode an Observation as a UTF-8 JSON message payload.

    Payload (schema version 1):
        {"schema_version": 1, "sub_region": "Hubei", "region": "China",
         "latitude": 30.9, "longitude": 112.3, "observed_on": "2020-01-22",
         "value": 1}

    Raises:
        ValueError: If a coordinate is NaN or infinite (not representable in JSON)
    """
    payload = {"schema_version": PAYLOAD_SCHEMA_VERSION, **observation.to_dict()}
    return json.dumps(payload, allow_nan=False).encode("utf-8")


@dataclass
class PublishFailure:
    """A record that was not delivered, with the reason."""

    observation: Observation
    error: str


@dataclass
class PublishReport:
    """Outcome of one publish_all call."""

    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: list[PublishFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True if every attempted record was delivered."""
        return self.failed == 0

    @classmethod
    def undelivered(cls, records: Sequence[Observation], error: str) -> "PublishReport":
        """Report for a batch that never reached the sink: every record failed with `error`."""
        failures = [PublishFailure(observation=r, error=error) for r in records]
        return cls(
            attempted=len(records),
            succeeded=0,
            failed=len(failures),
            failures=failures,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failures": [
                {"observation": f.observation.to_dict(), "error": f.error}
                for f in self.failures
            ],
        }


class Publisher:
    """Publishes Observations to a sink with bounded concurrency.

    Usage:
        async with KafkaSink.configure(["kafka:9092"], "covid19") as sink:
            publisher = Publisher(sink, concurrency=32, timeout=5.0)
            report = await publisher.publish_all(observations)
            print(f"{report.succeeded}/{report.attempted} delivered")
    """

    def __init__(
        self,
        sink: PublishSink,
        concurrency: int | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize publisher.

        Args:
            sink: Destination for serialized records
            concurrency: Max publishes in flight (default: from settings)
            timeout: Per-record publish timeout in seconds (default: from settings)

        Raises:
            ValueError: concurrency below 1 or non-positive timeout
        """
        if concurrency is None:
            concurrency = settings.publish_concurrency
        if timeout is None:
            timeout = settings.publish_timeout
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")

        self.sink = sink
        self.concurrency = concurrency
        self.timeout = timeout

    async def publish_one(self, observation: Observation) -> None:
        """Serialize and publish a single record.

        Raises:
            ValueError: Record cannot be serialized
            asyncio.TimeoutError: Publish exceeded the timeout
            PublishError: Sink failed to deliver
        """
        payload = serialize(observation)
        await asyncio.wait_for(
            self.sink.publish(
                key=None,
                payload=payload,
                timestamp=datetime.now(timezone.utc),
            ),
            timeout=self.timeout,
        )

    async def publish_all(self, records: Sequence[Observation]) -> PublishReport:
        """Publish every record concurrently and wait for all of them.

        Never raises for a per-record failure; see the returned report.

        Args:
            records: Observations to publish

        Returns:
            PublishReport with attempted/succeeded/failed counts
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _publish(observation: Observation) -> PublishFailure | None:
            async with semaphore:
                try:
                    await self.publish_one(observation)
                    return None
                except asyncio.TimeoutError:
                    error = f"publish timed out after {self.timeout:.1f}s"
                except Exception as e:
                    error = f"{type(e).__name__}: {e}"

            logger.error(
                "Failed to publish %s/%s %s: %s",
                observation.region, observation.sub_region,
                observation.observed_on.isoformat(), error,
            )
            return PublishFailure(observation=observation, error=error)

        logger.info(
            "Publishing %d records (concurrency=%d, timeout=%.1fs)",
            len(records), self.concurrency, self.timeout,
        )

        outcomes = await asyncio.gather(*(_publish(r) for r in records))
        failures = [outcome for outcome in outcomes if outcome is not None]

        report = PublishReport(
            attempted=len(records),
            succeeded=len(records) - len(failures),
            failed=len(failures),
            failures=failures,
        )
        logger.info(
            "Published %d/%d records (%d failed)",
            report.succeeded, report.attempted, report.failed,
        )
        return report
