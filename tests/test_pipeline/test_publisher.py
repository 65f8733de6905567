"""Tests for Publisher — concurrent, failure-isolated publishing."""

import asyncio
import json
import math
from datetime import date, datetime

import pytest

from covidstream.errors import Rejected, SinkUnavailable
from covidstream.pipeline.publisher import (
    PAYLOAD_SCHEMA_VERSION,
    Publisher,
    PublishReport,
    serialize,
)
from covidstream.pipeline.transformer import Observation


def make_observations(n: int) -> list[Observation]:
    return [
        Observation(f"sub{i}", "Region", 1.5, -2.5, date(2020, 1, 22), i)
        for i in range(n)
    ]


class FakeSink:
    """In-memory sink that fails for selected values and tracks concurrency."""

    def __init__(self, fail_values: set[int] | None = None, delay: float = 0.0) -> None:
        self.fail_values = fail_values or set()
        self.delay = delay
        self.published: list[dict] = []
        self.calls: list[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def publish(self, key, payload, timestamp) -> None:
        self.calls.append((key, payload, timestamp))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            message = json.loads(payload)
            if message["value"] in self.fail_values:
                raise Rejected(f"value {message['value']} rejected")
            self.published.append(message)
        finally:
            self.in_flight -= 1


class TestSerialize:
    """Tests for the message payload encoding."""

    def test_payload_fields(self):
        obs = Observation("Hubei", "China", 30.9, 112.3, date(2020, 1, 22), 1)

        message = json.loads(serialize(obs))

        assert message == {
            "schema_version": PAYLOAD_SCHEMA_VERSION,
            "sub_region": "Hubei",
            "region": "China",
            "latitude": 30.9,
            "longitude": 112.3,
            "observed_on": "2020-01-22",
            "value": 1,
        }

    def test_utf8_bytes(self):
        obs = Observation("Curaçao", "Netherlands", 12.1, -68.9, date(2020, 3, 1), 3)
        payload = serialize(obs)
        assert isinstance(payload, bytes)
        assert json.loads(payload.decode("utf-8"))["sub_region"] == "Curaçao"

    def test_nan_rejected(self):
        obs = Observation("a", "X", math.nan, 0.0, date(2020, 1, 22), 1)
        with pytest.raises(ValueError):
            serialize(obs)


class TestPublishAll:
    """Tests for Publisher.publish_all."""

    @pytest.mark.asyncio
    async def test_all_succeed(self):
        sink = FakeSink()
        records = make_observations(20)

        report = await Publisher(sink, concurrency=5, timeout=1.0).publish_all(records)

        assert report == PublishReport(attempted=20, succeeded=20, failed=0, failures=[])
        assert report.ok
        assert sorted(m["value"] for m in sink.published) == list(range(20))

    @pytest.mark.asyncio
    async def test_message_envelope(self):
        sink = FakeSink()

        await Publisher(sink, concurrency=1, timeout=1.0).publish_all(make_observations(1))

        key, payload, timestamp = sink.calls[0]
        assert key is None
        assert json.loads(payload)["value"] == 0
        assert isinstance(timestamp, datetime)
        assert timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self):
        """A failing subset does not abort the rest of the batch."""
        failing = {3, 7, 11}
        sink = FakeSink(fail_values=failing)
        records = make_observations(15)

        report = await Publisher(sink, concurrency=4, timeout=1.0).publish_all(records)

        assert report.attempted == 15
        assert report.succeeded == 15 - len(failing)
        assert report.failed == len(failing)
        assert not report.ok
        assert {f.observation.value for f in report.failures} == failing
        assert all("Rejected" in f.error for f in report.failures)
        assert len(sink.calls) == 15

    @pytest.mark.asyncio
    async def test_serialization_failure_isolated(self):
        sink = FakeSink()
        records = make_observations(3) + [
            Observation("bad", "X", math.inf, 0.0, date(2020, 1, 22), 99)
        ]

        report = await Publisher(sink, concurrency=2, timeout=1.0).publish_all(records)

        assert report.succeeded == 3
        assert report.failed == 1
        assert report.failures[0].observation.value == 99
        assert "ValueError" in report.failures[0].error
        assert len(sink.calls) == 3  # never reached the sink

    @pytest.mark.asyncio
    async def test_sink_unavailable_counts_as_failure(self):
        class DownSink:
            async def publish(self, key, payload, timestamp):
                raise SinkUnavailable("broker down")

        report = await Publisher(DownSink(), concurrency=2, timeout=1.0).publish_all(
            make_observations(4)
        )

        assert report.failed == 4
        assert report.succeeded == 0

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        sink = FakeSink(delay=0.01)

        await Publisher(sink, concurrency=3, timeout=1.0).publish_all(make_observations(30))

        assert sink.max_in_flight <= 3
        assert sink.max_in_flight > 1

    @pytest.mark.asyncio
    async def test_stalled_publish_times_out(self):
        """One hung publish fails on its own; the batch still completes."""

        class StallingSink(FakeSink):
            async def publish(self, key, payload, timestamp):
                if json.loads(payload)["value"] == 0:
                    await asyncio.sleep(10)
                await super().publish(key, payload, timestamp)

        sink = StallingSink()

        report = await Publisher(sink, concurrency=5, timeout=0.05).publish_all(
            make_observations(5)
        )

        assert report.succeeded == 4
        assert report.failed == 1
        assert "timed out" in report.failures[0].error

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        report = await Publisher(FakeSink(), concurrency=2, timeout=1.0).publish_all([])
        assert report == PublishReport()

    def test_defaults_from_settings(self):
        publisher = Publisher(FakeSink())
        assert publisher.concurrency == 64
        assert publisher.timeout == 10.0

    @pytest.mark.parametrize("timeout", [0, -1.0])
    def test_non_positive_timeout_rejected(self, timeout):
        with pytest.raises(ValueError, match="timeout"):
            Publisher(FakeSink(), concurrency=1, timeout=timeout)

    def test_zero_concurrency_rejected(self):
        with pytest.raises(ValueError, match="concurrency"):
            Publisher(FakeSink(), concurrency=0, timeout=1.0)


class TestPublishReport:
    """Tests for PublishReport helpers."""

    @pytest.mark.asyncio
    async def test_to_dict(self):
        sink = FakeSink(fail_values={1})
        report = await Publisher(sink, concurrency=2, timeout=1.0).publish_all(
            make_observations(2)
        )

        data = report.to_dict()

        assert data["attempted"] == 2
        assert data["succeeded"] == 1
        assert data["failed"] == 1
        assert data["failures"][0]["observation"]["value"] == 1
        assert "rejected" in data["failures"][0]["error"]
        json.dumps(data)  # JSON-serializable

    def test_undelivered_marks_every_record_failed(self):
        records = make_observations(3)

        report = PublishReport.undelivered(records, "SinkUnavailable: no brokers")

        assert report.attempted == 3
        assert report.succeeded == 0
        assert report.failed == 3
        assert not report.ok
        assert [f.observation for f in report.failures] == records
        assert {f.error for f in report.failures} == {"SinkUnavailable: no brokers"}
