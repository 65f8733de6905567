"""Kafka publish sink.

The pipeline only needs one operation from the broker: publish a message.
`PublishSink` is that contract; `KafkaSink` implements it on top of
aiokafka's AIOKafkaProducer. Partitioning, batching and acknowledgements are
left to the producer.

Usage:
    async with KafkaSink.configure(["kafka-0:9092"], "covid19") as sink:
        await sink.publish(None, b'{"value": 1}', datetime.now(timezone.utc))
"""

import logging
from datetime import datetime
from typing import Any, Protocol

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaConnectionError, KafkaError, KafkaTimeoutError

from covidstream.errors import Rejected, SinkUnavailable

logger = logging.getLogger(__name__)


class PublishSink(Protocol):
    """Anything that can deliver a single message to a broker topic.

    `start` is awaited once before the first publish and `stop` once after
    the last. `publish` must be safe to call from many concurrent tasks.
    All three raise PublishError subclasses on broker failures.
    """

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...

    async def publish(
        self,
        key: bytes | None,
        payload: bytes,
        timestamp: datetime,
    ) -> None:
        ...


class KafkaSink:
    """Publishes messages to one Kafka topic.

    Args:
        broker_addresses: Bootstrap servers ("host:port")
        topic: Destination topic
        **producer_options: Extra keyword arguments for AIOKafkaProducer
    """

    def __init__(
        self,
        broker_addresses: list[str],
        topic: str,
        **producer_options: Any,
    ) -> None:
        self.broker_addresses = list(broker_addresses)
        self.topic = topic
        self.producer_options = producer_options
        self._producer: AIOKafkaProducer | None = None

    @classmethod
    def configure(cls, broker_addresses: list[str], topic: str) -> "KafkaSink":
        """Build a sink for `topic` on the given brokers.

        Raises:
            ValueError: If no broker address or no topic is given
        """
        addresses = [address.strip() for address in broker_addresses if address.strip()]
        if not addresses:
            raise ValueError("At least one Kafka broker address is required")
        if not topic:
            raise ValueError("Kafka topic must not be empty")
        return cls(addresses, topic)

    async def start(self) -> None:
        """Connect the underlying producer.

        Raises:
            SinkUnavailable: If the brokers cannot be reached
        """
        producer = AIOKafkaProducer(
            bootstrap_servers=self.broker_addresses,
            **self.producer_options,
        )
        try:
            await producer.start()
        except KafkaError as e:
            logger.error("Unable to connect to Kafka %s: %s", self.broker_addresses, e)
            await producer.stop()
            raise SinkUnavailable(f"Unable to connect to Kafka: {e}") from e

        self._producer = producer
        logger.info("Connected to Kafka %s (topic=%s)", self.broker_addresses, self.topic)

    async def stop(self) -> None:
        """Flush pending messages and close the producer."""
        if self._producer:
            await self._producer.stop()
            self._producer = None

    async def __aenter__(self) -> "KafkaSink":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.stop()

    async def publish(
        self,
        key: bytes | None,
        payload: bytes,
        timestamp: datetime,
    ) -> None:
        """Send one message and wait for the broker acknowledgement.

        Raises:
            SinkUnavailable: Broker unreachable or request timed out
            Rejected: Broker returned any other error
        """
        if not self._producer:
            raise RuntimeError("Sink not started. Call start() or use async with.")

        try:
            await self._producer.send_and_wait(
                self.topic,
                value=payload,
                key=key,
                timestamp_ms=int(timestamp.timestamp() * 1000),
            )
        except (KafkaConnectionError, KafkaTimeoutError) as e:
            raise SinkUnavailable(f"Kafka unavailable: {e}") from e
        except KafkaError as e:
            raise Rejected(f"Kafka rejected message: {e}") from e
