"""Orchestrator — Fetch → Reshape → Publish for one run.

Usage:
    sink = KafkaSink.configure(settings.broker_list, settings.kafka_topic)
    orchestrator = Orchestrator(sink)
    report = await orchestrator.run(settings.data_url)
"""

import logging

from covidstream.clients.kafka import PublishSink
from covidstream.errors import SinkUnavailable
from covidstream.pipeline.fetcher import Fetcher
from covidstream.pipeline.publisher import Publisher, PublishReport
from covidstream.pipeline.transformer import Transformer

logger = logging.getLogger(__name__)


class Orchestrator:
    """Runs the ingestion pipeline end to end.

    Fetch and transform errors propagate and end the run before the sink is
    touched. Broker problems are never fatal: a sink that cannot be started
    marks every observation as failed, and publish errors are per record.
    Both only show up in the returned report.
    """

    def __init__(
        self,
        sink: PublishSink,
        fetcher: Fetcher | None = None,
        transformer: Transformer | None = None,
        concurrency: int | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize orchestrator with all components.

        Args:
            sink: Broker sink records are published to; started and stopped by `run`
            fetcher: Document fetcher (default: Fetcher())
            transformer: Row reshaper (default: Transformer())
            concurrency: Max publishes in flight (default: from settings)
            timeout: Per-record publish timeout (default: from settings)
        """
        self.sink = sink
        self.fetcher = fetcher or Fetcher()
        self.transformer = transformer or Transformer()
        self.publisher = Publisher(sink, concurrency=concurrency, timeout=timeout)

    async def run(self, data_url: str) -> PublishReport:
        """Fetch `data_url`, reshape it and publish every observation.

        Raises:
            FetchError: Document could not be downloaded or parsed
            TransformError: Document has no data rows
        """
        rows = await self.fetcher.fetch(data_url)
        observations = self.transformer.reshape(rows)

        defaulted = len(self.transformer.parse_failures)
        if defaulted:
            logger.info("  %d field value(s) defaulted during reshape", defaulted)

        try:
            await self.sink.start()
        except SinkUnavailable as e:
            logger.error(
                "Sink unavailable, dropping all %d observations: %s",
                len(observations), e,
            )
            report = PublishReport.undelivered(observations, f"SinkUnavailable: {e}")
        else:
            try:
                report = await self.publisher.publish_all(observations)
            finally:
                await self.sink.stop()

        if report.ok:
            logger.info("Run complete: %d observations published", report.succeeded)
        else:
            logger.warning(
                "Run complete with failures: %d/%d observations not published",
                report.failed, report.attempted,
            )
        return report
