"""Configuration management for covid-stream.

Loads settings from environment variables (and an optional .env file) using
pydantic-settings. Every field has a default, so the pipeline runs against the
public dataset and the in-cluster broker without any configuration.

Usage:
    from covidstream.config import settings

    print(settings.data_url)
    print(settings.broker_list)
"""

from urllib.parse import urlsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_URL = (
    "https://raw.githubusercontent.com/CSSEGISandData/COVID-19/master/"
    "csse_covid_19_data/csse_covid_19_time_series/"
    "time_series_covid19_confirmed_global.csv"
)


class Settings(BaseSettings):
    """covid-stream configuration from environment variables.

    Attributes:
        data_url: URL of the wide-format time series CSV
        kafka_brokers: Comma-separated list of Kafka bootstrap servers
        kafka_topic: Topic observations are published to
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR)
        request_timeout: Timeout for the document download (seconds)
        publish_concurrency: Maximum number of publishes in flight
        publish_timeout: Timeout for a single publish call (seconds)
        insecure_tls_hosts: Hosts whose TLS certificates are not verified
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="COVIDSTREAM_",
        case_sensitive=False,
        extra="ignore",  # Ignore unknown env vars
    )

    # Source
    data_url: str = Field(default=DEFAULT_DATA_URL, description="Time series CSV URL")
    request_timeout: float = Field(default=30.0, gt=0, description="Download timeout (s)")

    # Read-only public mirror whose chain may not validate behind
    # intercepting proxies. Only these hosts skip verification.
    insecure_tls_hosts: list[str] = Field(
        default=["raw.githubusercontent.com"],
        description="Hosts fetched without TLS certificate verification",
    )

    # Broker
    kafka_brokers: str = Field(
        default="kafka-headless.kafka-cluster:9092",
        description="Comma-separated Kafka broker list",
    )
    kafka_topic: str = Field(default="covid19", min_length=1, description="Kafka topic")

    # Publishing
    publish_concurrency: int = Field(
        default=64, ge=1, le=1000, description="Max concurrent publish calls"
    )
    publish_timeout: float = Field(default=10.0, gt=0, description="Per-record publish timeout (s)")

    # System
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid:
            raise ValueError(f"log_level must be one of {valid}, got {v}")
        return v_upper

    @field_validator("data_url")
    @classmethod
    def validate_data_url(cls, v: str) -> str:
        """Only HTTP(S) sources are supported."""
        if urlsplit(v).scheme not in {"http", "https"}:
            raise ValueError(f"data_url must be an http(s) URL, got '{v}'")
        return v

    @field_validator("kafka_brokers")
    @classmethod
    def validate_kafka_brokers(cls, v: str) -> str:
        """Require at least one broker address."""
        if not parse_broker_list(v):
            raise ValueError("kafka_brokers must name at least one broker")
        return v

    @field_validator("insecure_tls_hosts")
    @classmethod
    def normalize_hosts(cls, v: list[str]) -> list[str]:
        """Lowercase host names and drop blanks."""
        return [host.strip().lower() for host in v if host.strip()]

    @property
    def broker_list(self) -> list[str]:
        """Broker addresses as a list."""
        return parse_broker_list(self.kafka_brokers)


def parse_broker_list(value: str) -> list[str]:
    """Split a comma-separated broker string, dropping blanks.

    Example:
        >>> parse_broker_list("kafka-0:9092, kafka-1:9092,")
        ['kafka-0:9092', 'kafka-1:9092']
    """
    return [part.strip() for part in value.split(",") if part.strip()]


# Global settings instance — loaded once at import
settings = Settings()
