"""covid-stream: wide-format COVID-19 time series → Kafka observation stream."""

__version__ = "0.1.0"
