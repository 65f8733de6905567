"""Exception taxonomy for the ingestion pipeline.

Fatal (abort the run):
    FetchError -> Unreachable, MalformedDocument
    TransformError -> EmptyInput

Non-fatal (logged per record, batch continues):
    FieldParseError: a field fell back to its default value
    PublishError -> SinkUnavailable, Rejected
"""


class PipelineError(Exception):
    """Base exception for all pipeline errors."""


class FetchError(PipelineError):
    """The source document could not be obtained or parsed."""


class Unreachable(FetchError):
    """Transport failure, timeout, or non-2xx response from the source."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class MalformedDocument(FetchError):
    """The response body is not valid comma-delimited text."""


class TransformError(PipelineError):
    """The fetched rows cannot be reshaped."""


class EmptyInput(TransformError):
    """Fewer than two rows (no header, or header with no data)."""


class FieldParseError(PipelineError):
    """A single field could not be parsed and was replaced by its default."""

    def __init__(self, field: str, row: int, column: int, text: str) -> None:
        super().__init__(
            f"Cannot parse {field} from {text!r} (row {row}, column {column})"
        )
        self.field = field
        self.row = row
        self.column = column
        self.text = text


class PublishError(PipelineError):
    """A record could not be delivered to the broker."""


class SinkUnavailable(PublishError):
    """The broker could not be reached or did not answer in time."""


class Rejected(PublishError):
    """The broker refused the message."""
