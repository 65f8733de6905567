"""Fetcher — HTTP → rows of text fields.

Downloads the wide-format CSV and splits it into rows. Every field stays a
string; typing happens in the Transformer.
"""

import csv
import io
import logging

from covidstream.config import settings
from covidstream.clients import DocumentClient
from covidstream.errors import MalformedDocument

logger = logging.getLogger(__name__)


def parse_rows(text: str) -> list[list[str]]:
    """Parse comma-delimited text into rows of string fields.

    The first line is returned as an ordinary row (the header is not
    interpreted here). Blank lines are skipped. Every row must have exactly
    as many fields as the first one; nothing is padded or truncated.

    Args:
        text: Raw CSV document

    Returns:
        List of rows; empty if the document has no content

    Raises:
        MalformedDocument: If the quoting is broken or a row has a different
            number of fields than the first line

    Example:
        >>> parse_rows("a,b\\n1,2\\n")
        [['a', 'b'], ['1', '2']]
    """
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=",", strict=True)
    try:
        rows = [record for record in reader if record]
    except csv.Error as e:
        raise MalformedDocument(f"Cannot parse CSV document (line {reader.line_num}): {e}") from e

    if not rows:
        return []

    width = len(rows[0])
    ragged = [index for index, row in enumerate(rows) if len(row) != width]
    if ragged:
        first = ragged[0]
        raise MalformedDocument(
            f"Row {first} has {len(rows[first])} fields, expected {width} "
            f"({len(ragged)} ragged row(s))"
        )

    return rows


class Fetcher:
    """Fetches the source document and returns its rows.

    Usage:
        fetcher = Fetcher()
        rows = await fetcher.fetch(settings.data_url)
        header, data = rows[0], rows[1:]
    """

    def __init__(self, client: DocumentClient | None = None) -> None:
        """Initialize fetcher.

        Args:
            client: HTTP client (default: built from settings)
        """
        self.client = client or DocumentClient(
            timeout=settings.request_timeout,
            insecure_hosts=settings.insecure_tls_hosts,
        )

    async def fetch(self, url: str) -> list[list[str]]:
        """Download `url` and split it into rows.

        Raises:
            Unreachable: Download failed
            MalformedDocument: Body is not valid CSV
        """
        logger.info("Fetching %s", url)
        text = await self.client.get_text(url)
        rows = parse_rows(text)
        logger.info(
            "Fetched %d rows x %d columns",
            len(rows), len(rows[0]) if rows else 0,
        )
        return rows
