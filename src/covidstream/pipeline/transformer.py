"""Transformer — wide rows → long-format Observations.

Source shape (one row per region, one column per date):

    Province/State, Country/Region, Lat, Long, 1/22/20, 1/23/20, ...
    Hubei,          China,          30.9, 112.3, 1,       2,       ...

Target shape (one Observation per region and date):

    Observation(sub_region="Hubei", region="China", latitude=30.9,
                longitude=112.3, observed_on=date(2020, 1, 22), value=1)

Column position is the only join key between a data cell and its date label.
Unparsable numbers and dates never drop a row: the field falls back to its
zero default and a FieldParseError is recorded on the Transformer.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Sequence

from covidstream.errors import EmptyInput, FieldParseError

logger = logging.getLogger(__name__)

# Header date labels, e.g. "1/22/20"
DATE_FORMAT = "%m/%d/%y"

# Columns 0-3 identify the region; dates start here
FIRST_DATE_COLUMN = 4

SUB_REGION_COLUMN = 0
REGION_COLUMN = 1
LATITUDE_COLUMN = 2
LONGITUDE_COLUMN = 3

DEFAULT_DATE = date.min

# Counts are signed 64-bit values
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


@dataclass(frozen=True)
class Observation:
    """One region's count on one date."""

    sub_region: str
    region: str
    latitude: float
    longitude: float
    observed_on: date
    value: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "sub_region": self.sub_region,
            "region": self.region,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "observed_on": self.observed_on.isoformat(),
            "value": self.value,
        }


def parse_date_label(text: str) -> date:
    """Parse a header date label like "1/22/20"."""
    return datetime.strptime(text, DATE_FORMAT).date()


def _check_plain(text: str) -> str:
    # int() and float() tolerate padding and digit separators; cells must not
    if text != text.strip() or "_" in text:
        raise ValueError(f"unexpected characters in {text!r}")
    return text


def parse_count(text: str) -> int:
    """Parse a daily count cell as a signed 64-bit integer.

    Raises:
        ValueError: Not a bare base-10 integer
        OverflowError: Outside the 64-bit range
    """
    value = int(_check_plain(text))
    if not INT64_MIN <= value <= INT64_MAX:
        raise OverflowError(f"{text!r} does not fit in 64 bits")
    return value


def parse_coordinate(text: str) -> float:
    """Parse a latitude or longitude cell."""
    return float(_check_plain(text))


def _cell(row: Sequence[str], column: int) -> str:
    return row[column] if column < len(row) else ""


class Transformer:
    """Reshapes wide time-series rows into Observations.

    Stateless apart from the diagnostics of the last `reshape` call.

    Usage:
        transformer = Transformer()
        observations = transformer.reshape(rows)
        for failure in transformer.parse_failures:
            print(failure.field, failure.row, failure.column)
    """

    def __init__(self) -> None:
        self.parse_failures: list[FieldParseError] = []

    def _parse(
        self,
        parser: Callable[[str], Any],
        default: Any,
        field: str,
        row: Sequence[str],
        row_index: int,
        column: int,
    ) -> Any:
        """Parse one cell, recording a FieldParseError and returning `default` on failure."""
        text = _cell(row, column)
        try:
            return parser(text)
        except (ValueError, OverflowError):
            failure = FieldParseError(field, row_index, column, text)
            logger.debug("%s — using default %r", failure, default)
            self.parse_failures.append(failure)
            return default

    def reshape(self, rows: Sequence[Sequence[str]]) -> list[Observation]:
        """Turn the header + data rows into one Observation per (row, date column).

        Args:
            rows: Full document; rows[0] is the header

        Returns:
            Observations in document order (row by row, column by column)

        Raises:
            EmptyInput: Fewer than two rows
        """
        if len(rows) < 2:
            raise EmptyInput(
                f"Need a header and at least one data row, got {len(rows)} row(s)"
            )

        self.parse_failures = []
        header = rows[0]

        # Date labels are shared by every row; parse each column once
        dates = [
            self._parse(parse_date_label, DEFAULT_DATE, "observed_on", header, 0, column)
            for column in range(FIRST_DATE_COLUMN, len(header))
        ]

        observations: list[Observation] = []
        for row_index, row in enumerate(rows[1:], start=1):
            sub_region = _cell(row, SUB_REGION_COLUMN)
            region = _cell(row, REGION_COLUMN)
            latitude = self._parse(parse_coordinate, 0.0, "latitude", row, row_index, LATITUDE_COLUMN)
            longitude = self._parse(parse_coordinate, 0.0, "longitude", row, row_index, LONGITUDE_COLUMN)

            for column in range(FIRST_DATE_COLUMN, min(len(header), len(row))):
                observations.append(
                    Observation(
                        sub_region=sub_region,
                        region=region,
                        latitude=latitude,
                        longitude=longitude,
                        observed_on=dates[column - FIRST_DATE_COLUMN],
                        value=self._parse(parse_count, 0, "value", row, row_index, column),
                    )
                )

        if self.parse_failures:
            logger.warning(
                "%d field value(s) could not be parsed and were set to defaults",
                len(self.parse_failures),
            )

        logger.info(
            "Reshaped %d data rows into %d observations",
            len(rows) - 1, len(observations),
        )
        return observations


def reshape(rows: Sequence[Sequence[str]]) -> list[Observation]:
    """Reshape with a throwaway Transformer. See Transformer.reshape."""
    return Transformer().reshape(rows)
