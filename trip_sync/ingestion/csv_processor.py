"""
CSV processor for parsing the Uber daily trip export.
"""

import csv
import hashlib
import logging
from io import StringIO
from typing import Dict, List, Optional

from trip_sync.errors import FormatError

logger = logging.getLogger(__name__)

# One parsed data row keyed by the header columns of the file
RawRecord = Dict[str, str]

HEADER_MARKER = 'id da viagem/uber eats'
DELIMITER = ';'


def find_header_index(lines: List[str]) -> Optional[int]:
    """Index of the first line that looks like the real column header."""
    for index, line in enumerate(lines):
        if HEADER_MARKER in line.lower():
            return index
    return None


class TripCSVProcessor:
    """Parses the banner-prefixed, semicolon separated trip export."""

    def calculate_file_hash(self, csv_content: bytes) -> str:
        """Calculate SHA256 hash of CSV content for run logging."""
        return hashlib.sha256(csv_content).hexdigest()

    def parse_csv_content(self, csv_content: bytes, filename: Optional[str] = None) -> List[RawRecord]:
        """Parse the export into records keyed by the header columns.

        Banner lines before the header are dropped. A file without a header
        line yields no records. Broken quoting or rows whose column count
        does not match the header raise ``FormatError``.
        """
        filename = filename or 'export'

        try:
            csv_text = csv_content.decode('utf-8-sig')
        except UnicodeDecodeError as e:
            raise FormatError(f"{filename} is not valid UTF-8: {e}") from e

        lines = csv_text.split('\n')
        header_index = find_header_index(lines)

        if header_index is None:
            logger.warning(f"No trip header found in {filename}, treating as empty export")
            return []

        if header_index:
            logger.info(f"Skipping {header_index} banner line(s) in {filename}")

        table_text = '\n'.join(lines[header_index:])
        reader = csv.reader(StringIO(table_text), delimiter=DELIMITER, quotechar='"', strict=True)

        records = []
        header = None

        try:
            for row in reader:
                if self._is_empty_row(row):
                    continue

                values = [value.strip() for value in row]

                if header is None:
                    header = values
                    continue

                if len(values) != len(header):
                    raise FormatError(
                        f"{filename} line {header_index + reader.line_num}: "
                        f"expected {len(header)} columns, found {len(values)}"
                    )

                records.append(dict(zip(header, values)))

        except csv.Error as e:
            raise FormatError(
                f"{filename} line {header_index + reader.line_num}: malformed CSV - {e}"
            ) from e

        logger.info(f"Parsed {len(records)} trips from {filename}")
        return records

    def _is_empty_row(self, row: List[str]) -> bool:
        """Blank lines come through as an empty row or a single empty field."""
        return not row or (len(row) == 1 and not row[0].strip())
