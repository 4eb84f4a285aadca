"""
Append sink pushing trip rows to the reporting sheet endpoint.

Each run appends every row it is given, so re-running the same export
writes the rows again.
"""

import logging
from typing import List, Optional

import requests

from trip_sync.config import SheetsSettings
from trip_sync.errors import DestinationError, TransportError
from trip_sync.ingestion.transformer import OutputSchema, ProjectedRecord
from trip_sync.sinks.base import Sink

logger = logging.getLogger(__name__)


class SheetsSink(Sink):
    """Sends the whole record set as one JSON ``values`` request."""

    def __init__(
        self,
        settings: SheetsSettings,
        schema: OutputSchema,
        session: Optional[requests.Session] = None
    ):
        self.settings = settings
        self.schema = schema
        self.session = session or requests.Session()

    def describe(self) -> str:
        return f"sheets endpoint {self.settings.api_url}"

    def to_rows(self, records: List[ProjectedRecord]) -> List[List[str]]:
        """Order each record's values by the schema's column list."""
        return [
            [record.get(name, '') for name in self.schema.field_names]
            for record in records
        ]

    def deliver(self, records: List[ProjectedRecord]) -> int:
        """Push all rows in a single request."""
        if not records:
            logger.info("No trips to send to sheets")
            return 0

        payload = {'values': self.to_rows(records)}

        try:
            response = self.session.post(
                self.settings.api_url,
                json=payload,
                headers={'Content-Type': 'application/json'},
                timeout=self.settings.timeout_seconds,
            )
        except requests.RequestException as e:
            logger.error(f"Sheets API request failed: {e}")
            raise TransportError(f"Sheets API request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            logger.error(f"Sheets API rejected {len(records)} rows: {response.status_code} {response.reason}")
            raise DestinationError(f"Sheets API error: {response.status_code} {response.reason}")

        logger.info(f"Sent {len(records)} rows to sheets")
        return len(records)
