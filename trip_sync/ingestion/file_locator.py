"""
Locates the daily trip export on the SFTP drop.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

FILENAME_TEMPLATE = 'daily_trips-{year}_{month:02d}_{day:02d}.csv'


class RemoteFileDescriptor(BaseModel):
    """Snapshot of one entry of a remote directory listing."""

    name: str
    size_bytes: int
    modified_at: datetime


def yesterday_filename(reference: Optional[datetime] = None) -> str:
    """Name of the export covering the day before ``reference``.

    The date arithmetic uses the calendar fields of ``reference`` as given
    (the process local clock by default). No timezone conversion happens
    here, so a process running in UTC while the schedule fires in another
    timezone can pick a different day than the schedule implies.
    """
    reference = reference or datetime.now()
    day = reference - timedelta(days=1)
    return FILENAME_TEMPLATE.format(year=day.year, month=day.month, day=day.day)


class FileLocator:
    """Finds yesterday's export in the remote directory listing."""

    def __init__(self, client):
        self.client = client

    def locate(self, reference: Optional[datetime] = None) -> Optional[RemoteFileDescriptor]:
        """Return the descriptor of yesterday's export, or None if absent."""
        target = yesterday_filename(reference)
        entries: List[RemoteFileDescriptor] = self.client.list_directory()

        for entry in entries:
            if entry.name == target:
                logger.info(f"Found export {entry.name} ({entry.size_bytes} bytes)")
                return entry

        logger.info(f"Export {target} not found among {len(entries)} remote files")
        return None
