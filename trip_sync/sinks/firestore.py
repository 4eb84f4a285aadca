"""
Upsert sink writing one Firestore document per trip.

Documents are addressed by the trip ID and written with ``merge=True``,
so delivering the same trips twice leaves the collection unchanged apart
from the ``synced_at`` timestamp.
"""

import logging
from typing import Any, Dict, List

import firebase_admin
from firebase_admin import credentials, firestore

from trip_sync.config import FIRESTORE_BATCH_LIMIT, FirestoreSettings
from trip_sync.errors import DestinationError
from trip_sync.ingestion.transformer import OutputSchema, ProjectedRecord
from trip_sync.sinks.base import Sink, chunk

logger = logging.getLogger(__name__)

APP_NAME = 'trip-sync'
SYNCED_AT_FIELD = 'synced_at'


def create_firestore_client(service_account: Dict[str, Any]):
    """Initialize the firebase app once and return its Firestore client."""
    try:
        app = firebase_admin.get_app(APP_NAME)
    except ValueError:
        app = firebase_admin.initialize_app(credentials.Certificate(service_account), name=APP_NAME)
    return firestore.client(app)


class FirestoreSink(Sink):
    """Upserts trips into a collection in batches of at most 500 writes."""

    def __init__(self, settings: FirestoreSettings, schema: OutputSchema, client=None):
        self.settings = settings
        self.schema = schema
        self.batch_size = min(settings.batch_size, FIRESTORE_BATCH_LIMIT)
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = create_firestore_client(self.settings.service_account)
        return self._client

    def describe(self) -> str:
        return f"firestore collection {self.settings.collection}"

    def keyed_records(self, records: List[ProjectedRecord]) -> List[ProjectedRecord]:
        """Records that carry a trip ID; the rest cannot be upserted."""
        keyed = [record for record in records if self.schema.key_of(record)]
        skipped = len(records) - len(keyed)
        if skipped:
            logger.warning(f"Skipping {skipped} trips without {self.schema.key_field}")
        return keyed

    def deliver(self, records: List[ProjectedRecord]) -> int:
        """Commit every batch; the first failed commit fails the delivery."""
        if not records:
            logger.info("No trips to send to firestore")
            return 0

        keyed = self.keyed_records(records)
        if not keyed:
            return 0

        collection = self.client.collection(self.settings.collection)
        batches = chunk(keyed, self.batch_size)
        written = 0

        for index, batch_records in enumerate(batches, start=1):
            batch = self.client.batch()

            for record in batch_records:
                document = collection.document(self.schema.key_of(record))
                batch.set(document, {**record, SYNCED_AT_FIELD: firestore.SERVER_TIMESTAMP}, merge=True)

            try:
                batch.commit()
            except Exception as e:
                logger.error(
                    f"Firestore batch {index}/{len(batches)} failed after "
                    f"{written} committed writes: {e}"
                )
                raise DestinationError(f"Firestore batch {index}/{len(batches)} failed: {e}") from e

            written += len(batch_records)
            logger.info(f"Committed firestore batch {index}/{len(batches)} ({len(batch_records)} writes)")

        logger.info(f"Upserted {written} trips into {self.settings.collection}")
        return written
