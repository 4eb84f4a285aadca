"""
Destination sinks for projected trip records.
"""

from trip_sync.config import SyncConfig
from trip_sync.ingestion.transformer import DOCUMENT_SCHEMA, TABULAR_SCHEMA
from trip_sync.sinks.base import Sink, chunk
from trip_sync.sinks.firestore import FirestoreSink
from trip_sync.sinks.sheets import SheetsSink

__all__ = ['Sink', 'SheetsSink', 'FirestoreSink', 'build_sink', 'chunk']


def build_sink(config: SyncConfig) -> Sink:
    """Pick the sink and its output schema for the configured destination."""
    if config.destination == 'firestore':
        return FirestoreSink(config.firestore, DOCUMENT_SCHEMA)
    return SheetsSink(config.sheets, TABULAR_SCHEMA)
