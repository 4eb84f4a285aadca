"""
Uber Daily Trips Sync

A scheduled, idempotent ingestion pipeline that pulls the daily trip export
from the Uber SFTP drop, normalizes the semicolon CSV and delivers it to
either the reporting sheet or the Firestore trips collection.
"""

__version__ = "0.1.0"
