"""
Main sync worker that orchestrates the daily trip pipeline.
"""

import sys
import uuid
import signal
import logging
import argparse
import threading
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Callable, List, Optional

from croniter import croniter
from pydantic import BaseModel

from trip_sync.config import SyncConfig, load_config, load_environment
from trip_sync.errors import ConfigurationError
from trip_sync.ingestion.csv_processor import TripCSVProcessor
from trip_sync.ingestion.file_locator import FileLocator, yesterday_filename
from trip_sync.ingestion.sftp_client import SFTPClient
from trip_sync.ingestion.transformer import DOCUMENT_SCHEMA, RecordTransformer
from trip_sync.monitoring.health import HealthChecker
from trip_sync.monitoring.logger_config import OperationLogger, SyncLogger
from trip_sync.sinks import Sink, build_sink

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    DELIVERED = 'delivered'
    NOT_FOUND = 'not_found'
    FAILED = 'failed'
    SKIPPED_BUSY = 'skipped_busy'


class RunResult(BaseModel):
    """Outcome of a single sync run."""

    status: RunStatus
    correlation_id: Optional[str] = None
    filename: Optional[str] = None
    records_parsed: int = 0
    records_delivered: int = 0
    error: Optional[str] = None


class SyncWorker:
    """Runs the locate, ingest, transform and deliver steps of one sync."""

    def __init__(
        self,
        config: SyncConfig,
        client_factory: Optional[Callable[[], SFTPClient]] = None,
        sink: Optional[Sink] = None
    ):
        self.config = config
        self.client_factory = client_factory or (lambda: SFTPClient(config.sftp))
        self.sink = sink or build_sink(config)
        self.csv_processor = TripCSVProcessor()

        # Group exclusion only applies to the document store projection
        excluded_groups = config.excluded_groups if self.sink.schema is DOCUMENT_SCHEMA else ()
        self.transformer = RecordTransformer(self.sink.schema, excluded_groups)

        self._run_lock = threading.Lock()
        self._stop_event = threading.Event()

        logger.info(f"Sync worker initialized for {self.sink.describe()}")

    def run_once(self, now: Optional[datetime] = None) -> RunResult:
        """Run a single sync for the export dated the day before ``now``.

        Only one run executes at a time; a trigger arriving while a run is
        in flight is dropped. Failures are raised after the SFTP session
        has been closed.
        """
        if not self._run_lock.acquire(blocking=False):
            logger.warning("A sync run is already in progress, dropping this trigger")
            return RunResult(status=RunStatus.SKIPPED_BUSY)

        try:
            return self._run(now)
        finally:
            self._run_lock.release()

    def _run(self, now: Optional[datetime]) -> RunResult:
        correlation_id = str(uuid.uuid4())

        with OperationLogger('daily_trip_sync', correlation_id, destination=self.sink.describe()):
            with self.client_factory() as client:
                descriptor = FileLocator(client).locate(now)

                if descriptor is None:
                    target = yesterday_filename(now)
                    logger.info(f"Export {target} not available yet, nothing to sync")
                    return RunResult(
                        status=RunStatus.NOT_FOUND,
                        correlation_id=correlation_id,
                        filename=target,
                    )

                logger.info(f"Processing export: {descriptor.name}")
                content = client.download(descriptor.name)
                file_sha256 = self.csv_processor.calculate_file_hash(content)
                logger.info(f"Export SHA256: {file_sha256[:16]}...")

                trips = self.csv_processor.parse_csv_content(content, descriptor.name)
                records = self.transformer.transform(trips)
                logger.info(f"{len(records)} trips ready for {self.sink.describe()}")

                delivered = self.sink.deliver(records)

            logger.info(f"Sync completed: {delivered} trips delivered from {descriptor.name}")
            return RunResult(
                status=RunStatus.DELIVERED,
                correlation_id=correlation_id,
                filename=descriptor.name,
                records_parsed=len(trips),
                records_delivered=delivered,
            )

    def run_scheduled(self, now: Optional[datetime] = None) -> RunResult:
        """Run once, logging failures instead of raising them."""
        try:
            return self.run_once(now)
        except Exception as e:
            logger.error(f"Sync run failed: {e}", exc_info=True)
            return RunResult(status=RunStatus.FAILED, error=str(e))

    def next_run_time(self, after: Optional[datetime] = None) -> datetime:
        """Next fire time of the cron schedule in the configured timezone."""
        after = after or datetime.now(self.config.tz)
        return croniter(self.config.cron_schedule, after).get_next(datetime)

    def stop(self, *_args) -> None:
        """Ask the scheduler loop to exit after the current run."""
        logger.info("Stop requested, shutting down")
        self._stop_event.set()

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        signal.signal(signal.SIGTERM, self.stop)
        signal.signal(signal.SIGINT, self.stop)

    def run_continuous(self) -> None:
        """Run on the cron schedule until stopped.

        Runs happen on this thread, so a trigger that falls due while a
        run is still in flight is skipped; the next fire time is always
        computed after the previous run has finished.
        """
        self._install_signal_handlers()
        logger.info(
            f"Starting trip sync worker (schedule: '{self.config.cron_schedule}', "
            f"timezone: {self.config.timezone})"
        )

        if self.config.run_on_start and not self._stop_event.is_set():
            logger.info("Running initial sync")
            self.run_scheduled()

        try:
            while not self._stop_event.is_set():
                next_run = self.next_run_time()
                wait_seconds = max((next_run - datetime.now(self.config.tz)).total_seconds(), 0)
                logger.info(f"Next sync at {next_run.isoformat()}")

                if self._stop_event.wait(wait_seconds):
                    break

                self.run_scheduled()

        except KeyboardInterrupt:
            logger.info("Sync worker stopped by user")

        logger.info("Sync worker stopped")

    def health_check(self) -> bool:
        """Check that the SFTP drop is reachable and the sink configured."""
        report = HealthChecker(self.config, self.client_factory, self.sink).comprehensive_health_check()
        return report['overall_status'] == 'healthy'


def reference_for_export_date(export_date: date) -> datetime:
    """Run time whose 'yesterday' is ``export_date``."""
    return datetime.combine(export_date + timedelta(days=1), time())


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the sync worker."""
    parser = argparse.ArgumentParser(description='Sync the Uber daily trip export')
    parser.add_argument('--once', action='store_true', help='Run once and exit')
    parser.add_argument('--health-check', action='store_true', help='Perform health check')
    parser.add_argument(
        '--export-date',
        type=date.fromisoformat,
        help='Export date (YYYY-MM-DD) to sync with --once instead of yesterday'
    )

    args = parser.parse_args(argv)

    # LOG_* and TZ may come from .env
    load_environment()
    SyncLogger.setup_logging()

    try:
        config = load_config()
        worker = SyncWorker(config)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if args.health_check:
        return 0 if worker.health_check() else 1

    if args.once or args.export_date:
        now = reference_for_export_date(args.export_date) if args.export_date else None
        try:
            result = worker.run_once(now)
        except Exception as e:
            logger.error(f"Sync failed: {e}")
            return 1
        logger.info(f"Sync finished with status {result.status.value}")
        return 0

    worker.run_continuous()
    return 0


if __name__ == "__main__":
    sys.exit(main())
