"""
Health checks for the sync worker's external dependencies.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict

from trip_sync.config import SyncConfig

logger = logging.getLogger(__name__)


class HealthChecker:
    """Provides health checks for system components."""

    def __init__(self, config: SyncConfig, client_factory: Callable, sink):
        self.config = config
        self.client_factory = client_factory
        self.sink = sink

    def _elapsed_ms(self, start_time: datetime) -> int:
        return int((datetime.now() - start_time).total_seconds() * 1000)

    def check_sftp_health(self) -> Dict[str, Any]:
        """Check SFTP connectivity by listing the trips directory."""
        start_time = datetime.now()

        try:
            with self.client_factory() as client:
                entries = client.list_directory()

            return {
                'status': 'healthy',
                'response_time_ms': self._elapsed_ms(start_time),
                'server': self.config.sftp.host,
                'remote_files': len(entries),
                'timestamp': datetime.now().isoformat()
            }

        except Exception as e:
            logger.error(f"SFTP health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'response_time_ms': self._elapsed_ms(start_time),
                'timestamp': datetime.now().isoformat()
            }

    def check_destination_health(self) -> Dict[str, Any]:
        """Check that the destination has what it needs to accept writes."""
        if self.config.destination == 'firestore' and not self.config.firestore.service_account:
            return {
                'status': 'unhealthy',
                'error': 'FIREBASE_SERVICE_ACCOUNT is not configured',
                'timestamp': datetime.now().isoformat()
            }

        return {
            'status': 'healthy',
            'destination': self.sink.describe(),
            'timestamp': datetime.now().isoformat()
        }

    def comprehensive_health_check(self) -> Dict[str, Any]:
        """Perform health check of all components."""
        start_time = datetime.now()

        sftp_health = self.check_sftp_health()
        destination_health = self.check_destination_health()

        overall_healthy = (
            sftp_health['status'] == 'healthy' and
            destination_health['status'] == 'healthy'
        )

        logger.info(
            f"Health check - SFTP: {sftp_health['status']}, "
            f"Destination: {destination_health['status']}"
        )

        return {
            'overall_status': 'healthy' if overall_healthy else 'unhealthy',
            'response_time_ms': self._elapsed_ms(start_time),
            'timestamp': datetime.now().isoformat(),
            'components': {
                'sftp': sftp_health,
                'destination': destination_health
            }
        }
