"""
Error types for the trip sync pipeline.
"""


class TripSyncError(Exception):
    """Base class for pipeline failures."""

    error_code = "SYNC_ERROR"


class ConfigurationError(TripSyncError):
    """Raised at startup when required settings are missing or invalid."""

    error_code = "CONFIG_ERROR"


class TransportError(TripSyncError):
    """Raised when the SFTP source or an HTTP endpoint cannot be reached."""

    error_code = "TRANSPORT_ERROR"


class FormatError(TripSyncError):
    """Raised when the export file content breaks the delimited format."""

    error_code = "FORMAT_ERROR"


class DestinationError(TripSyncError):
    """Raised when the destination store rejects a write."""

    error_code = "DESTINATION_ERROR"
