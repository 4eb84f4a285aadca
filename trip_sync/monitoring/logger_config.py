"""
Structured logging configuration for the trip sync worker.
"""

import os
import uuid
import logging
import logging.handlers
import structlog
from datetime import datetime


class SyncLogger:
    """Configures structured logging for the sync worker."""

    @staticmethod
    def setup_logging(
        log_level: str = None,
        log_format: str = None,
        log_file: str = None
    ) -> None:
        """Set up structured logging for the application.

        Records emitted through ``logging.getLogger`` and through structlog
        share one renderer, so every line carries an ISO timestamp, the
        logger name, the level and the correlation ID of the current run.
        """

        # Get configuration from environment or defaults
        log_level = (log_level or os.getenv('LOG_LEVEL', 'INFO')).upper()
        log_format = log_format or os.getenv('LOG_FORMAT', 'console')
        log_file = log_file or os.getenv('LOG_FILE')

        shared_processors = [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
        ]

        formatter = structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                SyncLogger._get_renderer(log_format),
            ],
        )

        # Set up handlers
        handlers = []

        # Console handler
        console_handler = logging.StreamHandler()
        handlers.append(console_handler)

        # File handler (if specified)
        if log_file:
            # Create log directory if it doesn't exist
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)

            # Rotating file handler
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5
            )
            handlers.append(file_handler)

        for handler in handlers:
            handler.setLevel(getattr(logging, log_level))
            handler.setFormatter(formatter)

        # Configure structlog
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                *shared_processors,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        # Apply handlers to root logger
        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.handlers.extend(handlers)
        root_logger.setLevel(getattr(logging, log_level))

        # Quiet chatty transport libraries
        logging.getLogger('paramiko').setLevel(logging.WARNING)
        logging.getLogger('urllib3').setLevel(logging.WARNING)

        # Log initialization
        logger = structlog.get_logger()
        logger.info(
            "Logging initialized",
            log_level=log_level,
            log_format=log_format,
            log_file=log_file or "console"
        )

    @staticmethod
    def _get_renderer(log_format: str):
        """Get the appropriate renderer based on format."""
        if log_format.lower() == 'json':
            return structlog.processors.JSONRenderer()
        else:
            return structlog.dev.ConsoleRenderer(colors=False)


class OperationLogger:
    """Context manager for logging operation lifecycle.

    The correlation ID is bound to the structlog context for the duration
    of the operation so that log lines from every module carry it.
    """

    def __init__(self, operation_name: str, correlation_id: str = None, **context):
        self.operation_name = operation_name
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.context = context
        self.start_time = None
        self.logger = structlog.get_logger("trip_sync.operation")

    def __enter__(self):
        """Enter operation context."""
        self.start_time = datetime.now()
        structlog.contextvars.bind_contextvars(correlation_id=self.correlation_id)

        self.logger.info(
            f"Operation started: {self.operation_name}",
            operation=self.operation_name,
            **self.context
        )

        return self.logger

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit operation context."""
        duration = (datetime.now() - self.start_time).total_seconds()

        if exc_type is None:
            self.logger.info(
                f"Operation completed: {self.operation_name}",
                operation=self.operation_name,
                duration_seconds=duration,
                **self.context
            )
        else:
            self.logger.error(
                f"Operation failed: {self.operation_name}",
                operation=self.operation_name,
                duration_seconds=duration,
                error_type=exc_type.__name__,
                error_message=str(exc_val),
                **self.context
            )

        structlog.contextvars.unbind_contextvars('correlation_id')
        return False  # Don't suppress exceptions
