import logging
import sys
from datetime import datetime, timezone

from pythonjsonlogger import jsonlogger

SERVICE_NAME = "leap-assessment-api"


class ServiceJsonFormatter(jsonlogger.JsonFormatter):
    """JSON records tagged with the service name and an ISO-8601 UTC timestamp."""

    def __init__(self, *args, service: str = SERVICE_NAME, **kwargs):
        super().__init__(*args, **kwargs)
        self.service = service

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record['timestamp'] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['service'] = self.service
        log_record['logger'] = record.name
        log_record.pop('name', None)
        if record.levelno >= logging.WARNING:
            log_record['location'] = f"{record.module}:{record.lineno}"


def setup_logging(log_level_str: str = "INFO", service: str = SERVICE_NAME):
    """
    Configures structured JSON logging for the API process.

    Safe to call more than once: a second call only adjusts the level.
    """
    log_level = getattr(logging, log_level_str.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if any(isinstance(h.formatter, ServiceJsonFormatter) for h in root_logger.handlers):
        root_logger.debug(f"JSON logging already configured; level set to {logging.getLevelName(log_level)}")
        return

    log_handler = logging.StreamHandler(sys.stdout)
    log_handler.setFormatter(ServiceJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s', service=service))
    root_logger.addHandler(log_handler)
    root_logger.info(f"Structured JSON logging configured for {service} at {logging.getLevelName(log_level)}")
