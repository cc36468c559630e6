import logging
import sys
from typing import Optional

from pythonjsonlogger import jsonlogger

SERVICE_NAME = "topprestasjon"

# Libraries that log every file event or SQL statement at DEBUG.
CHATTY_LOGGERS = ("watchdog", "aiosqlite", "sqlalchemy.engine")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON lines tagged with the service name.

    Ids passed through `extra` (`profile_id`, `wizard_id`, `backend`) come out
    as top-level fields, so a single profile or wizard can be followed across
    the store, the feed and the routers.
    """

    def __init__(self, *args, service_name: str = SERVICE_NAME, **kwargs):
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        if not log_record.get('timestamp'):
            log_record['timestamp'] = record.created
        if log_record.get('level'):
            log_record['level'] = log_record['level'].upper()
        else:
            log_record['level'] = record.levelname
        log_record.setdefault('service', self.service_name)
        log_record['logger'] = record.name
        log_record['location'] = f"{record.module}:{record.lineno}"


def setup_logging(log_level_str: str = "INFO", service_name: Optional[str] = None):
    """
    Configures structured JSON logging for the service.

    Safe to call more than once; a second call only adjusts the level. Chatty
    third-party loggers never drop below INFO, even when the service runs at DEBUG.
    """
    log_level = getattr(logging, log_level_str.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.INFO))

    if not any(isinstance(h, logging.StreamHandler) and isinstance(h.formatter, CustomJsonFormatter) for h in root_logger.handlers):
        log_handler = logging.StreamHandler(sys.stdout)
        formatter = CustomJsonFormatter('%(timestamp)s %(level)s %(message)s', service_name=service_name or SERVICE_NAME)
        log_handler.setFormatter(formatter)
        root_logger.addHandler(log_handler)
        root_logger.info(f"Structured JSON logging configured with level: {logging.getLevelName(log_level)}")
    else:
        root_logger.info(f"Structured JSON logging already configured. Current level: {logging.getLevelName(root_logger.getEffectiveLevel())}")
