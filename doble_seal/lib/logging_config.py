"""JSON logging for the doble-seal commands and services."""

import logging
import os

from pythonjsonlogger import jsonlogger

LOGGER_NAME = "doble_seal"
ENV_LOG_LEVEL = "DOBLE_SEAL_LOG_LEVEL"

FIELDS = ("timestamp", "level", "component", "message", "exc_info", "funcName", "lineno")


class SealJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per line with a fixed, short field set.

    ``component`` is the logger name below ``doble_seal`` (``lib.ca_store``,
    ``lib.hosts_manager``...), empty for the package logger itself.
    """

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record["level"] = log_record.pop("levelname", record.levelname)
        log_record["component"] = record.name.removeprefix(LOGGER_NAME).lstrip(".")

        for key in [key for key in log_record if key not in FIELDS]:
            log_record.pop(key)


def _level_from_env() -> int:
    name = os.environ.get(ENV_LOG_LEVEL, "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _setup_logger() -> logging.Logger:
    """Attach the JSON handler to the package logger once.

    Library modules log through ``logging.getLogger(__name__)``; those loggers
    are children of ``doble_seal`` and reach this handler by propagation.
    """
    logger = logging.getLogger(LOGGER_NAME)

    if any(isinstance(h.formatter, SealJsonFormatter) for h in logger.handlers):
        return logger

    handler = logging.StreamHandler()
    handler.setFormatter(
        SealJsonFormatter(
            fmt="%(timestamp)s %(levelname)s %(funcName)s %(lineno)d %(message)s",
            timestamp=True,
        )
    )

    logger.setLevel(_level_from_env())
    logger.addHandler(handler)
    logger.propagate = False

    return logger


LOGGER = _setup_logger()
