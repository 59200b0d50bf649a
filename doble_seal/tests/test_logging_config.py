"""Tests for the JSON log formatter."""

import json
import logging

from doble_seal.lib.logging_config import LOGGER, SealJsonFormatter


def _format(logger_name: str, message: str) -> dict:
    formatter = SealJsonFormatter(
        fmt="%(timestamp)s %(levelname)s %(funcName)s %(lineno)d %(message)s",
        timestamp=True,
    )
    record = logging.LogRecord(logger_name, logging.WARNING, __file__, 10, message, None, None)
    return json.loads(formatter.format(record))


class TestSealJsonFormatter:
    """Tests for SealJsonFormatter."""

    def test_keeps_only_known_fields(self) -> None:
        payload = _format("doble_seal.lib.ca_store", "CA expires soon")
        assert set(payload) <= {"timestamp", "level", "component", "message", "exc_info", "funcName", "lineno"}
        assert payload["level"] == "WARNING"
        assert payload["message"] == "CA expires soon"

    def test_component_is_relative_to_package(self) -> None:
        assert _format("doble_seal.lib.hosts_manager", "x")["component"] == "lib.hosts_manager"
        assert _format("doble_seal", "x")["component"] == ""

    def test_package_logger_has_single_json_handler(self) -> None:
        """pytest adds its own capture handlers; only one may emit JSON."""
        assert LOGGER.name == "doble_seal"
        json_handlers = [h for h in LOGGER.handlers if isinstance(h.formatter, SealJsonFormatter)]
        assert len(json_handlers) == 1
        assert not LOGGER.propagate
