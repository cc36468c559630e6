import json
import logging

from src.logging_config import CHATTY_LOGGERS, CustomJsonFormatter, setup_logging


def _record(**extra):
    record = logging.LogRecord("services.wizard.engine", logging.INFO, __file__, 42, "Wizard %s saved", ("w1",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_tags_service_and_context_ids():
    formatter = CustomJsonFormatter('%(timestamp)s %(level)s %(message)s')

    payload = json.loads(formatter.format(_record(wizard_id="w1", profile_id="p1")))

    assert payload["service"] == "topprestasjon"
    assert payload["level"] == "INFO"
    assert payload["message"] == "Wizard w1 saved"
    assert payload["wizard_id"] == "w1"
    assert payload["profile_id"] == "p1"
    assert payload["logger"] == "services.wizard.engine"
    assert payload["location"].endswith(":42")


def test_service_name_can_be_overridden():
    formatter = CustomJsonFormatter('%(message)s', service_name="topprestasjon-worker")
    assert json.loads(formatter.format(_record()))["service"] == "topprestasjon-worker"


def test_debug_level_keeps_chatty_libraries_at_info():
    setup_logging("DEBUG")
    try:
        assert logging.getLogger().level == logging.DEBUG
        for name in CHATTY_LOGGERS:
            assert logging.getLogger(name).level == logging.INFO
    finally:
        setup_logging("INFO")
