"""
Tests for configuration and structured logging
"""

import json
import logging

from emi_engine.config import EmiEngineConfig, get_config, reload_config
from emi_engine.logging_config import JSONFormatter, setup_logging, get_logger, log_action


class ListHandler(logging.Handler):
    """Collects emitted records"""

    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestConfig:
    """Test environment-based configuration"""

    def test_defaults(self, monkeypatch):
        for name in ["EMI_DATABASE_URL", "EMI_MAX_TENURE_MONTHS", "EMI_DEFAULT_CURRENCY"]:
            monkeypatch.delenv(name, raising=False)

        config = EmiEngineConfig()
        assert config.database_url == "sqlite:///emi_engine.db"
        assert config.default_currency == "INR"
        assert config.max_tenure_months == 600
        assert config.enable_event_hash_chain is True
        assert config.log_format == "json"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("EMI_DATABASE_URL", "memory://")
        monkeypatch.setenv("EMI_MAX_TENURE_MONTHS", "360")
        monkeypatch.setenv("EMI_ENABLE_EVENT_HASH_CHAIN", "false")

        config = EmiEngineConfig()
        assert config.database_url == "memory://"
        assert config.max_tenure_months == 360
        assert config.enable_event_hash_chain is False

    def test_reload_config(self, monkeypatch):
        monkeypatch.setenv("EMI_API_PORT", "9100")
        try:
            assert reload_config().api_port == 9100
            assert get_config().api_port == 9100
        finally:
            monkeypatch.delenv("EMI_API_PORT")
            reload_config()


class TestLogging:
    """Test structured logging helpers"""

    def setup_method(self):
        self.logger = logging.getLogger("emi_engine.tests.capture")
        self.logger.setLevel(logging.INFO)
        self.handler = ListHandler()
        self.logger.addHandler(self.handler)

    def teardown_method(self):
        self.logger.removeHandler(self.handler)

    def test_log_action_fields(self):
        log_action(self.logger, "info", "Part-payment applied", loan_id="HOME1",
                   action="part_payment", correlation_id="req-1", extra={"amount": 300000})

        record = self.handler.records[0]
        assert record.getMessage() == "Part-payment applied"
        assert record.loan_id == "HOME1"
        assert record.action == "part_payment"
        assert record.correlation_id == "req-1"
        assert record.extra == {"amount": 300000}

    def test_log_action_respects_level(self):
        log_action(self.logger, "debug", "Not emitted", loan_id="HOME1")
        assert self.handler.records == []

    def test_json_formatter(self):
        log_action(self.logger, "warning", "Payment rejected on closed loan",
                   loan_id="HOME1", action="mark_paid", extra={"entry_id": "HOME1_11"})

        entry = json.loads(JSONFormatter().format(self.handler.records[0]))
        assert entry["level"] == "WARNING"
        assert entry["message"] == "Payment rejected on closed loan"
        assert entry["loan_id"] == "HOME1"
        assert entry["action"] == "mark_paid"
        assert entry["extra"] == {"entry_id": "HOME1_11"}
        assert "correlation_id" not in entry
        assert "timestamp" in entry

    def test_setup_logging(self):
        logger = setup_logging("DEBUG", logger_name="emi_engine.tests.setup")
        logger = setup_logging("DEBUG", logger_name="emi_engine.tests.setup", log_format="text")

        assert logger is get_logger("emi_engine.tests.setup")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)
        assert not logger.propagate
