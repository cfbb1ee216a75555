"""
Settings, structured logging and metrics export tests
"""

import json
import logging
import sys
from datetime import timedelta

from visitor_trust.config import Settings
from visitor_trust.engines.policy import ScoringPolicy
from visitor_trust.utils.logging import JSONFormatter, configure_logging
from visitor_trust.utils.metrics import export_metrics, record_session_analysis


class TestSettings:
    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("IP_FREQUENCY_WINDOW_SECONDS", "120")
        monkeypatch.setenv("IP_FREQUENCY_THRESHOLD", "10")
        monkeypatch.setenv("ENV", "production")

        settings = Settings(_env_file=None)

        assert settings.is_production
        assert settings.IP_FREQUENCY_THRESHOLD == 10

        policy = ScoringPolicy.from_settings(settings)
        assert policy.ip_frequency_window == timedelta(minutes=2)
        assert policy.ip_frequency_threshold == 10

    def test_policy_overrides_from_settings(self):
        policy = ScoringPolicy.from_settings(
            Settings(_env_file=None), min_chrome_version=100
        )
        assert policy.min_chrome_version == 100
        assert policy.ip_frequency_threshold == 50


class TestJSONFormatter:
    def test_context_fields_included(self):
        formatter = JSONFormatter(service="visitor-trust", environment="testing")
        record = logging.LogRecord(
            name="visitor_trust.engines.trust_engine",
            level=logging.INFO,
            pathname=__file__,
            lineno=10,
            msg="Visitor classified: %s",
            args=("bot",),
            exc_info=None,
        )
        record.session_id = "sess-1"
        record.total_score = 37

        data = json.loads(formatter.format(record))

        assert data["message"] == "Visitor classified: bot"
        assert data["service"] == "visitor-trust"
        assert data["level"] == "INFO"
        assert data["session_id"] == "sess-1"
        assert data["total_score"] == 37
        assert "visitor_id" not in data

    def test_exception_details(self):
        formatter = JSONFormatter()
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                "visitor_trust", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )

        data = json.loads(formatter.format(record))
        assert data["error"]["type"] == "ValueError"
        assert data["error"]["message"] == "boom"


class TestConfigureLogging:
    def test_json_and_text_formats(self):
        logger = logging.getLogger("visitor_trust")
        saved = (logger.handlers[:], logger.level, logger.propagate)
        try:
            configure_logging(Settings(_env_file=None, LOG_FORMAT="json", LOG_LEVEL="warning"))
            assert isinstance(logger.handlers[0].formatter, JSONFormatter)
            assert logger.level == logging.WARNING

            configure_logging(Settings(_env_file=None, LOG_FORMAT="text"))
            assert len(logger.handlers) == 1
            assert not isinstance(logger.handlers[0].formatter, JSONFormatter)
        finally:
            logger.handlers, logger.propagate = saved[0], saved[2]
            logger.setLevel(saved[1])


def test_export_metrics():
    record_session_analysis("human")
    output = export_metrics()
    assert b'session_analyses_total{result="human"}' in output
