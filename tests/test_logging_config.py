"""
Tests for logging setup.
"""

import logging

from query_scrubber.logging_config import setup_logging


def test_level_from_environment(monkeypatch):
    """Test the level is read from the environment."""
    monkeypatch.setenv("QUERY_SCRUBBER_LOG_LEVEL", "debug")

    setup_logging(force=True)

    assert logging.getLogger("query_scrubber").level == logging.DEBUG
    assert logging.getLogger("openai").level == logging.WARNING


def test_unknown_level_falls_back_to_info(monkeypatch):
    """Test an unknown level falls back to INFO."""
    monkeypatch.setenv("QUERY_SCRUBBER_LOG_LEVEL", "chatty")

    setup_logging(force=True)

    assert logging.getLogger("query_scrubber").level == logging.INFO


def test_package_records_reach_root_handlers(monkeypatch, caplog):
    """Verify package records propagate to the root logger."""
    monkeypatch.delenv("QUERY_SCRUBBER_LOG_LEVEL", raising=False)
    setup_logging(force=True)

    with caplog.at_level(logging.INFO):
        logging.getLogger("query_scrubber.core.job").info("hello from the job")

    assert "hello from the job" in caplog.text
