from __future__ import annotations

import json
import logging
import re
import uuid

import pytest

from notesafe.core.auth.tokens import TokenMinter
from notesafe.core.config import LoggingConfig
from notesafe.core.logging import (
    SecureLogFilter,
    SecureRotatingFileHandler,
    configure_logging,
    configure_root_logger,
    get_secure_logger,
)


def _reset(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture()
def logger_name():
    name = f"notesafe-test-{uuid.uuid4().hex[:8]}"
    yield name
    _reset(logging.getLogger(name))


@pytest.fixture()
def package_logger():
    logger = logging.getLogger("notesafe")
    _reset(logger)
    yield logger
    _reset(logger)


def _flush(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        handler.flush()


def _sanitize(text: str) -> str:
    record = logging.LogRecord("t", logging.INFO, __file__, 1, text, None, None)
    SecureLogFilter().filter(record)
    return record.getMessage()


@pytest.mark.parametrize("message,secret", [
    ("login password=hunter2", "hunter2"),
    ("pwd: 'letmein'", "letmein"),
    ("cookie session=abcdef123456", "abcdef123456"),
    ("header csrf: xyz987", "xyz987"),
    ("private_key=AAAABBBB", "AAAABBBB"),
    ("stored $argon2id$v=19$m=65536,t=3,p=2$c2FsdHNhbHQ$a2V5a2V5 for bob", "a2V5a2V5"),
])
def test_filter_redacts(message, secret):
    sanitized = _sanitize(message)
    assert secret not in sanitized
    assert "[REDACTED]" in sanitized


def test_filter_redacts_bare_bearer_tokens():
    token = TokenMinter().generate_token()
    assert token not in _sanitize(f"issued {token} to client")


def test_filter_redacts_long_hex():
    digest = "ab" * 32
    assert digest not in _sanitize(f"digest {digest}")


def test_filter_keeps_ordinary_text():
    assert _sanitize("Session 0123456789ab renewed") == "Session 0123456789ab renewed"


def test_filter_sanitizes_args():
    record = logging.LogRecord(
        "t", logging.INFO, __file__, 1, "user said %s (%d)", ("password=hunter2", 3), None
    )
    SecureLogFilter().filter(record)
    assert "hunter2" not in record.getMessage()
    assert "(3)" in record.getMessage()


def test_additional_patterns():
    record = logging.LogRecord("t", logging.INFO, __file__, 1, "acct 1234-5678", None, None)
    SecureLogFilter(additional_patterns=[re.compile(r"\d{4}-\d{4}")]).filter(record)
    assert record.getMessage() == "acct [REDACTED]"


def test_file_logger_writes_redacted_lines(tmp_path, logger_name):
    logger = get_secure_logger(logger_name, log_dir=tmp_path, enable_console=False)
    logger.info("password=hunter2 accepted")
    _flush(logger)

    text = (tmp_path / f"{logger_name}.log").read_text()
    assert "accepted" in text
    assert "hunter2" not in text
    assert logger.propagate is False


def test_json_output(tmp_path, logger_name):
    logger = get_secure_logger(logger_name, log_dir=tmp_path, enable_console=False, enable_json=True)
    logger.warning("rejected %s", "token=abc123")
    _flush(logger)

    entry = json.loads((tmp_path / f"{logger_name}.log").read_text().splitlines()[-1])
    assert entry["level"] == "WARNING"
    assert entry["logger"] == logger_name
    assert "abc123" not in entry["message"]


def test_handlers_added_once(tmp_path, logger_name):
    first = get_secure_logger(logger_name, log_dir=tmp_path, enable_console=False)
    count = len(first.handlers)
    second = get_secure_logger(logger_name, log_dir=tmp_path, enable_console=False)
    assert second is first
    assert len(second.handlers) == count


def test_no_file_without_log_dir(logger_name):
    logger = get_secure_logger(logger_name, enable_console=True, enable_file=True)
    assert all(not isinstance(h, SecureRotatingFileHandler) for h in logger.handlers)


def test_rotating_handler_rejects_traversal(tmp_path):
    with pytest.raises(ValueError):
        SecureRotatingFileHandler(tmp_path / ".." / "escape.log")


def test_configure_logging_covers_module_loggers(tmp_path, package_logger):
    config = LoggingConfig(level="DEBUG", enable_console=False, enable_file=True)
    configure_logging(config, log_dir=tmp_path)

    token = TokenMinter().generate_token()
    logging.getLogger("notesafe.auth.sessions").info("validated %s", token)
    _flush(package_logger)

    text = (tmp_path / "notesafe.log").read_text()
    assert "validated" in text
    assert token not in text
    assert package_logger.level == logging.DEBUG


def test_configure_root_logger(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_root_logger(log_dir=tmp_path, level="WARNING", enable_console=False)
        logging.getLogger("elsewhere").warning("password=hunter2 seen")
        for handler in root.handlers:
            handler.flush()

        text = (tmp_path / "notesafe.log").read_text()
        assert "seen" in text
        assert "hunter2" not in text
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
