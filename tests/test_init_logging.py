import json
import logging
from logging.handlers import TimedRotatingFileHandler

from fastapi import FastAPI

from leadpilot.app_logging import LOGGER_NAME, JsonFormatter, init_logging


def _clear_handlers(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.handlers.clear()
    return logger


def test_init_logging_adds_handlers(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    app_logger = _clear_handlers(LOGGER_NAME)
    access_logger = _clear_handlers("uvicorn.access")

    app = FastAPI()
    init_logging(app)

    assert any(isinstance(h, TimedRotatingFileHandler) for h in app_logger.handlers)
    assert any(isinstance(h, TimedRotatingFileHandler) for h in access_logger.handlers)
    assert (tmp_path / "leadpilot.log").exists()
    assert app.logger is app_logger

    app_logger.handlers.clear()
    access_logger.handlers.clear()


def test_init_logging_replaces_existing_access_handlers(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    access_logger = _clear_handlers("uvicorn.access")

    stream_handler = logging.StreamHandler()
    access_logger.addHandler(stream_handler)

    init_logging()

    assert stream_handler not in access_logger.handlers
    assert any(isinstance(h, TimedRotatingFileHandler) for h in access_logger.handlers)
    access_logger.handlers.clear()


def test_json_formatter_includes_context_fields():
    record = logging.LogRecord("leadpilot.automation", logging.INFO, __file__, 1, "Rule matched", None, None)
    record.tenant_id = "t-1"
    record.rule_id = "welcome_sequence"

    data = json.loads(JsonFormatter().format(record))

    assert data["message"] == "Rule matched"
    assert data["tenant_id"] == "t-1"
    assert data["rule_id"] == "welcome_sequence"
    assert "lead_id" not in data
