import json
import logging

from chat_core.config.settings import settings
from chat_core.infrastructure.logging.logger import setup_logger
from chat_core.transport.decoder import SSEDecoder


def test_setup_logger_uses_configured_level(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "log_dir", str(tmp_path))
    log = setup_logger("chat_core_debug_check", "debug")
    try:
        log.debug("Dropping unterminated SSE line", extra={"extra": {"size": 3}})
        for handler in log.handlers:
            handler.flush()
        lines = (tmp_path / "chat_core.log").read_text(encoding="utf-8").splitlines()
        record = json.loads(lines[-1])
        assert record["level"] == "DEBUG"
        assert record["size"] == 3
    finally:
        for handler in list(log.handlers):
            handler.close()
            log.removeHandler(handler)


def test_setup_logger_defaults_to_info(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "log_dir", str(tmp_path))
    monkeypatch.setattr(settings, "log_level", "INFO")
    log = setup_logger("chat_core_info_check")
    try:
        assert not log.isEnabledFor(logging.DEBUG)
        assert log.isEnabledFor(logging.INFO)
    finally:
        for handler in list(log.handlers):
            handler.close()
            log.removeHandler(handler)


def test_decoder_reports_dropped_line_at_debug(caplog):
    caplog.set_level(logging.DEBUG, logger="chat_core")
    decoder = SSEDecoder()
    assert decoder.feed("data: partial") == []
    decoder.close()
    assert any(r.levelno == logging.DEBUG and "unterminated" in r.getMessage() for r in caplog.records)
