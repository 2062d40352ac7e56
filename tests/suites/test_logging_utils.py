"""
Testes da configuração de logging.
"""

import json
import logging
import sys

from app.core.logging_utils import build_json_formatter, setup_logging


def _record(message, level=logging.WARNING, exc_info=None):
    return logging.LogRecord(
        name="app.services.discovery.dispatcher",
        level=level,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=exc_info,
    )


def test_json_formatter_emits_one_json_object_per_record():
    line = build_json_formatter().format(_record("⚠️ [Quota] Limite diário atingido"))

    payload = json.loads(line)
    assert payload["event"] == "⚠️ [Quota] Limite diário atingido"
    assert payload["level"] == "warning"
    assert payload["logger"] == "app.services.discovery.dispatcher"
    assert payload["timestamp"].endswith("Z")


def test_json_formatter_renders_exception():
    try:
        raise ValueError("boom")
    except ValueError:
        line = build_json_formatter().format(_record("falhou", logging.ERROR, sys.exc_info()))

    payload = json.loads(line)
    assert "ValueError: boom" in payload["exception"]


def test_setup_logging_installs_single_root_handler():
    root = logging.getLogger()
    previous_handlers, previous_level = root.handlers[:], root.level
    try:
        setup_logging(level="debug", fmt="json")

        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
        assert json.loads(root.handlers[0].format(_record("ok")))["event"] == "ok"

        setup_logging(level="INFO", fmt="text")
        assert "| INFO     |" in root.handlers[0].format(_record("ok", logging.INFO))
    finally:
        root.handlers = previous_handlers
        root.setLevel(previous_level)
