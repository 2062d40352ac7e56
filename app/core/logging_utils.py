"""
Configuração de logging (JSON estruturado ou texto).

Os módulos continuam usando `logging.getLogger(__name__)`; no formato JSON
o handler do root renderiza cada registro com o JSONRenderer do structlog.
"""
import logging
import sys

import structlog

from app.core.config import settings

TEXT_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'


def build_json_formatter() -> structlog.stdlib.ProcessorFormatter:
    """Formatter que emite uma linha JSON por registro (event, level, logger, timestamp)."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
    )


def setup_logging(level: str = None, fmt: str = None) -> None:
    """
    Configura o root logger.

    Args:
        level: Nível de log (default: settings.LOG_LEVEL)
        fmt: 'json' ou 'text' (default: settings.LOG_FORMAT)
    """
    level = (level or settings.LOG_LEVEL).upper()
    fmt = fmt or settings.LOG_FORMAT

    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(build_json_formatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # httpx loga cada requisição em INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
