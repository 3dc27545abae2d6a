"""Loguru setup for the panel service.

Every record carries ``extra.request_id`` ("-" outside a request). Records
bound with ``request_log=True`` additionally go to the partner request trace
when that file is enabled.
"""

import logging
import sys
from pathlib import Path

from loguru import logger

from panel_bridge.runtime.config.config_data import ConfigData, LoggingConfig

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "[<cyan>{extra[request_id]}</cyan>] | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
TRACE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} [{extra[request_id]}] {message}"

# stdlib loggers that would otherwise flood the console
STDLIB_LEVELS = {
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "httpx": logging.WARNING,
    "uvicorn": logging.INFO,
    "uvicorn.error": logging.INFO,
    "uvicorn.access": logging.CRITICAL,
}


class InterceptHandler(logging.Handler):
    """Forward stdlib ``logging`` records into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # log_requests already writes one line per request
        if record.name == "uvicorn.access":
            return
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=2, exception=record.exc_info).bind(logger_name=record.name).log(
            level, record.getMessage()
        )


def is_request_trace(record) -> bool:
    return bool(record["extra"].get("request_log", False))


def _prepare(path_value: str) -> str:
    path = Path(path_value)
    path.parent.mkdir(parents=True, exist_ok=True)
    return str(path)


def _add_application_file(cfg: LoggingConfig, verbose: bool) -> None:
    as_json = cfg.format == "json"
    logger.add(
        _prepare(cfg.file),
        level=cfg.level,
        # serialize=True writes the whole record; the format only feeds "text"
        format="{message}" if as_json else CONSOLE_FORMAT,
        serialize=as_json,
        rotation=f"{cfg.max_size_mb} MB",
        retention=cfg.backup_count,
        compression="zip",
        enqueue=True,
        backtrace=verbose,
        diagnose=verbose,
    )


def _add_request_trace(cfg: LoggingConfig) -> None:
    logger.add(
        _prepare(cfg.request_log_file),
        level="DEBUG",
        format=TRACE_FORMAT,
        filter=is_request_trace,
        rotation=f"{cfg.max_size_mb} MB",
        retention=cfg.backup_count,
        enqueue=True,
    )


def _route_stdlib_logging() -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in list(logging.root.manager.loggerDict):
        existing = logging.getLogger(name)
        existing.handlers = []
        existing.propagate = True
    for name, level in STDLIB_LEVELS.items():
        logging.getLogger(name).setLevel(level)


def configure_logging(main_config: ConfigData) -> None:
    """Replace all Loguru sinks according to ``main_config.logging``.

    Tracebacks show local variables everywhere except production.
    """
    cfg = main_config.logging
    environment = main_config.app.environment
    verbose = environment != "production"

    logger.remove()
    logger.configure(
        extra={"request_id": "-"},
        patcher=lambda record: record["extra"].setdefault("request_id", "-"),
    )

    logger.add(
        sys.stderr,
        level=cfg.level,
        format=CONSOLE_FORMAT,
        colorize=True,
        backtrace=verbose,
        diagnose=verbose,
    )
    if cfg.file:
        _add_application_file(cfg, verbose)
    if cfg.request_logging_enabled:
        _add_request_trace(cfg)

    _route_stdlib_logging()

    logger.info(
        f"Logging configured: level={cfg.level} format={cfg.format} file={cfg.file} "
        f"request_trace={cfg.request_log_file if cfg.request_logging_enabled else None} "
        f"environment={environment}"
    )
