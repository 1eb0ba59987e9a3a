"""Logging configuration for host applications embedding the engine."""

import logging
import logging.handlers
from pathlib import Path
from typing import Any


def _file_handler(cfg: dict[str, Any], level: int) -> logging.Handler:
    log_path = Path(cfg["file"])
    max_bytes = int(cfg.get("max_bytes", 10 * 1024 * 1024))
    backup_count = int(cfg.get("backup_count", 3))
    log_path.parent.mkdir(parents=True, exist_ok=True)
    h = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    h.setLevel(level)
    return h


def _console_handler(level: int) -> logging.Handler:
    h = logging.StreamHandler()
    h.setLevel(level)
    return h


def setup_logging(settings: dict[str, Any], logger_name: str = "") -> logging.Logger:
    """Configure a logger (root by default) from settings["logging"].

    Rotating file handler when logging.file is set, console handler when
    logging.log_to_console is true. Existing handlers are replaced.
    """
    cfg = settings.get("logging", {})
    level_name = str(cfg.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    target = logging.getLogger(logger_name)
    target.setLevel(level)
    for h in target.handlers[:]:
        target.removeHandler(h)
    handlers: list[logging.Handler] = []
    if cfg.get("file"):
        handlers.append(_file_handler(cfg, level))
    if cfg.get("log_to_console", True):
        handlers.append(_console_handler(level))
    for h in handlers:
        h.setFormatter(formatter)
        target.addHandler(h)
    return target
