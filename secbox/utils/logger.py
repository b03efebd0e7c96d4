"""
Operator logger factory.
Console on stderr (stdout carries relayed command output), optional
RotatingFileHandler: 10MB max, 3 backups.
"""
from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

_FORMAT = logging.Formatter(
    fmt="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)


def get_logger(name: str, log_dir: Path | None = None, level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger  # already configured

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    ch = logging.StreamHandler(sys.stderr)
    ch.setFormatter(_FORMAT)
    logger.addHandler(ch)

    if log_dir is not None:
        attach_file_handler(logger, log_dir)

    logger.propagate = False
    return logger


def attach_file_handler(logger: logging.Logger, log_dir: Path) -> None:
    log_dir = Path(log_dir)
    target = log_dir / f"{logger.name.replace('.', '_')}.log"
    for h in logger.handlers:
        if isinstance(h, logging.handlers.RotatingFileHandler) and Path(h.baseFilename) == target.resolve():
            return
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.handlers.RotatingFileHandler(
        filename=target,
        maxBytes=10 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    fh.setFormatter(_FORMAT)
    logger.addHandler(fh)


def set_level(level: str) -> None:
    """Apply a level to every secbox logger created so far."""
    lvl = getattr(logging, level.upper(), logging.INFO)
    for name, logger in logging.root.manager.loggerDict.items():
        if name.startswith("secbox") and isinstance(logger, logging.Logger):
            logger.setLevel(lvl)
