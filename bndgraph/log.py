"""Logging setup driven by an explicit verbosity configuration."""

from __future__ import annotations

import enum
import logging

import click
from pydantic import BaseModel

LOG = 15
logging.addLevelName(LOG, "LOG")

ROOT_LOGGER = "bndgraph"


class Verbosity(enum.IntEnum):
    OFF = 0
    INFO = 1
    LOG = 2
    DEBUG = 3


_LEVELS = {
    Verbosity.OFF: logging.WARNING,
    Verbosity.INFO: logging.INFO,
    Verbosity.LOG: LOG,
    Verbosity.DEBUG: logging.DEBUG,
}


class LogConfig(BaseModel):
    verbosity: Verbosity = Verbosity.OFF
    quiet: bool = False

    @property
    def level(self) -> int:
        if self.quiet:
            return logging.ERROR
        return _LEVELS[self.verbosity]


def verbosity_from_count(count: int) -> Verbosity:
    """Map repeated ``-v`` flags onto a verbosity (``-vvv`` and beyond is DEBUG)."""
    return Verbosity(max(0, min(count, Verbosity.DEBUG)))


class ClickHandler(logging.Handler):
    """Route log records to stderr through click, styled by severity."""

    _COLORS = {
        logging.ERROR: "red",
        logging.WARNING: "yellow",
    }

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            if record.levelno >= logging.WARNING:
                msg = click.style(
                    f"{record.levelname}: {msg}",
                    fg=self._COLORS.get(min(record.levelno, logging.ERROR), "yellow"),
                )
            click.echo(msg, err=True)
        except Exception:
            self.handleError(record)


def configure_logging(config: LogConfig) -> logging.Logger:
    """Apply *config* to the package logger and return it."""
    log = logging.getLogger(ROOT_LOGGER)
    for handler in list(log.handlers):
        if isinstance(handler, ClickHandler):
            log.removeHandler(handler)
    handler = ClickHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    log.addHandler(handler)
    log.setLevel(config.level)
    return log
