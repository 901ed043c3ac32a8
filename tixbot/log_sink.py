"""
Shell log sink

Append-only, timestamped, leveled record of shell, supervisor and gateway
events. One line per event:

    [2026-10-18T07:56:01.123Z] [info] Wrote gateway config: /path/openclaw.json

The sink is a logging.FileHandler attached to the "tixbot" logger, so module
loggers under the tixbot package (logging.getLogger(__name__)) land in the
same file. It is created once at startup and never rotated in-process.
"""

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Union

SINK_LOGGER_NAME = "tixbot"

_LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def parse_level(level: Union[str, int]) -> int:
    """Map "info"/"warn"/"error"/"debug" (or a logging constant) to a logging level"""
    if isinstance(level, int):
        return level
    try:
        return _LEVELS[level.lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {level}") from None


class SinkFormatter(logging.Formatter):
    """Formats records as `[<ISO8601>] [<level>] <message>`"""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        stamp = ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        level = _LEVEL_NAMES.get(record.levelno, record.levelname.lower())
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return f"[{stamp}] [{level}] {message}"


class LogSink:
    """
    File-backed log sink for the shell

    Usage:
        log = LogSink(state_dir / "tixbot.log")
        log.write("info", "tixbot starting...")
        log.error("gateway exited: code=1 signal=null")
    """

    def __init__(
        self,
        log_path: Union[str, Path],
        level: Union[str, int] = "info",
        logger_name: str = SINK_LOGGER_NAME,
    ):
        self.path = Path(log_path)
        self.logger = logging.getLogger(logger_name)
        self.logger.setLevel(parse_level(level))
        self._handler = self._ensure_file_handler()

    def _ensure_file_handler(self) -> logging.FileHandler:
        """Attach the file handler once per path"""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        for handler in self.logger.handlers:
            if isinstance(handler, logging.FileHandler) and handler.baseFilename == os.path.abspath(self.path):
                return handler

        file_handler = logging.FileHandler(self.path, mode='a', encoding='utf-8')
        file_handler.setFormatter(SinkFormatter())
        file_handler.setLevel(logging.DEBUG)
        self.logger.addHandler(file_handler)
        return file_handler

    def write(self, level: Union[str, int], message: str) -> None:
        """Append one event to the log"""
        self.logger.log(parse_level(level), message)
        self._handler.flush()

    def debug(self, message: str) -> None:
        self.write(logging.DEBUG, message)

    def info(self, message: str) -> None:
        self.write(logging.INFO, message)

    def warn(self, message: str) -> None:
        self.write(logging.WARNING, message)

    def error(self, message: str) -> None:
        self.write(logging.ERROR, message)

    def close(self) -> None:
        """Detach and close the file handler (shell quit)"""
        self.logger.removeHandler(self._handler)
        self._handler.close()

