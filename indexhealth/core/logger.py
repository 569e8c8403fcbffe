"""
Logging setup for SQL Index Health

Console output goes to stderr so the scan report on stdout stays clean;
the rotating log file keeps everything down to DEBUG.
"""

import sys
import time
import logging
from pathlib import Path
from typing import Optional, Dict
from logging.handlers import TimedRotatingFileHandler

from indexhealth.core.constants import APP_NAME, LOG_FILE

CONSOLE_FORMAT = "%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s:%(lineno)d | %(message)s"


class ColoredFormatter(logging.Formatter):
    """Colors the level name for terminals"""

    LEVEL_COLORS: Dict[int, str] = {
        logging.DEBUG: '\033[2;37m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[1;31m',
    }
    RESET = '\033[0m'

    def __init__(self, fmt: str, datefmt: Optional[str] = None, stream=None):
        super().__init__(fmt, datefmt)
        stream = stream or sys.stderr
        self.enabled = hasattr(stream, 'isatty') and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if not self.enabled:
            return super().format(record)
        # The record is shared with the file handler
        colored = logging.makeLogRecord(record.__dict__)
        color = self.LEVEL_COLORS.get(record.levelno, '')
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


class IndexHealthLogger:
    """Owns the application logger and its handlers (one per process)"""

    _instance: Optional['IndexHealthLogger'] = None

    def __new__(cls):
        if cls._instance is None:
            instance = super().__new__(cls)
            instance.logger = logging.getLogger(APP_NAME.replace(' ', ''))
            instance.logger.setLevel(logging.DEBUG)
            instance.logger.propagate = False
            cls._instance = instance
        return cls._instance

    def _reset_handlers(self) -> None:
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

    def setup(
        self,
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        file_enabled: bool = True,
        retention_days: int = 7,
    ) -> logging.Logger:
        """
        (Re)configure handlers. Safe to call more than once; earlier
        handlers are closed first.
        """
        self._reset_handlers()

        console_level = logging.getLevelName(level.upper())
        if not isinstance(console_level, int):
            console_level = logging.INFO

        console = logging.StreamHandler(sys.stderr)
        console.setLevel(console_level)
        console.setFormatter(ColoredFormatter(CONSOLE_FORMAT, "%H:%M:%S"))
        self.logger.addHandler(console)

        if file_enabled and log_dir:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = TimedRotatingFileHandler(
                log_dir / LOG_FILE,
                when='midnight',
                backupCount=max(1, int(retention_days)),
                encoding='utf-8',
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
            self.logger.addHandler(file_handler)
        else:
            # Without a file, DEBUG records would only be formatted and dropped
            self.logger.setLevel(console_level)

        return self.logger

    def get_logger(self, name: Optional[str] = None) -> logging.Logger:
        return self.logger.getChild(name) if name else self.logger


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    file_enabled: bool = True,
    retention_days: int = 7,
) -> logging.Logger:
    """Configure application logging; called once by the entry point"""
    return IndexHealthLogger().setup(
        level=level,
        log_dir=log_dir,
        file_enabled=file_enabled,
        retention_days=retention_days,
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Child of the application logger, e.g. get_logger('services.catalog').
    Handlers are attached by setup_logging(); until then records are
    handled by logging's last-resort handler (WARNING and above).
    """
    return IndexHealthLogger().get_logger(name)


def log_exception(logger: logging.Logger, exc: Exception, message: str = "") -> None:
    """
    Log a failure. Application errors are expected and logged as one line
    (traceback at DEBUG); anything else gets the full traceback.
    """
    from indexhealth.core.exceptions import IndexHealthError

    text = f"{message}: {exc}" if message else str(exc)
    if isinstance(exc, IndexHealthError):
        logger.error(text)
        logger.debug("Traceback", exc_info=exc)
    else:
        logger.error(text, exc_info=exc)


class LogContext:
    """
    Logs start, completion and duration of a block

    Example:
        >>> with LogContext(logger, "Scanning AdventureWorks"):
        ...     service.scan(criteria, policy)
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self._started = 0.0

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self._started

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.log(self.level, f"{self.operation}...")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.logger.error(f"{self.operation} failed after {self.elapsed:.2f}s: {exc_val}")
        else:
            self.logger.log(self.level, f"{self.operation} done in {self.elapsed:.2f}s")
        return False
