"""Console and error-file logging."""

import datetime
import logging
import pathlib
from typing import Optional

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LazyFileHandler(logging.Handler):
    """Write errors to a log file that is only created when first needed."""

    def __init__(self, log_dir: pathlib.Path, level: int = logging.ERROR):
        super().__init__(level)
        self.log_dir = log_dir
        self.file_handler: Optional[logging.FileHandler] = None
        self.timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")

    def emit(self, record: logging.LogRecord) -> None:
        if self.file_handler is None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            error_log_file = self.log_dir / f"denim_errors_{self.timestamp}.log"
            self.file_handler = logging.FileHandler(error_log_file, encoding="utf-8")
            self.file_handler.setLevel(self.level)
            self.file_handler.setFormatter(self.formatter)
        self.file_handler.emit(record)

    def close(self) -> None:
        if self.file_handler:
            self.file_handler.close()
        super().close()


def setup_logging(
    log_dir: Optional[pathlib.Path] = None, level: int | str = logging.INFO
) -> None:
    """Send log records to the console and errors to a file in log_dir."""
    if log_dir is None:
        log_dir = pathlib.Path.cwd() / "logs"

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if root_logger.handlers:
        root_logger.handlers.clear()

    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    lazy_error_handler = LazyFileHandler(log_dir, level=logging.ERROR)
    lazy_error_handler.setFormatter(formatter)
    root_logger.addHandler(lazy_error_handler)
