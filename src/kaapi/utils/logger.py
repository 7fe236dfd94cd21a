"""KAAPI logging: Rich console + daily-rotated file logs."""

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

console = Console()

# Log directory: ~/.kaapi/logs/
_LOG_DIR = Path.home() / ".kaapi" / "logs"

_FILE_FORMAT = "%(asctime)s [%(levelname)-8s] [%(name)-24s] %(message)s"
_FILE_DATE_FMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    verbose: bool = False,
    log_level: str = "INFO",
    log_dir: Path | None = None,
) -> Path:
    """Configure logging with Rich console output and daily file rotation.

    Args:
        verbose: If True, sets log level to DEBUG.
        log_level: Default log level string (e.g. "INFO", "WARNING").
        log_dir: Override for the log directory (defaults to ~/.kaapi/logs).

    Returns:
        Path of the active log file.
    """
    level = logging.DEBUG if verbose else getattr(logging, log_level.upper(), logging.INFO)

    directory = log_dir or _LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers to avoid duplicates on reconfigure
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    rich_handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        show_path=verbose,
        show_level=True,
        show_time=True,
    )
    rich_handler.setLevel(level)
    root.addHandler(rich_handler)

    log_file = directory / "kaapi.log"
    file_handler = TimedRotatingFileHandler(
        filename=str(log_file),
        when="midnight",
        interval=1,
        backupCount=7,
        encoding="utf-8",
    )
    file_handler.suffix = "%Y-%m-%d"
    file_handler.setLevel(logging.DEBUG)  # Always log DEBUG to file
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATE_FMT))
    root.addHandler(file_handler)

    for name in ("httpx", "httpcore", "google_genai", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging configured: level=%s, file=%s, verbose=%s",
        logging.getLevelName(level), log_file, verbose,
    )
    return log_file
