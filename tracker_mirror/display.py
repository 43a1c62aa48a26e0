"""
Console output and logging for the tracker mirror.

Log records go to a themed rich console and, optionally, to a rotating log
file. Rich markup stays off: logged tracker records contain square brackets
(sprint descriptors, JQL).
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, cast

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.theme import Theme

if TYPE_CHECKING:
    import os

    from tracker_mirror.models.sync_results import SyncResult

LOGGER_NAME = "tracker_mirror"

# Between INFO (20) and WARNING (30)
NOTICE_LEVEL = 21
SUCCESS_LEVEL = 25

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 5


class ExtendedLogger(Protocol):
    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def info(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def notice(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def success(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def error(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None: ...
    def critical(self, msg: str, *args: Any, **kwargs: Any) -> None: ...


LOGGING_THEME = Theme(
    {
        "logging.level.debug": "dim",
        "logging.level.info": "blue",
        "logging.level.notice": "cyan",
        "logging.level.success": "bold green",
        "logging.level.warning": "bold yellow",
        "logging.level.error": "bold red",
        "logging.level.critical": "bold red on white",
    }
)

console = Console(theme=LOGGING_THEME)

rich_handler = RichHandler(
    console=console,
    rich_tracebacks=True,
    tracebacks_show_locals=False,
    markup=False,
    show_path=False,
    log_time_format="[%X]",
)


def _numeric_level(level: str) -> int:
    match level.upper():
        case "NOTICE":
            return NOTICE_LEVEL
        case "SUCCESS":
            return SUCCESS_LEVEL
        case name:
            return getattr(logging, name, logging.INFO)


def _file_handler(log_file: "str | os.PathLike[str]", level: int) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    handler.setLevel(level)
    return handler


def _notice(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
    if self.isEnabledFor(NOTICE_LEVEL):
        self._log(NOTICE_LEVEL, message, args, stacklevel=2, **kwargs)


def _success(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
    if self.isEnabledFor(SUCCESS_LEVEL):
        self._log(SUCCESS_LEVEL, message, args, stacklevel=2, **kwargs)


def configure_logging(
    level: str = "INFO", log_file: "str | os.PathLike[str] | None" = None
) -> ExtendedLogger:
    """
    Configure rich console logging and an optional rotating log file.

    Args:
        level: Logging level name, including the custom NOTICE and SUCCESS
        log_file: Optional path to a log file; its directory is created

    Returns:
        The ``tracker_mirror`` logger with ``notice()`` and ``success()``
    """
    logging.addLevelName(NOTICE_LEVEL, "NOTICE")
    logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")
    setattr(logging.Logger, "notice", _notice)
    setattr(logging.Logger, "success", _success)

    numeric_level = _numeric_level(level)
    handlers: list[logging.Handler] = [rich_handler]
    if log_file:
        handlers.append(_file_handler(log_file, numeric_level))

    logging.basicConfig(level=numeric_level, format="%(message)s", handlers=handlers, force=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.debug("Logging configured at %s", logging.getLevelName(numeric_level))
    return cast(ExtendedLogger, logger)


def render_sync_summary(result: "SyncResult") -> Table:
    """Print the end-of-run summary table.

    Returns:
        The printed table
    """
    table = Table(title="Tracker synchronization", header_style="bold")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Issues fetched", str(result.total_count))
    table.add_row("Issues processed", str(result.success_count))
    table.add_row("Issues skipped", str(result.failed_count), style="yellow" if result.failed_count else None)
    table.add_row("Current sprint issues", str(result.current_sprint_count))
    table.add_row("Duration (s)", f"{result.duration_seconds:.1f}")
    console.print(table)
    return table
