"""Logging configuration for Shellport backend

Log files live in `logging.directory` (relative to the instance directory):
- debug.log: DEBUG+ from shellport.* only (tmux argv, PTY lifecycle, exec)
- info.log: INFO+ from all loggers, including uvicorn
- error.log: ERROR+ from all loggers

Rotation and retention come from LoggingSettings. The console handler, when
enabled, follows `logging.level`.
"""

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import NamedTuple

from .config import LoggingSettings

LOG_FORMAT = '%(asctime)s.%(msecs)03d - %(levelname)s - %(name)s:%(lineno)d - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ProjectOnlyFilter(logging.Filter):
    """Filter to only allow logs from shellport.* modules"""

    def filter(self, record):
        return record.name.startswith('shellport.')


class LogFile(NamedTuple):
    filename: str
    level: int
    project_only: bool


LOG_FILES = (
    LogFile("debug.log", logging.DEBUG, True),
    LogFile("info.log", logging.INFO, False),
    LogFile("error.log", logging.ERROR, False),
)


def resolve_log_dir(instance_path: Path, settings: LoggingSettings) -> Path:
    directory = Path(settings.directory).expanduser()
    if not directory.is_absolute():
        directory = instance_path / directory
    return directory


def setup_logging(instance_path: Path, settings: LoggingSettings) -> Path:
    """Install the file and console handlers on the root logger

    Existing root handlers are replaced, so calling this twice (e.g. a second
    app in the same process) does not duplicate lines.

    Args:
        instance_path: Path to the Shellport instance directory
        settings: Logging section of the instance settings

    Returns:
        The directory the log files are written to
    """
    logs_dir = resolve_log_dir(instance_path, settings)
    logs_dir.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    for log_file in LOG_FILES:
        handler = TimedRotatingFileHandler(
            filename=logs_dir / log_file.filename,
            when=settings.rotate_when,
            backupCount=settings.backup_count,
            encoding='utf-8',
        )
        handler.setLevel(log_file.level)
        handler.setFormatter(formatter)
        if log_file.project_only:
            handler.addFilter(ProjectOnlyFilter())
        root_logger.addHandler(handler)

    if settings.console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(settings.level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    logging.getLogger(__name__).info(
        f"Logging initialized: dir={logs_dir}, level={settings.level}, "
        f"rotate={settings.rotate_when}, keep={settings.backup_count}"
    )
    return logs_dir
