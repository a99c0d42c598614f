"""CLI utility functions"""

import os
from pathlib import Path
from typing import Optional

INSTANCE_FLAG = ".shellport_instance"
PID_FILE = ".shellport.pid"


def get_instance_path(path: str | None = None) -> Path:
    """Get instance path, default to ~/.shellport

    Args:
        path: Custom path (relative or absolute), None for default

    Returns:
        Resolved absolute path
    """
    if path is None:
        return Path.home() / ".shellport"
    return Path(path).expanduser().resolve()


def is_initialized(instance_path: Path) -> bool:
    """Check if instance is initialized

    Args:
        instance_path: Instance directory path

    Returns:
        True if .shellport_instance exists
    """
    return (instance_path / INSTANCE_FLAG).exists()


def get_pid_file(instance_path: Path) -> Path:
    """Get PID file path"""
    return instance_path / PID_FILE


def read_pid(instance_path: Path) -> Optional[int]:
    """Read the server PID, None if the PID file is missing or unreadable"""
    pid_file = get_pid_file(instance_path)
    try:
        return int(pid_file.read_text().strip())
    except (FileNotFoundError, ValueError):
        return None


def pid_alive(pid: int) -> bool:
    """Check whether a process with this PID exists"""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def is_running(instance_path: Path) -> bool:
    """Check if instance is running

    A PID file whose process no longer exists is stale and is removed.

    Args:
        instance_path: Instance directory path

    Returns:
        True if the PID file names a live process
    """
    pid = read_pid(instance_path)
    if pid is None:
        return False
    if not pid_alive(pid):
        get_pid_file(instance_path).unlink(missing_ok=True)
        return False
    return True
