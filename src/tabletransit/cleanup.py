"""
Local scratch space for spooled CSV data.

Each process spools under ``<scratch root>/pid_<pid>/`` and removes that
directory when its command finishes. Before a transfer starts, files left
behind by processes that died are expired and the total size is checked
against the configured limits.

Environment Variables:
    TABLETRANSIT_SCRATCH_DIR: Scratch root (default ``<system temp>/tabletransit``)
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
from collections.abc import Iterator
from pathlib import Path
from typing import Optional

from .config.settings import TempConfig

logger = logging.getLogger(__name__)

GB = 1024 ** 3


def scratch_root() -> Path:
    """Directory shared by every tabletransit process on this machine."""
    override = os.getenv("TABLETRANSIT_SCRATCH_DIR")
    return Path(override) if override else Path(tempfile.gettempdir()) / "tabletransit"


def process_scratch_dir() -> Path:
    """This process's own scratch directory, created on first use."""
    path = scratch_root() / f"pid_{os.getpid()}"
    path.mkdir(parents=True, exist_ok=True)
    return path


def _scratch_files(root: Path) -> Iterator[tuple[Path, os.stat_result]]:
    for item in root.rglob("*"):
        try:
            if item.is_file():
                yield item, item.stat()
        except OSError:
            # Removed by its owner while we were walking
            continue


def scratch_size_bytes() -> int:
    root = scratch_root()
    if not root.exists():
        return 0
    return sum(st.st_size for _, st in _scratch_files(root))


def expire_scratch_files(max_age_hours: float) -> int:
    """
    Delete scratch files last modified more than ``max_age_hours`` ago.

    Empty ``pid_*`` directories are removed afterwards.

    Returns:
        Number of files deleted
    """
    root = scratch_root()
    if not root.exists():
        return 0

    cutoff = time.time() - max_age_hours * 3600
    expired = 0
    for path, st in list(_scratch_files(root)):
        if st.st_mtime >= cutoff:
            continue
        try:
            path.unlink()
            expired += 1
        except OSError as e:
            logger.warning(f"Could not expire scratch file {path}: {e}")

    for pid_dir in root.glob("pid_*"):
        if pid_dir.is_dir() and not any(pid_dir.rglob("*")):
            shutil.rmtree(pid_dir, ignore_errors=True)

    if expired:
        logger.info(f"Expired {expired} scratch files older than {max_age_hours}h under {root}")
    return expired


def enforce_size_limits(warning_gb: int, limit_gb: int) -> bool:
    """
    Warn above ``warning_gb``; above ``limit_gb`` expire everything older than an hour.

    Returns:
        False if the scratch root is still over ``limit_gb`` afterwards
    """
    size_gb = scratch_size_bytes() / GB
    if size_gb <= warning_gb:
        return True
    if size_gb <= limit_gb:
        logger.warning(f"Scratch space uses {size_gb:.1f}GB (warning threshold {warning_gb}GB)")
        return True

    logger.error(f"Scratch space uses {size_gb:.1f}GB, over the {limit_gb}GB limit; expiring old files")
    expire_scratch_files(max_age_hours=1)
    size_gb = scratch_size_bytes() / GB
    if size_gb > limit_gb:
        logger.error(f"Scratch space still uses {size_gb:.1f}GB after expiry")
        return False
    return True


def prepare_scratch(settings: Optional[TempConfig] = None, skip_cleanup: bool = False) -> bool:
    """
    Housekeeping run before each transfer.

    Args:
        settings: Retention and size limits (loaded from the environment if None)
        skip_cleanup: Leave old files alone; size limits are still checked

    Returns:
        True if the scratch root is within its hard size limit
    """
    if settings is None:
        from .config import Config, ConfigurationError
        try:
            settings = Config().temp
        except ConfigurationError as e:
            logger.warning(f"Using default scratch limits: {e}")
            settings = TempConfig()

    scratch_root().mkdir(parents=True, exist_ok=True)
    if not skip_cleanup:
        expire_scratch_files(settings.retention_hours)
    return enforce_size_limits(settings.warning_gb, settings.limit_gb)


def remove_process_scratch() -> None:
    """Delete this process's scratch directory, if it was ever created."""
    path = scratch_root() / f"pid_{os.getpid()}"
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
        logger.debug(f"Removed scratch directory {path}")
    except OSError as e:
        logger.warning(f"Could not remove scratch directory {path}: {e}")
