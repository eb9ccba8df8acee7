"""
Small helpers shared by the command-line front end and the drivers.

Sections:
- Logging
- File and object names
- YAML files
"""

import logging
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import yaml

# =============================================================================
# Logging
# =============================================================================

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

# Client libraries that are chatty at DEBUG
NOISY_LOGGERS = ("google", "urllib3", "psycopg")


def setup_logging(
    verbose: bool,
    command: Optional[str] = None,
    enable_file_logging: bool = False
) -> Optional[Path]:
    """
    Send log records to stderr and, optionally, a timestamped file under ``logs/``.

    stdout is left alone so ``csv:-`` can stream data through it.

    Args:
        verbose: Log at DEBUG instead of INFO
        command: Prefix for the log file name
        enable_file_logging: Also write ``logs/<command>_<timestamp>.log``

    Returns:
        Path of the log file, if one was created
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    log_file = None
    if enable_file_logging:
        log_file = Path("logs") / f"{command or 'tabletransit'}_{datetime.now():%Y%m%d_%H%M%S}.log"
        log_file.parent.mkdir(exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        handlers=handlers,
        force=True
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if verbose else logging.WARNING)

    if log_file:
        logging.info(f"Logging to: {log_file}")
    return log_file


# =============================================================================
# File and Object Names
# =============================================================================

def clean_filename(name: str) -> str:
    """
    Turn a stream or table name into a safe file or object name.

    Path separators, whitespace and characters reserved on Windows become
    ``_``; runs of ``_`` collapse. Never returns an empty string.
    """
    cleaned = re.sub(r'_+', '_', re.sub(r'[<>:"/\\|?*\s]', '_', name))
    return cleaned.strip('_') or "data"


# =============================================================================
# YAML Files
# =============================================================================

def load_yaml_file(file_path: Path) -> dict[str, Any]:
    """
    Read a YAML file whose top level is a mapping.

    Returns:
        The mapping (empty for an empty file)

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not valid YAML or not a mapping
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")
    try:
        content = yaml.safe_load(file_path.read_text(encoding='utf-8'))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {file_path}: {e}") from e

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ValueError(f"Expected a mapping at the top of {file_path}, got {type(content).__name__}")
    return content
