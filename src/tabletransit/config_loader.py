"""
Unified configuration loading interface for tabletransit commands.

Transfer options come from three places, highest precedence first:
- command-line flags
- the YAML config file (``--config``, or ``$TABLETRANSIT_CONFIG``, or
  ``~/.config/tabletransit/config.yml`` when present)
- environment variables loaded by ``Config``

Example YAML:

    temporary:
      - gs://my-bucket/scratch/
      - bigquery:my-project:scratch_dataset
    max_streams: 8
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from .config.settings import Config, ConfigurationError
from .domain.models import TransferOptions
from .utils import load_yaml_file

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "tabletransit" / "config.yml"

KNOWN_KEYS = {"temporary", "max_streams", "chunk_size"}


def resolve_config_path(config_path: Optional[str]) -> Optional[Path]:
    """Pick the YAML config file to use, or None if there is none."""
    if config_path:
        return Path(config_path)
    env_path = os.getenv("TABLETRANSIT_CONFIG")
    if env_path:
        return Path(env_path)
    if DEFAULT_CONFIG_PATH.exists():
        return DEFAULT_CONFIG_PATH
    return None


def load_yaml_options(config_path: Optional[Path]) -> dict[str, Any]:
    """
    Load transfer options from a YAML config file.

    Raises:
        ConfigurationError: If the file is missing, invalid, or has unknown keys
    """
    if config_path is None:
        return {}
    try:
        content = load_yaml_file(config_path)
    except (FileNotFoundError, ValueError) as e:
        raise ConfigurationError(str(e)) from e

    unknown = set(content) - KNOWN_KEYS
    if unknown:
        raise ConfigurationError(
            f"Unknown keys in {config_path}: {', '.join(sorted(unknown))}. "
            f"Known keys: {', '.join(sorted(KNOWN_KEYS))}"
        )
    if "temporary" in content and isinstance(content["temporary"], str):
        content["temporary"] = [content["temporary"]]
    logger.debug(f"Loaded transfer options from {config_path}: {content}")
    return content


def load_transfer_options(
    config_path: Optional[str] = None,
    temporary: Optional[list[str]] = None,
    max_streams: Optional[int] = None,
    config: Optional[Config] = None,
) -> TransferOptions:
    """
    Merge CLI flags, YAML config and environment into TransferOptions.

    Temporary storage lists are concatenated in precedence order so CLI entries
    are tried first, then YAML entries, then environment entries.

    Args:
        config_path: Explicit YAML config path (``--config``)
        temporary: ``--temporary`` URLs from the command line
        max_streams: ``--max-streams`` from the command line
        config: Pre-loaded environment configuration

    Returns:
        Frozen TransferOptions
    """
    config = config or Config()
    yaml_options = load_yaml_options(resolve_config_path(config_path))

    merged_temporary: list[str] = []
    for source in (temporary or [], yaml_options.get("temporary") or [], config.transfer.temporary):
        for url in source:
            if url not in merged_temporary:
                merged_temporary.append(url)

    try:
        return TransferOptions(
            temporary=merged_temporary,
            max_streams=max_streams or yaml_options.get("max_streams") or config.transfer.max_streams,
            chunk_size=yaml_options.get("chunk_size") or config.transfer.chunk_size,
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid transfer options: {e}") from e
