"""
Environment-driven settings for tabletransit.

Usage:
    from tabletransit.config.settings import Config
    config = Config()
    con.execute(f"SET threads={config.processing.threads}")

Environment Variables:
    GOOGLE_CLOUD_PROJECT: Default project for Cloud Storage and BigQuery clients
    GOOGLE_APPLICATION_CREDENTIALS: Service account key file (optional)
    BIGQUERY_LOCATION: Location for BigQuery jobs (default US)
    DUCKDB_MEMORY_LIMIT: Memory limit for DuckDB
    DUCKDB_THREADS: Number of threads for DuckDB
    DUCKDB_TEMP_DIR: Spill directory for DuckDB
    TABLETRANSIT_MAX_STREAMS: Streams a destination may process concurrently
    TABLETRANSIT_CHUNK_SIZE: Byte chunk size for local streams
    TABLETRANSIT_TEMPORARY: Comma-separated temporary storage URLs
    TEMP_RETENTION_HOURS, TEMP_SIZE_WARNING_GB, TEMP_SIZE_LIMIT_GB: Scratch limits
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

S = TypeVar("S")


class ConfigurationError(Exception):
    """Raised when configuration is invalid or incomplete."""
    exit_code = 1


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _env_list(name: str) -> list[str]:
    return [item.strip() for item in os.getenv(name, "").split(",") if item.strip()]


@dataclass
class GcpConfig:
    """Google Cloud clients: default project, key file and job location."""
    project: Optional[str] = None
    credentials_file: Optional[str] = None
    location: str = "US"

    def __post_init__(self):
        if self.credentials_file and not Path(self.credentials_file).is_file():
            raise ValueError(f"Credentials file not found: {self.credentials_file}")
        if not self.location:
            raise ValueError("BigQuery location cannot be empty")

    @classmethod
    def from_env(cls) -> "GcpConfig":
        return cls(
            project=os.getenv("GOOGLE_CLOUD_PROJECT") or os.getenv("GCLOUD_PROJECT"),
            credentials_file=os.getenv("GOOGLE_APPLICATION_CREDENTIALS"),
            location=os.getenv("BIGQUERY_LOCATION", "US"),
        )


@dataclass
class ProcessingConfig:
    """DuckDB connection limits."""
    memory_limit: str = "4GB"
    threads: int = 4
    temp_dir: Optional[str] = None

    def __post_init__(self):
        if self.threads < 1:
            raise ValueError("Thread count must be positive")
        if self.memory_limit[-2:] not in ("MB", "GB", "TB"):
            raise ValueError("Memory limit must end with MB, GB, or TB")

    @classmethod
    def from_env(cls) -> "ProcessingConfig":
        return cls(
            memory_limit=os.getenv("DUCKDB_MEMORY_LIMIT", "4GB"),
            threads=_env_int("DUCKDB_THREADS", 4),
            temp_dir=os.getenv("DUCKDB_TEMP_DIR"),
        )


@dataclass
class TransferConfig:
    """Transfer engine defaults, overridable from YAML and the command line."""
    max_streams: int = 4
    chunk_size: int = 64 * 1024
    temporary: list[str] = field(default_factory=list)

    def __post_init__(self):
        if self.max_streams < 1:
            raise ValueError("Max streams must be positive")
        if self.chunk_size < 1024:
            raise ValueError("Chunk size must be at least 1024 bytes")

    @classmethod
    def from_env(cls) -> "TransferConfig":
        return cls(
            max_streams=_env_int("TABLETRANSIT_MAX_STREAMS", 4),
            chunk_size=_env_int("TABLETRANSIT_CHUNK_SIZE", 64 * 1024),
            temporary=_env_list("TABLETRANSIT_TEMPORARY"),
        )


@dataclass
class TempConfig:
    """Local scratch retention and size limits."""
    retention_hours: int = 24
    warning_gb: int = 10
    limit_gb: int = 20

    def __post_init__(self):
        if self.retention_hours < 0:
            raise ValueError("Retention hours must be non-negative")
        if self.warning_gb < 1:
            raise ValueError("Warning threshold must be at least 1GB")
        if self.limit_gb <= self.warning_gb:
            raise ValueError("Size limit must be greater than warning threshold")

    @classmethod
    def from_env(cls) -> "TempConfig":
        return cls(
            retention_hours=_env_int("TEMP_RETENTION_HOURS", 24),
            warning_gb=_env_int("TEMP_SIZE_WARNING_GB", 10),
            limit_gb=_env_int("TEMP_SIZE_LIMIT_GB", 20),
        )


class Config:
    """
    Settings loaded from ``.env`` files and the process environment.

    Files are read in this order, without overriding variables that are
    already set:
    1. An explicit ``env_file`` (only that file when given)
    2. ``.env.<ENVIRONMENT>`` in the project root
    3. ``.env`` in the project root

    Example:
        config = Config(env_file=Path("/secure/transfer.env"))
        client = bigquery.Client(project=config.gcp.project, location=config.gcp.location)
    """

    def __init__(self,
                 environment: Optional[str] = None,
                 env_file: Optional[Path] = None):
        """
        Load settings.

        Args:
            environment: Selects ``.env.<environment>`` (default ``$ENVIRONMENT`` or development)
            env_file: Explicit environment file to load instead

        Raises:
            ConfigurationError: If a file is missing or a value is invalid
        """
        self.environment = environment or os.getenv("ENVIRONMENT", "development")
        self.project_root = self._find_project_root()
        self._loaded_env_files = self._load_env_files(env_file)

        self.gcp = self._section("Google Cloud", GcpConfig.from_env)
        self.processing = self._section("processing", ProcessingConfig.from_env)
        self.transfer = self._section("transfer", TransferConfig.from_env)
        self.temp = self._section("scratch management", TempConfig.from_env)

    def _find_project_root(self) -> Path:
        """Nearest ancestor of the working directory holding a .env file or project marker."""
        cwd = Path.cwd()
        markers = ('.env', f'.env.{self.environment}', 'pyproject.toml', '.git')
        for parent in [cwd, *cwd.parents]:
            if any((parent / marker).exists() for marker in markers):
                return parent
        return cwd

    def _load_env_files(self, env_file: Optional[Path]) -> list[str]:
        if env_file:
            if not env_file.exists():
                raise ConfigurationError(f"Specified env file not found: {env_file}")
            candidates = [env_file]
        else:
            candidates = [self.project_root / f".env.{self.environment}", self.project_root / ".env"]

        loaded = []
        for path in candidates:
            if path.exists():
                load_dotenv(path)
                loaded.append(str(path))
                logger.debug(f"Loaded environment from {path}")
        if not loaded:
            logger.debug("No .env files found, using system environment variables only")
        return loaded

    @staticmethod
    def _section(name: str, factory: Callable[[], S]) -> S:
        try:
            return factory()
        except ValueError as e:
            raise ConfigurationError(f"Invalid {name} configuration: {e}") from e

    def get_duckdb_settings(self) -> dict[str, Any]:
        """
        DuckDB ``SET`` options for a new connection.

        Returns:
            Dictionary with memory_limit, threads and, when configured, temp_directory
        """
        settings: dict[str, Any] = {
            'memory_limit': self.processing.memory_limit,
            'threads': self.processing.threads,
        }
        if self.processing.temp_dir:
            settings['temp_directory'] = self.processing.temp_dir
        return settings

    def __repr__(self) -> str:
        return (
            f"Config(environment={self.environment}, "
            f"gcp_project={self.gcp.project}, "
            f"env_files={self._loaded_env_files})"
        )
