"""
Configuration module for tabletransit.
"""

from .settings import (
    Config,
    ConfigurationError,
    GcpConfig,
    ProcessingConfig,
    TempConfig,
    TransferConfig,
)

__all__ = [
    'Config',
    'ConfigurationError',
    'GcpConfig',
    'ProcessingConfig',
    'TempConfig',
    'TransferConfig',
]
