"""
tabletransit - move tables between warehouses, object stores, databases and files.

Usage:
    tabletransit cp csv:./orders.csv bigquery:my-project:sales.orders \\
        --temporary gs://my-bucket/scratch/ --if-exists overwrite
"""

__version__ = "0.1.0"

from .context import Context
from .errors import (
    DriverError,
    IncompatibleTransferError,
    LocatorParseError,
    SchemaError,
    TransferCancelled,
    TransferError,
    UnsupportedArgumentError,
)

__all__ = [
    "Context",
    "DriverError",
    "IncompatibleTransferError",
    "LocatorParseError",
    "SchemaError",
    "TransferCancelled",
    "TransferError",
    "UnsupportedArgumentError",
    "__version__",
]
