"""
Domain Models and Types

Core value types used throughout the transfer engine.

Models:
- Table, Column, DataType, StructField: portable schema
- IfExists: destination conflict policy
- DriverArguments, TemporaryStorage: opaque user options
- Features: static driver capabilities
- TransferOptions: merged runtime options

Enums:
- LocatorFeatures, SourceArgumentsFeatures, DestinationArgumentsFeatures, IfExistsFeatures
- IfExistsMode, TransferPath, Usage
"""

from .enums import (
    DestinationArgumentsFeatures,
    IfExistsFeatures,
    IfExistsMode,
    LocatorFeatures,
    SourceArgumentsFeatures,
    TransferPath,
    Usage,
)
from .models import DriverArguments, Features, IfExists, TemporaryStorage, TransferOptions
from .schema import Column, DataType, DataTypeKind, StructField, Table

__all__ = [
    "Table", "Column", "DataType", "DataTypeKind", "StructField",
    "IfExists", "DriverArguments", "TemporaryStorage", "Features", "TransferOptions",
    "LocatorFeatures", "SourceArgumentsFeatures", "DestinationArgumentsFeatures",
    "IfExistsFeatures", "IfExistsMode", "TransferPath", "Usage",
]
