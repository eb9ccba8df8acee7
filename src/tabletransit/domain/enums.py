"""
Transfer Enumerations

Capability flag sets declared by drivers, plus the small closed vocabularies
used across the engine.
"""

from enum import Enum, Flag, auto


class LocatorFeatures(Flag):
    """What a driver's locator can do."""
    NONE = 0
    SCHEMA = auto()             # Can report a portable schema
    WRITE_SCHEMA = auto()       # Can create a table/schema file from a portable schema
    LOCAL_DATA = auto()         # Can stream rows to the local process
    WRITE_LOCAL_DATA = auto()   # Can consume rows streamed from the local process
    WRITE_REMOTE_DATA = auto()  # Can take part in server-side transfers


class SourceArgumentsFeatures(Flag):
    """Source options a driver accepts."""
    NONE = 0
    DRIVER_ARGS = auto()        # --from-args
    WHERE_CLAUSE = auto()       # --where


class DestinationArgumentsFeatures(Flag):
    """Destination options a driver accepts."""
    NONE = 0
    DRIVER_ARGS = auto()        # --to-args


class IfExistsFeatures(Flag):
    """IfExists policies a driver honours."""
    NONE = 0
    OVERWRITE = auto()
    APPEND = auto()
    ERROR = auto()
    UPSERT = auto()


class IfExistsMode(str, Enum):
    """What to do when the destination already exists."""
    OVERWRITE = "overwrite"   # Replace existing data
    APPEND = "append"         # Add rows to existing data
    ERROR = "error"           # Refuse to touch existing data
    UPSERT = "upsert-on"      # Replace rows matching key columns, insert the rest


class TransferPath(str, Enum):
    """How rows travel from source to destination."""
    REMOTE = "remote"         # Server-to-server, no local bytes
    STREAMING = "streaming"   # Through the local process
    STAGED = "staged"         # Via temporary storage, two legs


class Usage(str, Enum):
    """Intended use of a mapped warehouse table."""
    FINAL_TABLE = "final_table"       # Destination table with real column types
    TEMP_TABLE = "temp_table"         # Landing table for CSV loads
