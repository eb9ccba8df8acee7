"""
Error hierarchy for tabletransit transfers.

Every failure surfaced by the transfer engine is a TransferError subclass.
Each class carries the process exit code the command-line front end uses
when the error reaches it:

- LocatorParseError: malformed URL or unrecognized scheme (exit 1)
- UnsupportedArgumentError: option not supported by the chosen driver (exit 1)
- IncompatibleTransferError: no transfer path between two locators (exit 1)
- SchemaError: portable type has no driver mapping, or column validation failed (exit 1)
- DriverError: wraps a backend failure, preserving its message (exit 2)
- TransferCancelled: raised once after a cancellation signal (exit 130)

Backend exceptions are chained with ``raise ... from`` so the causal chain
(context -> cause -> root) is available through ``format_error_chain``.
"""

from __future__ import annotations

from typing import Optional


class TransferError(Exception):
    """Base exception for transfer operations."""
    exit_code = 2


class LocatorParseError(TransferError):
    """Malformed locator URL or unsupported scheme."""
    exit_code = 1

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"invalid locator {url!r}: {message}")


class UnsupportedArgumentError(TransferError):
    """A user option is not supported by the driver it was given to."""
    exit_code = 1

    def __init__(self, option: str, message: Optional[str] = None):
        self.option = option
        super().__init__(message or f"unsupported option {option}")


class IncompatibleTransferError(TransferError):
    """No transfer path exists between a source and a destination."""
    exit_code = 1

    def __init__(self, source: str, dest: str):
        self.source = source
        self.dest = dest
        super().__init__(f"no transfer path from {source} to {dest}")


class SchemaError(TransferError):
    """Portable schema cannot be represented or failed validation."""
    exit_code = 1


class DriverError(TransferError):
    """Backend failure inside a driver."""
    exit_code = 2

    def __init__(self, driver: str, message: str):
        self.driver = driver
        super().__init__(f"{driver}: {message}")


class TransferCancelled(TransferError):
    """The transfer was cancelled before it completed."""
    exit_code = 130

    def __init__(self, message: str = "transfer cancelled"):
        super().__init__(message)


def format_error_chain(exc: BaseException) -> str:
    """
    Render an exception and its causes, outermost first.

    Args:
        exc: Exception to render

    Returns:
        Multi-line string with one ``caused by:`` line per chained cause
    """
    lines = [f"ERROR: {exc}"]
    seen = {id(exc)}
    cause = exc.__cause__ or exc.__context__
    while cause is not None and id(cause) not in seen:
        seen.add(id(cause))
        lines.append(f"  caused by: {cause}")
        cause = cause.__cause__ or cause.__context__
    return "\n".join(lines)
