"""Static registry mapping URL schemes to driver classes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import LocatorParseError

if TYPE_CHECKING:
    from ..locator import Locator

logger = logging.getLogger(__name__)

_DRIVERS: dict[str, type[Locator]] = {}


def register(cls: type[Locator]) -> type[Locator]:
    """
    Class decorator adding a driver to the registry.

    Raises:
        ValueError: If the scheme is malformed or already registered
    """
    scheme = cls.scheme
    if not scheme or not scheme.endswith(":") or ":" in scheme[:-1]:
        raise ValueError(f"driver {cls.__name__} has invalid scheme {scheme!r}")
    if scheme in _DRIVERS:
        raise ValueError(
            f"scheme {scheme} already registered by {_DRIVERS[scheme].__name__}, "
            f"cannot register {cls.__name__}"
        )
    _DRIVERS[scheme] = cls
    return cls


def scheme_of(url: str) -> str:
    """Return the scheme of ``url`` including the trailing colon."""
    scheme, sep, _ = url.partition(":")
    if not sep or not scheme:
        raise LocatorParseError(url, "missing scheme (expected something like csv:, gs://, bigquery:)")
    return f"{scheme}:"


def driver_for(url: str) -> type[Locator]:
    scheme = scheme_of(url)
    try:
        return _DRIVERS[scheme]
    except KeyError:
        raise LocatorParseError(url, f"unsupported scheme {scheme}") from None


def parse_locator(url: str) -> Locator:
    """
    Parse a locator URL using the driver registered for its scheme.

    Raises:
        LocatorParseError: On unknown schemes or driver-specific constraint violations
    """
    locator = driver_for(url).parse(url)
    logger.debug(f"Parsed {url} as {type(locator).__name__}")
    return locator


def all_drivers() -> dict[str, type[Locator]]:
    """Registered drivers keyed by scheme, sorted by scheme."""
    return dict(sorted(_DRIVERS.items()))
