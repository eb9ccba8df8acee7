"""
Transfer Domain Models

Value types shared by the engine and the drivers: IfExists policies, opaque
driver arguments, temporary storage lists, static driver features, and the
runtime transfer options assembled by the front end.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Optional

from pydantic import BaseModel, Field, ValidationError

from ..errors import SchemaError, UnsupportedArgumentError
from .enums import (
    DestinationArgumentsFeatures,
    IfExistsFeatures,
    IfExistsMode,
    LocatorFeatures,
    SourceArgumentsFeatures,
)
from .schema import Table


class IfExists(BaseModel):
    """What to do if the destination already exists."""
    mode: IfExistsMode = Field(default=IfExistsMode.ERROR, description="Policy")
    keys: tuple[str, ...] = Field(default=(), description="Key columns for upsert-on")

    class Config:
        frozen = True

    @classmethod
    def parse(cls, text: str) -> IfExists:
        """
        Parse the command-line spelling of a policy.

        Accepts ``overwrite``, ``append``, ``error`` and ``upsert-on:col1,col2``.

        Raises:
            UnsupportedArgumentError: If the spelling is not recognized
        """
        text = text.strip()
        if text.startswith(IfExistsMode.UPSERT.value):
            _, sep, key_list = text.partition(":")
            keys = tuple(k.strip() for k in key_list.split(",") if k.strip())
            if not sep or not keys:
                raise UnsupportedArgumentError(
                    "--if-exists", "--if-exists=upsert-on requires key columns, e.g. upsert-on:id"
                )
            return cls(mode=IfExistsMode.UPSERT, keys=keys)
        try:
            return cls(mode=IfExistsMode(text))
        except ValueError as e:
            raise UnsupportedArgumentError(
                "--if-exists",
                f"unknown --if-exists value {text!r} (expected overwrite, append, error or upsert-on:KEYS)",
            ) from e

    @classmethod
    def overwrite(cls) -> IfExists:
        return cls(mode=IfExistsMode.OVERWRITE)

    @classmethod
    def append(cls) -> IfExists:
        return cls(mode=IfExistsMode.APPEND)

    @classmethod
    def error(cls) -> IfExists:
        return cls(mode=IfExistsMode.ERROR)

    @classmethod
    def upsert_on(cls, keys: Iterable[str]) -> IfExists:
        return cls(mode=IfExistsMode.UPSERT, keys=tuple(keys))

    def to_feature(self) -> IfExistsFeatures:
        return {
            IfExistsMode.OVERWRITE: IfExistsFeatures.OVERWRITE,
            IfExistsMode.APPEND: IfExistsFeatures.APPEND,
            IfExistsMode.ERROR: IfExistsFeatures.ERROR,
            IfExistsMode.UPSERT: IfExistsFeatures.UPSERT,
        }[self.mode]

    def verify(self, supported: IfExistsFeatures, target: str = "data destination") -> None:
        """Fail unless this policy is in the driver's declared flag set."""
        if not (self.to_feature() & supported):
            raise UnsupportedArgumentError(
                "--if-exists", f"this {target} does not support --if-exists={self.mode.value}"
            )

    def check_columns(self, table: Table) -> None:
        """Upsert keys must name columns of the transferred table."""
        if self.mode != IfExistsMode.UPSERT:
            return
        names = set(table.column_names())
        missing = [k for k in self.keys if k not in names]
        if missing:
            raise SchemaError(f"upsert-on key columns not found in schema: {', '.join(missing)}")

    def __str__(self) -> str:
        if self.mode == IfExistsMode.UPSERT:
            return f"{self.mode.value}:{','.join(self.keys)}"
        return self.mode.value


@dataclass(frozen=True)
class DriverArguments:
    """Driver-specific ``key=value`` arguments, opaque to the engine."""
    pairs: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_cli(cls, raw: Optional[Iterable[str]], option: str = "--from-args") -> DriverArguments:
        pairs = []
        for item in raw or []:
            key, sep, value = item.partition("=")
            if not sep or not key:
                raise UnsupportedArgumentError(option, f"{option} expects KEY=VALUE, got {item!r}")
            pairs.append((key.strip(), value))
        return cls(tuple(pairs))

    def is_empty(self) -> bool:
        return not self.pairs

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    def to_dict(self) -> dict[str, Any]:
        """Nest dotted keys: ``job_labels.team=x`` becomes ``{"job_labels": {"team": "x"}}``."""
        result: dict[str, Any] = {}
        for key, value in self.pairs:
            target = result
            parts = key.split(".")
            for part in parts[:-1]:
                target = target.setdefault(part, {})
                if not isinstance(target, dict):
                    raise UnsupportedArgumentError(key, f"driver argument {key!r} conflicts with {part!r}")
            target[parts[-1]] = value
        return result

    def deserialize(self, model: type[BaseModel], option: str):
        """
        Parse these arguments into a driver's pydantic argument model.

        Raises:
            UnsupportedArgumentError: On unknown keys or invalid values
        """
        try:
            return model.model_validate(self.to_dict())
        except ValidationError as e:
            raise UnsupportedArgumentError(option, f"invalid {option}: {e}") from e


@dataclass(frozen=True)
class TemporaryStorage:
    """Ordered scratch locator URLs; the first match for a scheme wins."""
    urls: tuple[str, ...] = ()

    @classmethod
    def from_urls(cls, urls: Optional[Iterable[str]]) -> TemporaryStorage:
        return cls(tuple(u for u in (urls or []) if u))

    def find_scheme(self, scheme: str) -> Optional[str]:
        for url in self.urls:
            if url.startswith(scheme):
                return url
        return None

    def __iter__(self) -> Iterator[str]:
        return iter(self.urls)

    def __len__(self) -> int:
        return len(self.urls)


@dataclass(frozen=True)
class Features:
    """Static capabilities declared by a driver."""
    locator: LocatorFeatures = LocatorFeatures.NONE
    write_schema_if_exists: IfExistsFeatures = IfExistsFeatures.NONE
    source_args: SourceArgumentsFeatures = SourceArgumentsFeatures.NONE
    dest_args: DestinationArgumentsFeatures = DestinationArgumentsFeatures.NONE
    dest_if_exists: IfExistsFeatures = IfExistsFeatures.NONE

    def describe(self) -> list[str]:
        """Human-readable lines for the ``features`` command."""
        def names(flags) -> str:
            members = [m.name.lower().replace("_", "-") for m in type(flags) if m.value and m in flags]
            return ", ".join(members) or "-"

        return [
            f"operations: {names(self.locator)}",
            f"schema --if-exists: {names(self.write_schema_if_exists)}",
            f"source options: {names(self.source_args)}",
            f"destination options: {names(self.dest_args)}",
            f"destination --if-exists: {names(self.dest_if_exists)}",
        ]


class TransferOptions(BaseModel):
    """Runtime options merged from CLI, YAML config and environment."""
    temporary: list[str] = Field(default_factory=list, description="Temporary storage URLs, in preference order")
    max_streams: int = Field(default=4, ge=1, description="Streams a destination may process concurrently")
    chunk_size: int = Field(default=64 * 1024, ge=1024, description="Byte chunk size for local streams")

    class Config:
        frozen = True

    def temporary_storage(self) -> TemporaryStorage:
        return TemporaryStorage.from_urls(self.temporary)
