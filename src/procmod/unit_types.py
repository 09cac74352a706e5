"""Identity and value types for stored source units."""
from __future__ import annotations

from dataclasses import dataclass

DEFAULT_SCHEMA = "dbo"


@dataclass(frozen=True, slots=True, order=True)
class UnitIdentity:
    """(schema, name) pair identifying one stored routine."""

    schema_name: str
    name: str

    def __post_init__(self) -> None:
        if not self.schema_name:
            raise ValueError("schema_name cannot be empty")
        if not self.name:
            raise ValueError("name cannot be empty")

    @property
    def qualified(self) -> str:
        return f"{self.schema_name}.{self.name}"

    @classmethod
    def parse(cls, value: str, *, default_schema: str = DEFAULT_SCHEMA) -> UnitIdentity:
        """Parse ``schema.name`` or a bare ``name``; brackets are stripped."""
        raw = value.strip()
        schema, sep, name = raw.partition(".")
        if not sep:
            schema, name = default_schema, raw
        return cls(schema.strip("[] "), name.strip("[] "))

    def __str__(self) -> str:
        return self.qualified


@dataclass(frozen=True, slots=True)
class SourceUnit:
    """A unit's identity plus its text as read from the definition store."""

    identity: UnitIdentity
    text: str
    kind: str = "PROCEDURE"


@dataclass(frozen=True, slots=True)
class UnitScope:
    """Optional schema/name filter; ``None`` matches everything."""

    schema_name: str | None = None
    unit_name: str | None = None

    def matches(self, identity: UnitIdentity) -> bool:
        if self.schema_name is not None and identity.schema_name != self.schema_name:
            return False
        return self.unit_name is None or identity.name == self.unit_name
