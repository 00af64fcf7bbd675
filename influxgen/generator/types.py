"""Type definitions for definition parsing, annotation resolution and code generation."""

from dataclasses import dataclass, field
from enum import StrEnum, auto
from typing import Any

from dataclasses_json import DataClassJsonMixin


@dataclass
class ProtoType(DataClassJsonMixin):
    """Represents a primitive or enum type of a struct member."""

    name: str


@dataclass
class ProtoAnnotationArg(DataClassJsonMixin):
    """Represents an argument to an annotation.

    Bare markers such as ``tag`` have ``value=None``; options such as
    ``rename = "x"`` carry the literal value.
    """

    name: str
    value: Any


@dataclass
class ProtoAnnotation(DataClassJsonMixin):
    """Represents an annotation on a definition element."""

    name: str
    arguments: list[ProtoAnnotationArg]


@dataclass
class ProtoEnumValue(DataClassJsonMixin):
    """Represents a single enum value."""

    name: str
    value: Any
    annotations: list[ProtoAnnotation]


@dataclass
class ProtoEnum(DataClassJsonMixin):
    """Represents an enum type definition."""

    values: list[ProtoEnumValue]
    type: ProtoType
    name: str
    comment: str | None
    annotations: list[ProtoAnnotation]


@dataclass
class ProtoStructMember(DataClassJsonMixin):
    """Represents a member of a struct."""

    type: ProtoType
    name: str
    annotations: list[ProtoAnnotation]


@dataclass
class ProtoStruct(DataClassJsonMixin):
    """Represents a struct type definition."""

    members: list[ProtoStructMember]
    name: str
    comment: str | None
    annotations: list[ProtoAnnotation]


class Role(StrEnum):
    """Output section a member contributes to."""

    TAG = auto()
    FIELD = auto()
    TIMESTAMP = auto()
    IGNORED = auto()


class Shape(StrEnum):
    """Structural kind of a type handed to the resolver."""

    RECORD = auto()  # Flat struct of named members
    ENUM = auto()
    TUPLE = auto()  # Positional members only, no names to derive wire names from
    OTHER = auto()


@dataclass(frozen=True)
class RawAnnotation(DataClassJsonMixin):
    """One unresolved ``influx`` annotation occurrence."""

    is_tag: bool = False
    is_field: bool = False
    is_timestamp: bool = False
    rename: str | None = None

    def merge(self, other: "RawAnnotation") -> "RawAnnotation":
        """Fold a later occurrence into this one.

        Markers are OR-ed so they are never cleared by omission. A later
        rename replaces an earlier one; a later occurrence without a rename
        keeps the earlier one.
        """
        return RawAnnotation(
            is_tag=self.is_tag or other.is_tag,
            is_field=self.is_field or other.is_field,
            is_timestamp=self.is_timestamp or other.is_timestamp,
            rename=other.rename if other.rename is not None else self.rename,
        )

    @property
    def has_marker(self) -> bool:
        return self.is_tag or self.is_field or self.is_timestamp


@dataclass(frozen=True)
class MemberDefinition:
    """An unresolved member: its name and every annotation found for it."""

    name: str
    annotations: tuple[RawAnnotation, ...] = ()


@dataclass(frozen=True)
class RecordDefinition:
    """Front-end neutral description of a type awaiting resolution."""

    name: str
    annotations: tuple[RawAnnotation, ...] = ()
    members: tuple[MemberDefinition, ...] = ()
    shape: Shape = Shape.RECORD


@dataclass(frozen=True)
class FieldDescriptor(DataClassJsonMixin):
    """A resolved member.

    ``role`` is the member's primary role: a member marked as timestamp
    counts as the timestamp even when other markers are set as well. The
    individual flags are kept so a member marked for several sections is
    written into each of them.
    """

    source_field_name: str
    wire_name: str
    role: Role
    is_tag: bool = False
    is_field: bool = False
    is_timestamp: bool = False


@dataclass(frozen=True)
class RecordType(DataClassJsonMixin):
    """A resolved measurement type. Immutable once built."""

    name: str
    measurement_name: str
    field_descriptors: tuple[FieldDescriptor, ...] = field(default_factory=tuple)

    @property
    def tags(self) -> list[FieldDescriptor]:
        return [f for f in self.field_descriptors if f.is_tag]

    @property
    def fields(self) -> list[FieldDescriptor]:
        return [f for f in self.field_descriptors if f.is_field]

    @property
    def timestamp(self) -> FieldDescriptor | None:
        return next((f for f in self.field_descriptors if f.is_timestamp), None)

    def field_roles(self) -> dict[str, Role]:
        """Map each member's source name to its role."""
        return {f.source_field_name: f.role for f in self.field_descriptors}


PRIMITIVE_TYPES = frozenset(
    [
        "bool",
        "int8",
        "int16",
        "int32",
        "int64",
        "uint8",
        "uint16",
        "uint32",
        "uint64",
        "float32",
        "float64",
        "string",
        "timestamp",
    ]
)


def primitive_types() -> list[str]:
    """Return a list of primitive type names."""
    return list(PRIMITIVE_TYPES)


def is_primitive(t: ProtoType) -> bool:
    """Check if a type is a primitive type."""
    return t.name in PRIMITIVE_TYPES
