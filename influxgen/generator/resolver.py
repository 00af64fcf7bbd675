"""Resolve ``influx`` annotations into validated measurement descriptors.

Resolution runs once per type. Every annotation occurrence of a member is
collected in declaration order and folded into a single ``RawAnnotation``;
the folded markers decide which output sections the member is written to.
"""

import logging
from collections.abc import Iterable
from functools import reduce

from lark.exceptions import LarkError

from .parser import parse_arguments
from .types import (
    FieldDescriptor,
    MemberDefinition,
    ProtoAnnotation,
    ProtoAnnotationArg,
    ProtoEnum,
    ProtoStruct,
    RawAnnotation,
    RecordDefinition,
    RecordType,
    Role,
    Shape,
)

logger = logging.getLogger(__name__)

ANNOTATION_NAME = "influx"

MARKERS = frozenset(["tag", "field", "timestamp"])
OPTIONS = frozenset(["rename"])


class ResolutionError(RuntimeError):
    """Raised when a type cannot be resolved into a measurement."""


class InvalidAnnotation(ResolutionError):
    """Raised when an annotation is malformed or uses an unknown key."""


class ConstraintViolation(ResolutionError):
    """Raised when a resolved type breaks a measurement invariant."""


class UnsupportedShape(ResolutionError):
    """Raised when a type is not a flat record of named members."""


def annotation_from_args(args: Iterable[ProtoAnnotationArg], where: str = "") -> RawAnnotation:
    """Build a single occurrence from parsed annotation arguments."""
    is_tag = is_field = is_timestamp = False
    rename = None
    location = f" on {where}" if where else ""

    for arg in args:
        if arg.name in MARKERS:
            if arg.value is not None:
                raise InvalidAnnotation(f"Marker '{arg.name}'{location} does not take a value")
            if arg.name == "tag":
                is_tag = True
            elif arg.name == "field":
                is_field = True
            else:
                is_timestamp = True
        elif arg.name in OPTIONS:
            if not isinstance(arg.value, str) or not arg.value:
                raise InvalidAnnotation(
                    f"Option '{arg.name}'{location} requires a non-empty string value"
                )
            rename = arg.value
        else:
            raise InvalidAnnotation(f"Unknown 'influx' annotation key '{arg.name}'{location}")

    return RawAnnotation(
        is_tag=is_tag, is_field=is_field, is_timestamp=is_timestamp, rename=rename
    )


def annotation_from_text(text: str, where: str = "") -> RawAnnotation:
    """Parse the text of an annotation argument list, e.g. ``field, rename = "x"``."""
    try:
        args = parse_arguments(text)
    except LarkError as e:
        location = f" on {where}" if where else ""
        raise InvalidAnnotation(f"Unable to parse 'influx' annotation{location}: {text!r}") from e
    return annotation_from_args(args, where)


def _influx_annotations(annotations: list[ProtoAnnotation], where: str) -> tuple[RawAnnotation, ...]:
    return tuple(
        annotation_from_args(a.arguments, where) for a in annotations if a.name == ANNOTATION_NAME
    )


def from_proto_struct(struct: ProtoStruct) -> RecordDefinition:
    """Describe a parsed struct for resolution."""
    return RecordDefinition(
        name=struct.name,
        annotations=_influx_annotations(struct.annotations, struct.name),
        members=tuple(
            MemberDefinition(
                name=member.name,
                annotations=_influx_annotations(
                    member.annotations, f"{struct.name}.{member.name}"
                ),
            )
            for member in struct.members
        ),
    )


def from_proto_enum(enum: ProtoEnum) -> RecordDefinition:
    """Describe a parsed enum for resolution. Enums are never measurements."""
    return RecordDefinition(
        name=enum.name,
        annotations=_influx_annotations(enum.annotations, enum.name),
        shape=Shape.ENUM,
    )


def merge_annotations(annotations: Iterable[RawAnnotation]) -> RawAnnotation:
    """Fold annotation occurrences left to right."""
    return reduce(RawAnnotation.merge, annotations, RawAnnotation())


def _role(merged: RawAnnotation) -> Role:
    if merged.is_timestamp:
        return Role.TIMESTAMP
    if merged.is_tag:
        return Role.TAG
    if merged.is_field:
        return Role.FIELD
    return Role.IGNORED


def _describe(member: MemberDefinition) -> FieldDescriptor:
    merged = merge_annotations(member.annotations)
    return FieldDescriptor(
        source_field_name=member.name,
        wire_name=merged.rename or member.name,
        role=_role(merged),
        is_tag=merged.is_tag,
        is_field=merged.is_field,
        is_timestamp=merged.is_timestamp,
    )


def _check_invariants(name: str, descriptors: tuple[FieldDescriptor, ...]) -> None:
    fields = [d for d in descriptors if d.is_field]
    timestamps = [d for d in descriptors if d.is_timestamp]

    if not fields:
        raise ConstraintViolation(
            f"{name}: a measurement requires at least one field, but no member is marked 'field'"
        )

    if len(timestamps) > 1:
        names = ", ".join(d.source_field_name for d in timestamps)
        raise ConstraintViolation(
            f"{name}: a measurement allows at most one timestamp, "
            f"but {len(timestamps)} members are marked 'timestamp' ({names})"
        )


def resolve(definition: RecordDefinition) -> RecordType:
    """Resolve a type definition into a validated measurement descriptor.

    Raises:
        UnsupportedShape: the type is not a flat record of named members.
        InvalidAnnotation: a type-level annotation carries a marker.
        ConstraintViolation: no field, or more than one timestamp.
    """
    if definition.shape != Shape.RECORD:
        raise UnsupportedShape(
            f"{definition.name} is a {definition.shape.value}; "
            "only records with named members can be measurements"
        )

    type_attr = merge_annotations(definition.annotations)
    if type_attr.has_marker:
        raise InvalidAnnotation(
            f"{definition.name}: only 'rename' is allowed on a measurement type"
        )

    descriptors = tuple(_describe(member) for member in definition.members)
    _check_invariants(definition.name, descriptors)

    record = RecordType(
        name=definition.name,
        measurement_name=type_attr.rename or definition.name,
        field_descriptors=descriptors,
    )
    logger.debug(
        "Resolved %s as measurement %r (%d tags, %d fields, timestamp=%s)",
        record.name,
        record.measurement_name,
        len(record.tags),
        len(record.fields),
        record.timestamp.source_field_name if record.timestamp else None,
    )
    return record


def resolve_all(
    enums: list[ProtoEnum], structs: list[ProtoStruct]
) -> list[RecordType]:
    """Resolve every struct of a parsed definition file.

    An enum carrying an ``influx`` annotation is rejected as an unsupported shape.
    """
    for enum in enums:
        if any(a.name == ANNOTATION_NAME for a in enum.annotations):
            resolve(from_proto_enum(enum))
    return [resolve(from_proto_struct(struct)) for struct in structs]
