"""Runtime measurement support for annotated dataclasses.

Annotate dataclass members with ``influx_field()`` or ``Annotated[...,
influx(...)]`` and the class with ``@measurement``. Each class is resolved
and its serialization procedure generated once; the result is cached for
the lifetime of the class.
"""

import dataclasses
import io
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, ClassVar, get_args, get_origin, get_type_hints

from ..generator.python import SerializationProcedure, generate
from ..generator.resolver import (
    ConstraintViolation,
    InvalidAnnotation,
    ResolutionError,
    UnsupportedShape,
    annotation_from_args,
    annotation_from_text,
    merge_annotations,
    resolve,
)
from ..generator.types import (
    FieldDescriptor,
    MemberDefinition,
    ProtoAnnotationArg,
    RawAnnotation,
    RecordDefinition,
    RecordType,
    Role,
    Shape,
)
from .measurement import SerializationError, TextBuffer

__all__ = [
    "ConstraintViolation",
    "FieldDescriptor",
    "InfluxEnum",
    "InvalidAnnotation",
    "Measurement",
    "RecordType",
    "ResolutionError",
    "Role",
    "SerializationError",
    "UnsupportedShape",
    "from_class",
    "influx",
    "influx_field",
    "measurement",
    "merge_annotations",
    "record_type",
    "serialize",
    "to_line",
    "to_lines",
]

METADATA_KEY = "influx"
TYPE_ANNOTATIONS_ATTR = "__influx__"

# Sentinel for missing default
_MISSING: Any = object()


def influx(*markers: str, **options: Any) -> RawAnnotation:
    """Build one annotation occurrence.

    Markers are annotation texts, e.g. ``influx("tag")`` or
    ``influx('field, rename = "amount"')``; options are keyword arguments,
    e.g. ``influx("field", rename="amount")``.

    Raises:
        InvalidAnnotation: a marker cannot be parsed or a key is unknown.
    """
    occurrence = merge_annotations(annotation_from_text(text) for text in markers)
    if options:
        args = [ProtoAnnotationArg(name=k, value=v) for k, v in options.items()]
        occurrence = occurrence.merge(annotation_from_args(args))
    return occurrence


def influx_field(
    *markers: str,
    default: Any = _MISSING,
    default_factory: Any = _MISSING,
    **options: Any,
) -> Any:
    """Define a dataclass field with an influx annotation attached.

    Args:
        markers: Annotation texts such as ``"tag"`` or ``"timestamp"``.
        default: Default value for the field.
        default_factory: Factory function for default value.
        options: Annotation options such as ``rename="amount"``.

    Returns:
        A dataclass field with influx metadata attached.
    """
    metadata = {METADATA_KEY: (influx(*markers, **options),)}

    if default is not _MISSING:
        return dataclasses.field(default=default, metadata=metadata)
    if default_factory is not _MISSING:
        return dataclasses.field(default_factory=default_factory, metadata=metadata)
    return dataclasses.field(metadata=metadata)


def _as_occurrences(value: Any, where: str) -> tuple[RawAnnotation, ...]:
    if isinstance(value, (RawAnnotation, str)):
        value = (value,)
    if not isinstance(value, (tuple, list)):
        raise InvalidAnnotation(f"Unable to read 'influx' metadata on {where}: {value!r}")

    occurrences = []
    for item in value:
        if isinstance(item, RawAnnotation):
            occurrences.append(item)
        elif isinstance(item, str):
            occurrences.append(annotation_from_text(item, where))
        else:
            raise InvalidAnnotation(f"Unable to read 'influx' metadata on {where}: {item!r}")
    return tuple(occurrences)


def _shape(cls: Any) -> Shape:
    if not isinstance(cls, type):
        return Shape.OTHER
    if issubclass(cls, Enum):
        return Shape.ENUM
    if issubclass(cls, tuple):
        return Shape.TUPLE
    if not dataclasses.is_dataclass(cls):
        return Shape.OTHER
    return Shape.RECORD


def _type_hints(cls: type) -> dict[str, Any]:
    try:
        return get_type_hints(cls, include_extras=True)
    except NameError as e:
        raise InvalidAnnotation(f"Unable to evaluate annotations of {cls.__name__}: {e}") from e


def _member_occurrences(
    f: dataclasses.Field, hints: dict[str, Any], where: str
) -> tuple[RawAnnotation, ...]:
    occurrences = list(_as_occurrences(f.metadata.get(METADATA_KEY, ()), where))
    hint = hints.get(f.name)
    if get_origin(hint) is Annotated:
        occurrences.extend(x for x in get_args(hint)[1:] if isinstance(x, RawAnnotation))
    return tuple(occurrences)


def _inherited_descriptors(cls: type) -> dict[str, FieldDescriptor]:
    """Map member names to their descriptors in the nearest resolved class."""
    descriptors: dict[str, FieldDescriptor] = {}
    for base in reversed(cls.__mro__):
        record = base.__dict__.get("_record")
        if isinstance(record, RecordType):
            descriptors.update((d.source_field_name, d) for d in record.field_descriptors)
    return descriptors


def _as_annotation(descriptor: FieldDescriptor) -> RawAnnotation:
    rename = descriptor.wire_name
    return RawAnnotation(
        is_tag=descriptor.is_tag,
        is_field=descriptor.is_field,
        is_timestamp=descriptor.is_timestamp,
        rename=rename if rename != descriptor.source_field_name else None,
    )


def _declares(cls: type) -> bool:
    """Tell whether a class declares a measurement of its own.

    A class does when it is decorated or generated, or when a dataclass
    member it introduces carries an ``influx`` annotation.
    """
    own = cls.__dict__
    if isinstance(own.get("_record"), RecordType) or TYPE_ANNOTATIONS_ATTR in own:
        return True
    if not dataclasses.is_dataclass(cls):
        return False

    inherited = {
        id(f)
        for base in cls.__mro__[1:]
        for f in base.__dict__.get("__dataclass_fields__", {}).values()
    }
    introduced = [f for f in dataclasses.fields(cls) if id(f) not in inherited]
    if not introduced:
        return False
    try:
        hints = get_type_hints(cls, include_extras=True)
    except NameError:
        # Let from_class report it.
        return True
    return any(_member_occurrences(f, hints, f"{cls.__name__}.{f.name}") for f in introduced)


def _owner(cls: type) -> type:
    """Return the class whose measurement instances of cls are written as.

    This is the nearest class in the MRO declaring one; a class with no
    declaring ancestor is resolved as itself.
    """
    for base in cls.__mro__:
        if _declares(base):
            return base
    return cls


def from_class(cls: type) -> RecordDefinition:
    """Describe a class for resolution using reflection.

    Member annotations are read from dataclass field metadata first and
    then from ``Annotated`` extras, both in declaration order. A member
    with neither keeps the role and wire name it has in the nearest
    resolved class (one carrying its own ``_record``), such as a
    generated base.
    """
    shape = _shape(cls)
    name = getattr(cls, "__name__", repr(cls))
    if shape != Shape.RECORD:
        return RecordDefinition(name=name, shape=shape)

    hints = _type_hints(cls)
    inherited = _inherited_descriptors(cls)

    members = []
    for f in dataclasses.fields(cls):
        occurrences = _member_occurrences(f, hints, f"{name}.{f.name}")
        if not occurrences and f.name in inherited and inherited[f.name].role != Role.IGNORED:
            occurrences = (_as_annotation(inherited[f.name]),)
        members.append(MemberDefinition(name=f.name, annotations=occurrences))

    return RecordDefinition(
        name=name,
        annotations=_as_occurrences(cls.__dict__.get(TYPE_ANNOTATIONS_ATTR, ()), name),
        members=tuple(members),
    )


@dataclass(frozen=True)
class _Entry:
    record: RecordType
    procedure: SerializationProcedure


_registry: dict[type, _Entry] = {}
_registry_lock = threading.Lock()


def _entry(cls: type) -> _Entry:
    """Return the cached entry for a class, resolving it on first use."""
    entry = _registry.get(cls)
    if entry is None:
        with _registry_lock:
            entry = _registry.get(cls)
            if entry is None:
                entry = _build_entry(_owner(cls))
                _registry[cls] = entry
    return entry


def _build_entry(owner: type) -> _Entry:
    entry = _registry.get(owner)
    if entry is not None:
        return entry

    own = owner.__dict__
    record, procedure = own.get("_record"), own.get("to_data")
    if isinstance(record, RecordType) and callable(procedure) and procedure is not Measurement.to_data:
        # Generated class: reuse its embedded record and procedure.
        entry = _Entry(record=record, procedure=procedure)
    else:
        record = resolve(from_class(owner))
        entry = _Entry(record=record, procedure=generate(record))
    _registry[owner] = entry
    return entry


def record_type(cls: type) -> RecordType:
    """Return the resolved measurement of a class."""
    own = cls.__dict__.get("_record")
    if isinstance(own, RecordType):
        return own
    return _entry(cls).record


class Measurement:
    """Base class for measurement types.

    Generated classes define ``_record`` and ``to_data``; other subclasses
    are resolved from their annotations on first use. A subclass declaring
    no annotations of its own is written as its nearest declaring base.

    Example:
        @measurement(rename="my_measure")
        @dataclass
        class Reading(Measurement):
            region: str = influx_field("tag")
            count: int = influx_field("field", rename="amount")
            when: datetime = influx_field("timestamp")
            other: int = 0
    """

    _record: ClassVar[RecordType]

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        # An inherited generated procedure would miss members added here.
        if "to_data" not in cls.__dict__:
            cls.to_data = Measurement.to_data

    @classmethod
    def record_type(cls) -> RecordType:
        return record_type(cls)

    @classmethod
    def measurement_name(cls) -> str:
        return record_type(cls).measurement_name

    @classmethod
    def field_roles(cls) -> dict[str, Role]:
        return record_type(cls).field_roles()

    def to_data(self, v: TextBuffer) -> None:
        """Append this measurement as one line, without newline, to v."""
        _entry(type(self)).procedure(self, v)

    def to_line(self) -> str:
        return to_line(self)


def measurement(cls: type | None = None, /, *markers: str, **options: Any) -> Any:
    """Class decorator registering a dataclass as a measurement.

    Resolution happens immediately so invalid annotations fail at class
    definition. Accepts the type-level ``rename`` option, either as
    ``@measurement(rename="name")`` or ``@measurement('rename = "name"')``.
    """
    if isinstance(cls, str):
        markers = (cls, *markers)
        cls = None

    def wrap(cls: type) -> type:
        if _shape(cls) == Shape.RECORD:
            setattr(cls, TYPE_ANNOTATIONS_ATTR, (influx(*markers, **options),))
        entry = _entry(cls)

        cls._record = entry.record
        if not issubclass(cls, Measurement):
            for name in ("record_type", "measurement_name", "field_roles", "to_data", "to_line"):
                setattr(cls, name, Measurement.__dict__[name])
        return cls

    if cls is None:
        return wrap
    return wrap(cls)


class InfluxEnum(Enum):
    """Base class for enums used as tags or fields.

    Tags write the member name; fields write the member value.
    """

    def __str__(self) -> str:
        return self.name


def serialize(instance: Any, v: TextBuffer) -> None:
    """Append one line for an instance to v."""
    _entry(type(instance)).procedure(instance, v)


def to_line(instance: Any) -> str:
    v = io.StringIO()
    serialize(instance, v)
    return v.getvalue()


def to_lines(batch: Any | Iterable[Any]) -> str:
    """Serialize a measurement or a batch of them, one line each, newline-joined."""
    if isinstance(batch, (str, bytes)) or not isinstance(batch, Iterable):
        batch = [batch]

    v = io.StringIO()
    for i, instance in enumerate(batch):
        if i:
            v.write("\n")
        serialize(instance, v)
    return v.getvalue()
