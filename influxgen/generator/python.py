"""Python code generator for influx measurements."""

import logging
from collections.abc import Callable, Iterable, Iterator
from types import ModuleType
from typing import Any, TypeVar

from jinja2 import Environment, PackageLoader

from ..proto import measurement as default_primitives
from ..proto.measurement import TextBuffer
from .types import FieldDescriptor, ProtoEnum, ProtoStruct, ProtoStructMember, RecordType

logger = logging.getLogger(__name__)

env = Environment(
    loader=PackageLoader("influxgen.generator", "templates"),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    line_comment_prefix="%%",
    line_statement_prefix="%",
)

template = env.get_template("python.py.j2")

SerializationProcedure = Callable[[Any, TextBuffer], None]

# Map definition types to Python type annotations
PRIMITIVE_TYPE_MAP = {
    "bool": "bool",
    "int8": "int",
    "int16": "int",
    "int32": "int",
    "int64": "int",
    "uint8": "int",
    "uint16": "int",
    "uint32": "int",
    "uint64": "int",
    "float32": "float",
    "float64": "float",
    "string": "str",
    "timestamp": "datetime",
}

T = TypeVar("T")


def intersperse(items: Iterable[T], separator: T) -> Iterator[T]:
    """Yield items with the separator between each pair, never before or after."""
    for i, item in enumerate(items):
        if i:
            yield separator
        yield item


def _write(text: str) -> str:
    return f"v.write({text!r})"


def _tag_stmt(f: FieldDescriptor) -> str:
    return f"Tag({f.wire_name!r}, str(self.{f.source_field_name})).append(v)"


def _field_stmt(f: FieldDescriptor) -> str:
    return f"Field({f.wire_name!r}, self.{f.source_field_name}).append(v)"


def _timestamp_stmt(f: FieldDescriptor) -> str:
    return f"Timestamp(self.{f.source_field_name}).append(v)"


def procedure_lines(record: RecordType) -> list[str]:
    """Generate the statements of a ``to_data(self, v)`` body.

    The statements write one line of the line protocol, without the
    terminating newline:

        measurement[,tag=value...] field=value[,field=value...] [timestamp]
    """
    tags = record.tags
    timestamp = record.timestamp

    lines = [_write(record.measurement_name)]
    if tags:
        lines.append(_write(","))
    lines.extend(intersperse([_tag_stmt(f) for f in tags], _write(",")))

    lines.append(_write(" "))

    lines.extend(intersperse([_field_stmt(f) for f in record.fields], _write(",")))

    lines.append(_write(" "))

    if timestamp is not None:
        lines.append(_timestamp_stmt(timestamp))

    return lines


def render_procedure(record: RecordType) -> str:
    """Render the standalone ``to_data`` function source for a measurement."""
    body = "\n".join(f"    {line}" for line in procedure_lines(record))
    return f"def to_data(self, v):\n{body}\n"


def generate(
    record: RecordType, primitives: ModuleType | dict[str, Any] | None = None
) -> SerializationProcedure:
    """Compile the serialization procedure for a resolved measurement.

    Args:
        record: The resolved measurement.
        primitives: Namespace providing ``Tag``, ``Field`` and ``Timestamp``.
            Defaults to ``influxgen.proto.measurement``.

    Returns:
        A function ``to_data(instance, v)`` appending one line to ``v``.
    """
    if primitives is None:
        primitives = default_primitives
    if isinstance(primitives, ModuleType):
        primitives = vars(primitives)

    namespace: dict[str, Any] = {
        "Tag": primitives["Tag"],
        "Field": primitives["Field"],
        "Timestamp": primitives["Timestamp"],
    }
    source = render_procedure(record)
    exec(compile(source, f"<influxgen {record.name}>", "exec"), namespace)

    to_data = namespace["to_data"]
    to_data.__qualname__ = f"{record.name}.to_data"
    to_data.__doc__ = f"Append one {record.measurement_name} line to v."
    logger.debug("Generated serialization procedure for %s:\n%s", record.name, source)
    return to_data


def _map_type(member: ProtoStructMember) -> str:
    """Map a definition type to a Python type annotation."""
    return PRIMITIVE_TYPE_MAP.get(member.type.name, member.type.name)


def _docstring(text: str) -> str:
    """Render a comment as a triple-quoted docstring literal."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"""{escaped}"""'


def _descriptor_expr(f: FieldDescriptor) -> str:
    return (
        f"FieldDescriptor({f.source_field_name!r}, {f.wire_name!r}, Role.{f.role.name}, "
        f"is_tag={f.is_tag}, is_field={f.is_field}, is_timestamp={f.is_timestamp})"
    )


def _record_expr(record: RecordType) -> str:
    """Render a ``RecordType`` constructor expression for a class body."""
    lines = [
        "RecordType(",
        f"        name={record.name!r},",
        f"        measurement_name={record.measurement_name!r},",
        "        field_descriptors=(",
    ]
    lines.extend(f"            {_descriptor_expr(f)}," for f in record.field_descriptors)
    lines.append("        ),")
    lines.append("    )")
    return "\n".join(lines)


def render(
    enums: list[ProtoEnum],
    structs: list[ProtoStruct],
    records: list[RecordType],
    comments: list[str],
    runtime_import: str = "influxgen.proto",
) -> str:
    """Render measurement definitions to Python source code."""
    return template.render(
        enums=enums,
        structs=structs,
        records={record.name: record for record in records},
        comments=comments,
        map_type=_map_type,
        docstring=_docstring,
        record_expr=_record_expr,
        procedure_lines=procedure_lines,
        runtime_import=runtime_import,
    )
