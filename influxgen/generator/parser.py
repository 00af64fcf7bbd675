"""Measurement definition parser using Lark."""

import ast
import keyword
import os
from dataclasses import dataclass
from typing import Any, TypeVar

from lark import Lark
from lark.visitors import Transformer

from .types import (
    PRIMITIVE_TYPES,
    ProtoAnnotation,
    ProtoAnnotationArg,
    ProtoEnum,
    ProtoEnumValue,
    ProtoStruct,
    ProtoStructMember,
    ProtoType,
)

_g_parser: Lark | None = None

# Names taken by the generated module and its measurement classes
RESERVED_TYPE_NAMES = {
    "ClassVar",
    "Field",
    "FieldDescriptor",
    "InfluxEnum",
    "Measurement",
    "RecordType",
    "Role",
    "Tag",
    "Timestamp",
    "dataclass",
    "datetime",
}
RESERVED_MEMBER_NAMES = {
    "_record",
    "field_roles",
    "measurement_name",
    "record_type",
    "to_data",
    "to_line",
}


class ValidationError(RuntimeError):
    """Raised when definition validation fails."""


@dataclass
class _Arguments:
    values: list[ProtoAnnotationArg]


@dataclass
class _Comment:
    value: str


@dataclass
class _Name:
    value: str


@dataclass
class _Value:
    value: int


TFilter = TypeVar("TFilter", bound=object)


def _filter(args: list[Any], class_type: type[TFilter]) -> list[TFilter]:
    return [v for v in args if isinstance(v, class_type)]


def _find_one(args: list[Any], class_type: type[object]) -> Any:
    filtered = _filter(args, class_type)
    if len(filtered) == 0:
        return None
    if len(filtered) > 1:
        raise RuntimeError(f"Found more than one {class_type}")

    if hasattr(filtered[0], "value"):
        return filtered[0].value
    return filtered[0]


def _find_first(args: list[Any], class_type: type[object]) -> Any:
    filtered = _filter(args, class_type)
    return filtered[0].value if filtered else None


TMany = TypeVar("TMany")


def _find_many(args: list[Any], class_type: type[TMany]) -> list[TMany]:
    return _filter(args, class_type)


class TreeTransformer(Transformer):
    """Transform parse tree into definition types."""

    def arguments(self, args: list[Any]) -> _Arguments:
        return _Arguments(values=_find_many(args, ProtoAnnotationArg))

    def argument_val(self, args: list[Any]) -> ProtoAnnotationArg:
        if len(args) == 1:
            return ProtoAnnotationArg(name=str(args[0]), value=None)
        if len(args) == 2:
            return ProtoAnnotationArg(name=str(args[0]), value=args[1])
        raise RuntimeError("Argument has more than two parts")

    def annotation(self, args: list[Any]) -> ProtoAnnotation:
        arguments = _find_one(args, _Arguments)
        return ProtoAnnotation(
            name=str(args[0]), arguments=arguments.values if arguments else []
        )

    def comment(self, args: list[Any]) -> _Comment:
        return _Comment(value=str(args[0]).lstrip("#").strip())

    def enum(self, args: list[Any]) -> ProtoEnum:
        return ProtoEnum(
            type=_find_one(args, ProtoType),
            name=_find_one(args, _Name),
            values=_find_many(args, ProtoEnumValue),
            comment=_find_first(args, _Comment),
            annotations=_find_many(args, ProtoAnnotation),
        )

    def enum_value(self, args: list[Any]) -> ProtoEnumValue:
        return ProtoEnumValue(
            name=_find_one(args, _Name),
            value=_find_one(args, _Value),
            annotations=_find_many(args, ProtoAnnotation),
        )

    def name(self, args: list[Any]) -> _Name:
        return _Name(value=str(args[0]))

    def number(self, args: list[Any]) -> int:
        return int(args[0])

    def string(self, args: list[Any]) -> str:
        return ast.literal_eval(str(args[0]))

    def struct(self, args: list[Any]) -> ProtoStruct:
        return ProtoStruct(
            name=_find_one(args, _Name),
            members=_find_many(args, ProtoStructMember),
            comment=_find_first(args, _Comment),
            annotations=_find_many(args, ProtoAnnotation),
        )

    def struct_member(self, args: list[Any]) -> ProtoStructMember:
        return ProtoStructMember(
            name=_find_one(args, _Name),
            type=_find_one(args, ProtoType),
            annotations=_find_many(args, ProtoAnnotation),
        )

    def value(self, args: list[Any]) -> _Value:
        return _Value(value=int(args[0]))

    def type(self, args: list[Any]) -> ProtoType:
        return ProtoType(name=str(args[0]))


def _get_parser() -> Lark:
    global _g_parser

    if not _g_parser:
        with open(f"{os.path.dirname(__file__)}/measuredef.lark", encoding="utf-8") as f:
            grammar = f.read()

        _g_parser = Lark(grammar, start=["start", "arguments"])

    return _g_parser


def validate(
    enums: list[ProtoEnum],
    structs: list[ProtoStruct],
    _comments: list[str],
) -> None:
    """Validate parsed measurement definitions."""
    enum_map = {enum.name: enum for enum in enums}
    struct_map = {struct.name: struct for struct in structs}

    seen: set[str] = set()
    for name in [e.name for e in enums] + [s.name for s in structs]:
        if name in seen:
            raise ValidationError(f"{name} declared more than once")
        if keyword.iskeyword(name) or name in RESERVED_TYPE_NAMES:
            raise ValidationError(f"{name} is a reserved name")
        seen.add(name)

    for enum in enums:
        for value in enum.values:
            if keyword.iskeyword(value.name):
                raise ValidationError(f"{enum.name}.{value.name} is a reserved name")

    for struct in structs:
        member_names: set[str] = set()
        for member in struct.members:
            if member.name in member_names:
                raise ValidationError(f"{struct.name}.{member.name} declared more than once")
            if keyword.iskeyword(member.name) or member.name in RESERVED_MEMBER_NAMES:
                raise ValidationError(f"{struct.name}.{member.name} is a reserved name")
            member_names.add(member.name)

            type_name = member.type.name
            if type_name in struct_map:
                raise ValidationError(
                    f"{struct.name}.{member.name} uses struct {type_name}, "
                    "but measurements must be flat"
                )
            if type_name not in PRIMITIVE_TYPES and type_name not in enum_map:
                raise ValidationError(f"{struct.name}.{member.name} has unknown type {type_name}")


def parse_arguments(text: str) -> list[ProtoAnnotationArg]:
    """Parse the argument list of a single annotation, e.g. ``tag, rename = "x"``."""
    tree = _get_parser().parse(text, start="arguments")
    return TreeTransformer().transform(tree).values


def parse(
    text: str,
) -> tuple[list[ProtoEnum], list[ProtoStruct], list[str]]:
    """Parse a measurement definition file."""
    tree = _get_parser().parse(text, start="start")
    tree = TreeTransformer().transform(tree)

    items = tree.children

    enums = _find_many(items, ProtoEnum)
    structs = _find_many(items, ProtoStruct)
    comments = [comment.value for comment in _find_many(items, _Comment)]

    validate(enums, structs, comments)

    return (enums, structs, comments)
