"""Tests for measurement definition parser."""

import pytest

from influxgen.generator import parse
from influxgen.generator.parser import ValidationError, parse_arguments


def describe_parse_enum():
    def parses_simple_enum(expect):
        enums, structs, comments = parse(
            """
            enum Color: uint8 {
                Red = 0
                Green = 1
                Blue = 2
            }
        """
        )
        expect(len(enums)) == 1
        expect(enums[0].name) == "Color"
        expect(enums[0].type.name) == "uint8"
        expect(len(enums[0].values)) == 3
        expect(enums[0].values[0].name) == "Red"
        expect(enums[0].values[2].value) == 2

    def parses_enum_with_comments(expect):
        enums, _, comments = parse(
            """
            # Header comment
            enum Status: uint8 {
                OK = 0       # Success
                Error = 1    # Failure
            }
        """
        )
        expect(len(enums)) == 1
        expect(comments) == ["Header comment"]


def describe_parse_struct():
    def parses_simple_struct(expect):
        _, structs, _ = parse(
            """
            struct Point {
                x: int32
                y: float64
            }
        """
        )
        expect(len(structs)) == 1
        expect(structs[0].name) == "Point"
        expect(len(structs[0].members)) == 2
        expect(structs[0].members[0].name) == "x"
        expect(structs[0].members[1].type.name) == "float64"

    def parses_all_primitive_types(expect):
        _, structs, _ = parse(
            """
            struct AllTypes {
                a: int8
                b: int16
                c: int32
                d: int64
                e: uint8
                f: uint16
                g: uint32
                h: uint64
                i: float32
                j: float64
                k: bool
                l: string
                m: timestamp
            }
        """
        )
        expect(len(structs[0].members)) == 13

    def parses_enum_member_reference(expect):
        _, structs, _ = parse(
            """
            enum Level: uint8 { Low = 0 }
            struct Alarm { level: Level }
        """
        )
        expect(structs[0].members[0].type.name) == "Level"

    def uses_first_body_comment_as_struct_comment(expect):
        _, structs, comments = parse(
            """
            struct Point {
                # A point on the plane
                x: int32
                # vertical
                y: int32
            }
        """
        )
        expect(structs[0].comment) == "A point on the plane"
        expect(comments) == []


def describe_parse_annotations():
    def parses_marker_annotations(expect):
        _, structs, _ = parse(
            """
            struct Reading {
                @influx(tag)
                region: string
            }
        """
        )
        annotation = structs[0].members[0].annotations[0]
        expect(annotation.name) == "influx"
        expect(annotation.arguments[0].name) == "tag"
        expect(annotation.arguments[0].value) == None

    def parses_rename_option(expect):
        _, structs, _ = parse(
            """
            @influx(rename = "my_measure")
            struct Reading {
                @influx(field, rename = "amount")
                count: int64
            }
        """
        )
        expect(structs[0].annotations[0].arguments[0].value) == "my_measure"
        arguments = structs[0].members[0].annotations[0].arguments
        expect([a.name for a in arguments]) == ["field", "rename"]
        expect(arguments[1].value) == "amount"

    def keeps_repeated_annotations_in_order(expect):
        _, structs, _ = parse(
            """
            struct Reading {
                @influx(tag)
                @influx(rename = "x")
                region: string
            }
        """
        )
        annotations = structs[0].members[0].annotations
        expect(len(annotations)) == 2
        expect(annotations[0].arguments[0].name) == "tag"
        expect(annotations[1].arguments[0].name) == "rename"

    def parses_annotation_without_arguments(expect):
        _, structs, _ = parse(
            """
            @deprecated
            struct Old { value: uint8 }
        """
        )
        expect(structs[0].annotations[0].name) == "deprecated"
        expect(structs[0].annotations[0].arguments) == []

    def parses_escaped_strings(expect):
        args = parse_arguments('rename = "a \\"quoted\\" name"')
        expect(args[0].value) == 'a "quoted" name'

    def parses_numeric_values(expect):
        args = parse_arguments("rename = 5")
        expect(args[0].value) == 5


def describe_validation():
    def rejects_unknown_member_type(expect):
        with pytest.raises(ValidationError) as exc:
            parse("struct Broken { x: Nope }")
        expect(str(exc.value)).includes("unknown type Nope")

    def rejects_nested_struct(expect):
        with pytest.raises(ValidationError) as exc:
            parse(
                """
                struct Inner { value: uint8 }
                struct Outer { inner: Inner }
            """
            )
        expect(str(exc.value)).includes("must be flat")

    def rejects_duplicate_declaration(expect):
        with pytest.raises(ValidationError) as exc:
            parse(
                """
                struct Same { a: uint8 }
                struct Same { b: uint8 }
            """
            )
        expect(str(exc.value)).includes("declared more than once")

    def rejects_duplicate_member(expect):
        with pytest.raises(ValidationError):
            parse("struct Twice { a: uint8 a: int32 }")

    def rejects_keyword_member(expect):
        with pytest.raises(ValidationError) as exc:
            parse("struct Route { @influx(field) from: int32 }")
        expect(str(exc.value)).includes("Route.from is a reserved name")

    def rejects_generated_member_names(expect):
        for name in ["to_data", "_record", "to_line"]:
            with pytest.raises(ValidationError) as exc:
                parse(f"struct Clash {{ @influx(field) {name}: int32 }}")
            expect(str(exc.value)).includes(f"Clash.{name}")

    def rejects_reserved_type_names(expect):
        with pytest.raises(ValidationError) as exc:
            parse("struct Tag { @influx(field) v: int32 }")
        expect(str(exc.value)).includes("Tag is a reserved name")

    def rejects_keyword_enum_value(expect):
        with pytest.raises(ValidationError) as exc:
            parse("enum Mode: uint8 { None = 0 }")
        expect(str(exc.value)).includes("Mode.None")


def describe_parse_errors():
    def rejects_invalid_syntax(expect):
        with pytest.raises(Exception):
            parse("this is not valid syntax")

    def rejects_unclosed_brace(expect):
        with pytest.raises(Exception):
            parse(
                """
                struct Broken {
                    x: int32
            """
            )

    def rejects_malformed_annotation(expect):
        with pytest.raises(Exception):
            parse(
                """
                struct Broken {
                    @influx(rename =)
                    x: int32
                }
            """
            )
