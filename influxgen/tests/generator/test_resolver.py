"""Tests for annotation resolution."""

import pytest

from influxgen.generator import parse
from influxgen.generator.resolver import (
    ConstraintViolation,
    InvalidAnnotation,
    UnsupportedShape,
    annotation_from_text,
    from_proto_struct,
    merge_annotations,
    resolve,
    resolve_all,
)
from influxgen.generator.types import (
    MemberDefinition,
    RawAnnotation,
    RecordDefinition,
    Role,
    Shape,
)

TAG = RawAnnotation(is_tag=True)
FIELD = RawAnnotation(is_field=True)
TIMESTAMP = RawAnnotation(is_timestamp=True)


def resolve_text(text):
    _, structs, _ = parse(text)
    return resolve(from_proto_struct(structs[0]))


def describe_merge():
    def ors_markers(expect):
        merged = merge_annotations([TAG, FIELD])
        expect(merged) == RawAnnotation(is_tag=True, is_field=True)

    def keeps_marker_when_later_occurrence_omits_it(expect):
        merged = merge_annotations([TAG, RawAnnotation(rename="x")])
        expect(merged.is_tag) == True
        expect(merged.rename) == "x"

    def later_rename_wins(expect):
        merged = merge_annotations([RawAnnotation(rename="a"), RawAnnotation(rename="b")])
        expect(merged.rename) == "b"

    def rename_not_cleared_by_omission(expect):
        merged = merge_annotations([RawAnnotation(rename="a"), FIELD])
        expect(merged.rename) == "a"

    def empty_is_unmarked(expect):
        expect(merge_annotations([])) == RawAnnotation()


def describe_annotation_text():
    def parses_markers_and_rename(expect):
        expect(annotation_from_text('field, rename = "amount"')) == RawAnnotation(
            is_field=True, rename="amount"
        )

    def rejects_unknown_key(expect):
        with pytest.raises(InvalidAnnotation) as exc:
            annotation_from_text("measure")
        expect(str(exc.value)).includes("Unknown 'influx' annotation key 'measure'")

    def rejects_marker_with_value(expect):
        with pytest.raises(InvalidAnnotation):
            annotation_from_text('tag = "yes"')

    def rejects_non_string_rename(expect):
        with pytest.raises(InvalidAnnotation):
            annotation_from_text("rename = 5")

    def rejects_bare_rename(expect):
        with pytest.raises(InvalidAnnotation):
            annotation_from_text("rename")

    def rejects_empty_rename(expect):
        with pytest.raises(InvalidAnnotation):
            annotation_from_text('rename = ""')

    def wraps_syntax_errors(expect):
        with pytest.raises(InvalidAnnotation) as exc:
            annotation_from_text("rename =")
        expect(str(exc.value)).includes("Unable to parse")


def describe_resolve():
    def resolves_reading(expect):
        record = resolve_text(
            """
            @influx(rename = "my_measure")
            struct Reading {
                @influx(tag)
                region: string
                @influx(field, rename = "amount")
                count: int64
                @influx(timestamp)
                ts: timestamp
                scratch: int32
            }
        """
        )
        expect(record.measurement_name) == "my_measure"
        expect(record.field_roles()) == {
            "region": Role.TAG,
            "count": Role.FIELD,
            "ts": Role.TIMESTAMP,
            "scratch": Role.IGNORED,
        }
        expect([f.wire_name for f in record.fields]) == ["amount"]
        expect(record.timestamp.source_field_name) == "ts"

    def defaults_measurement_name_to_type_name(expect):
        record = resolve_text("struct Plain { @influx(field) v: int32 }")
        expect(record.measurement_name) == "Plain"

    def merges_separate_occurrences(expect):
        record = resolve_text(
            """
            struct Reading {
                @influx(tag)
                @influx(rename = "x")
                region: string
                @influx(field)
                v: int32
            }
        """
        )
        region = record.field_descriptors[0]
        expect(region.role) == Role.TAG
        expect(region.wire_name) == "x"

    def ignores_foreign_annotations(expect):
        record = resolve_text(
            """
            @deprecated
            struct Reading {
                @unit("celsius")
                @influx(field)
                v: float64
            }
        """
        )
        expect(record.field_roles()) == {"v": Role.FIELD}

    def keeps_declaration_order(expect):
        definition = RecordDefinition(
            name="Ordered",
            members=tuple(
                MemberDefinition(name=n, annotations=(a,))
                for n, a in [("b", FIELD), ("a", TAG), ("d", FIELD), ("c", TAG)]
            ),
        )
        record = resolve(definition)
        expect([f.source_field_name for f in record.tags]) == ["a", "c"]
        expect([f.source_field_name for f in record.fields]) == ["b", "d"]

    def timestamp_takes_precedence_as_role(expect):
        definition = RecordDefinition(
            name="Both",
            members=(
                MemberDefinition(name="t", annotations=(FIELD, TIMESTAMP)),
            ),
        )
        record = resolve(definition)
        t = record.field_descriptors[0]
        expect(t.role) == Role.TIMESTAMP
        expect(record.fields) == [t]
        expect(record.timestamp) == t

    def allows_tag_and_field_on_one_member(expect):
        definition = RecordDefinition(
            name="Dual",
            members=(MemberDefinition(name="x", annotations=(TAG, FIELD)),),
        )
        record = resolve(definition)
        expect(record.tags) == record.fields

    def is_idempotent(expect):
        text = """
            @influx(rename = "m")
            struct Reading {
                @influx(tag) region: string
                @influx(field) v: int32
            }
        """
        expect(resolve_text(text)) == resolve_text(text)


def describe_invariants():
    def rejects_no_fields(expect):
        with pytest.raises(ConstraintViolation) as exc:
            resolve_text("struct Empty { @influx(tag) region: string }")
        expect(str(exc.value)).includes("at least one field")

    def rejects_unannotated_struct(expect):
        with pytest.raises(ConstraintViolation):
            resolve_text("struct Bare { v: int32 }")

    def rejects_two_timestamps(expect):
        with pytest.raises(ConstraintViolation) as exc:
            resolve_text(
                """
                struct Twice {
                    @influx(field) v: int32
                    @influx(timestamp) a: timestamp
                    @influx(timestamp) b: timestamp
                }
            """
            )
        expect(str(exc.value)).includes("at most one timestamp")
        expect(str(exc.value)).includes("(a, b)")

    def rejects_markers_on_type(expect):
        with pytest.raises(InvalidAnnotation):
            resolve_text("@influx(tag) struct Odd { @influx(field) v: int32 }")

    def rejects_unknown_key_in_file(expect):
        with pytest.raises(InvalidAnnotation) as exc:
            resolve_text("struct Odd { @influx(field, unit = \"c\") v: int32 }")
        expect(str(exc.value)).includes("Odd.v")


def describe_shapes():
    def rejects_non_record_shapes(expect):
        for shape in (Shape.ENUM, Shape.TUPLE, Shape.OTHER):
            with pytest.raises(UnsupportedShape):
                resolve(RecordDefinition(name="Odd", shape=shape))

    def rejects_annotated_enum_in_file(expect):
        enums, structs, _ = parse(
            """
            @influx(rename = "levels")
            enum Level: uint8 { Low = 0 }
        """
        )
        with pytest.raises(UnsupportedShape):
            resolve_all(enums, structs)

    def accepts_plain_enum_in_file(expect):
        enums, structs, _ = parse(
            """
            enum Level: uint8 { Low = 0 }
            struct Alarm { @influx(tag) level: Level @influx(field) v: int32 }
        """
        )
        records = resolve_all(enums, structs)
        expect([r.name for r in records]) == ["Alarm"]
