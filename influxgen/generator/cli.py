"""Command-line interface for influxgen code generation."""

from __future__ import annotations

import json
import sys

import click
from rich.console import Console
from rich.table import Table

from influxgen.generator import parse, python
from influxgen.generator.resolver import ResolutionError, resolve_all
from influxgen.generator.types import RecordType, Role


def _load(input_file: str):
    with open(input_file, encoding="utf-8") as f:
        text = f.read()

    enums, structs, comments = parse(text)
    try:
        records = resolve_all(enums, structs)
    except ResolutionError as e:
        print(f"Invalid measurement: {e}")
        sys.exit(1)
    return enums, structs, records, comments


@click.group()
def cli() -> None:
    """influxgen measurement code generator."""


@cli.command()
@click.option("--input", "-i", "input_file", required=True, help="Input definition file")
@click.option("--output", "-o", "output_file", required=True, help="Output file")
@click.option(
    "--runtime-import",
    "runtime_import",
    default="influxgen.proto",
    show_default=True,
    help="Import path for the runtime package",
)
def gen(input_file: str, output_file: str, runtime_import: str) -> None:
    """Generate Python measurement classes from a definition file."""
    enums, structs, records, comments = _load(input_file)

    generated_file = python.render(enums, structs, records, comments, runtime_import=runtime_import)

    with open(output_file, "w", encoding="utf-8") as f:
        f.write(generated_file)


@cli.command()
@click.option("--input", "-i", "input_file", required=True, help="Input definition file")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def info(input_file: str, output_json: bool) -> None:
    """Display measurement names and member roles."""
    _enums, _structs, records, _comments = _load(input_file)

    if output_json:
        _output_json(records)
    else:
        _output_plain(records)


def _output_json(records: list[RecordType]) -> None:
    """Output measurement info as JSON."""
    data = {record.name: record.to_dict(encode_json=True) for record in records}
    print(json.dumps(data, indent=2))


_ROLE_STYLES = {
    Role.TAG: "cyan",
    Role.FIELD: "yellow",
    Role.TIMESTAMP: "green",
    Role.IGNORED: "dim",
}


def _output_plain(records: list[RecordType]) -> None:
    """Output measurement info using rich text formatting."""
    console = Console()

    for record in records:
        console.print(f"[bold cyan]{record.name}[/bold cyan] -> {record.measurement_name}")

        table = Table(show_header=True, box=None, padding=(0, 2, 0, 2))
        table.add_column("Member", style="white")
        table.add_column("Wire name", style="white")
        table.add_column("Role")

        for f in record.field_descriptors:
            roles = [r for r, flag in ((Role.TAG, f.is_tag), (Role.FIELD, f.is_field)) if flag]
            if f.is_timestamp:
                roles.append(Role.TIMESTAMP)
            role_str = ", ".join(r.value for r in roles) or Role.IGNORED.value
            wire_name = f.wire_name if f.role != Role.IGNORED else ""
            table.add_row(
                f.source_field_name,
                wire_name,
                f"[{_ROLE_STYLES[f.role]}]{role_str}[/{_ROLE_STYLES[f.role]}]",
            )

        console.print(table)
        console.print()


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
