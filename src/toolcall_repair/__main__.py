"""CLI entry point for toolcall-repair."""

from __future__ import annotations

import logging
import sys

import click

from . import __version__
from .exceptions import ToolcallRepairError


# ── Helpers ──────────────────────────────────────────────


def _read_input(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    with open(source, encoding="utf-8") as f:
        return f.read()


def _build_parser(ctx: click.Context):
    from .parser import StreamParser

    try:
        return StreamParser.from_config(ctx.obj["config"])
    except ToolcallRepairError as e:
        raise click.ClickException(str(e)) from e


# ── CLI Commands ─────────────────────────────────────────


@click.group()
@click.version_option(version=__version__, prog_name="toolcall-repair")
@click.option("--config", "config_path", default=None, help="Config file path")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Override the configured log level",
)
@click.pass_context
def main(ctx: click.Context, config_path: str | None, log_level: str | None) -> None:
    """toolcall-repair — recover tool calls from noisy LLM output."""
    from .config import load_config

    try:
        config = load_config(config_path)
    except ToolcallRepairError as e:
        raise click.ClickException(str(e)) from e

    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.obj = {"config": config}


@main.command()
@click.argument("source", default="-")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON")
@click.pass_context
def parse(ctx: click.Context, source: str, as_json: bool) -> None:
    """Extract tool calls from assistant text (file path or - for stdin)."""
    parser = _build_parser(ctx)
    result = parser.parse(_read_input(source))

    if as_json:
        click.echo(result.model_dump_json(indent=2))
        return

    click.echo(result.processed_content)
    click.echo("", err=True)
    click.echo(f"{len(result.tools)} tool call(s) extracted", err=True)
    for call in result.tools:
        flag = " (inferred: " + ", ".join(call.inferred_fields) + ")" if call.inferred else ""
        click.echo(
            f"  {call.tool} {call.path or '-'} "
            f"[{call.method}, confidence {call.confidence:.2f}]{flag}",
            err=True,
        )
    for failure in result.errors:
        click.echo(f"  skipped: {failure.message}", err=True)


@main.command()
@click.argument("source", default="-")
@click.pass_context
def repair(ctx: click.Context, source: str) -> None:
    """Repair a single JSON payload and print the repair result."""
    from .extraction.json_extract import strip_fences

    parser = _build_parser(ctx)
    text = strip_fences(_read_input(source))
    result = parser.cascade.repair(text)
    if not result.ok and parser.reconstructor is not None:
        result, _ = parser.reconstructor.repair(text)

    click.echo(result.model_dump_json(indent=2))
    if not result.ok:
        ctx.exit(1)


@main.command()
@click.pass_context
def tools(ctx: click.Context) -> None:
    """List registered tool schemas."""
    parser = _build_parser(ctx)
    for schema in parser.registry:
        required = [f for f in schema.required_fields if f != "tool"]
        for group in schema.required_one_of:
            required.append("|".join(group))
        grouped = {f for group in schema.required_one_of for f in group}
        optional = [
            f
            for f in schema.field_types
            if f not in schema.required_fields and f not in grouped
        ]
        click.echo(f"{schema.name}")
        click.echo(f"  required: {', '.join(required) or '-'}")
        click.echo(f"  optional: {', '.join(optional) or '-'}")
        if schema.description:
            click.echo(f"  {schema.description}")


if __name__ == "__main__":
    main()
