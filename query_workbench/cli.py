"""Command line front end over the workbench engine"""
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import click

from query_workbench.components.executor import SQLAlchemyCollaborator
from query_workbench.components.formatter import SqlparseFormatter
from query_workbench.components.workbench import Workbench
from query_workbench.config import settings

CONNECTION_REF = "default"


@dataclass
class CLIContext:
    """Runtime context shared across CLI invocations."""

    workbench: Workbench
    collaborator: SQLAlchemyCollaborator
    database: Optional[str]


pass_cli_context = click.make_pass_decorator(CLIContext)


def _read_sql(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


@click.group()
@click.option("--url", "database_url", default=None, help="SQLAlchemy database URL (defaults to DATABASE_URL).")
@click.option("--database", default=None, help="Database/schema to run against.")
@click.option("--read-only", is_flag=True, help="Refuse writes (SQLite only).")
@click.option("--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(
    ctx: click.Context,
    database_url: Optional[str],
    database: Optional[str],
    read_only: bool,
    verbose: bool,
) -> None:
    """Query workbench: completion, EXPLAIN analysis and index advice."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    collaborator = SQLAlchemyCollaborator.from_urls(
        {CONNECTION_REF: database_url or settings.database_url},
        read_only=read_only or settings.read_only,
        max_rows=settings.max_rows_return,
    )
    workbench = Workbench(collaborator, collaborator, formatter=SqlparseFormatter())
    default_db = collaborator.connections[CONNECTION_REF].default_database
    ctx.obj = CLIContext(workbench=workbench, collaborator=collaborator, database=database or default_db)
    ctx.call_on_close(collaborator.dispose)


@cli.command()
@click.argument("sql_file", type=click.Path(exists=True, dir_okay=False))
@pass_cli_context
def run(cli_ctx: CLIContext, sql_file: str) -> None:
    """Execute the statement in SQL_FILE and print the result."""
    wb = cli_ctx.workbench
    tab_id = wb.create_tab(CONNECTION_REF, cli_ctx.database, _read_sql(sql_file))
    outcome = asyncio.run(wb.execute(tab_id))
    if not outcome.success:
        raise click.ClickException(outcome.error or "Nothing to execute")
    result = outcome.result
    if not result.is_select:
        click.echo(f"{result.affected_rows} row(s) affected ({result.execution_time_ms} ms)")
        return
    click.echo("\t".join(c.name for c in result.columns))
    for row in result.rows:
        click.echo("\t".join("" if v is None else str(v) for v in row.values()))
    suffix = " (truncated)" if result.truncated else ""
    click.echo(f"{result.row_count} row(s){suffix} ({result.execution_time_ms} ms)")


@cli.command()
@click.argument("sql_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--line", type=int, required=True, help="Zero-based cursor line.")
@click.option("--column", type=int, required=True, help="Zero-based cursor column.")
@pass_cli_context
def complete(cli_ctx: CLIContext, sql_file: str, line: int, column: int) -> None:
    """List completion candidates at a cursor position in SQL_FILE."""
    wb = cli_ctx.workbench
    tab_id = wb.create_tab(CONNECTION_REF, cli_ctx.database, _read_sql(sql_file))
    if cli_ctx.database:
        for outcome in asyncio.run(wb.warm_completion(CONNECTION_REF, cli_ctx.database)):
            if not outcome.success:
                click.echo(f"warning: {outcome.error}", err=True)
    completion = wb.complete(tab_id, line, column)
    click.echo(f"word: {completion.word!r} [{completion.start_column}:{completion.end_column}]")
    for candidate in completion.candidates:
        detail = f"  ({candidate.detail})" if candidate.detail else ""
        click.echo(f"{candidate.kind.value:<9} {candidate.label}{detail}")


@cli.command()
@click.argument("sql_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--apply", "apply_all", is_flag=True, help="Create every suggested index.")
@pass_cli_context
def explain(cli_ctx: CLIContext, sql_file: str, apply_all: bool) -> None:
    """EXPLAIN the statement in SQL_FILE and print warnings and index suggestions."""
    wb = cli_ctx.workbench
    outcome = asyncio.run(wb.analyze(CONNECTION_REF, _read_sql(sql_file), cli_ctx.database))
    if not outcome.success:
        raise click.ClickException(outcome.error or "Nothing to analyze")

    analysis = outcome.analysis
    click.echo(f"optimization level: {analysis.optimization_level}")
    for warning in analysis.warnings:
        click.echo(f"[{warning.severity}] {warning.message}")
    if not analysis.suggestions:
        click.echo("No index suggestions.")
    for suggestion in analysis.suggestions:
        click.echo(f"{suggestion.table}: {suggestion.reason}\n  {suggestion.ddl}")

    if apply_all:
        for applied in asyncio.run(_apply_pending(wb)):
            if applied.success:
                click.echo(f"applied: {applied.suggestion.ddl}")
            else:
                click.echo(f"failed: {applied.suggestion.ddl}: {applied.error}", err=True)


async def _apply_pending(wb: Workbench) -> list:
    outcomes = []
    for suggestion in list(wb.advisor.suggestions):
        # WHERE and JOIN suggestions can share DDL; the first apply removes both.
        if suggestion not in wb.advisor.suggestions:
            continue
        outcomes.append(await wb.apply_suggestion(suggestion))
    return outcomes


@cli.command(name="format")
@click.argument("sql_file", type=click.Path(exists=True, dir_okay=False))
@pass_cli_context
def format_sql(cli_ctx: CLIContext, sql_file: str) -> None:
    """Print SQL_FILE pretty-printed (unchanged if it cannot be formatted)."""
    wb = cli_ctx.workbench
    tab_id = wb.create_tab(content=_read_sql(sql_file))
    wb.format_tab(tab_id)
    click.echo(wb.registry.get(tab_id).content)


@cli.command()
@pass_cli_context
def tables(cli_ctx: CLIContext) -> None:
    """List tables and views of the selected database."""
    if not cli_ctx.database:
        raise click.ClickException("No database selected; pass --database")
    outcome = asyncio.run(cli_ctx.workbench.refresh_tables(CONNECTION_REF, cli_ctx.database))
    if not outcome.success:
        raise click.ClickException(outcome.error)
    for table in cli_ctx.workbench.cache.get_tables(CONNECTION_REF, cli_ctx.database):
        click.echo(f"{table.name}\t{table.kind}")
