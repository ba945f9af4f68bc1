"""Command-line entry point for inspecting the context assembly pipeline."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import typer
from pydantic import TypeAdapter, ValidationError
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from thirra_memory.config import ConfigError, Settings, load_settings
from thirra_memory.core.utils import console, setup_rich_logging
from thirra_memory.memory.engine import ContextEngine
from thirra_memory.memory.facts import extract_assignments
from thirra_memory.memory.models import ConversationTurn
from thirra_memory.memory.turns import InMemoryTurnStore
from thirra_memory.output.parser import parse_model_output
from thirra_memory.routing.router import PydanticAIClassifier, QueryRouter, estimate_cost_savings

app = typer.Typer(
    name="thirra-memory",
    help="Inspect context assembly, routing and structured output parsing.",
    add_completion=True,
)

_TURNS_ADAPTER = TypeAdapter(list[ConversationTurn])


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    log_level: str = typer.Option("warning", help="Logging level (debug, info, warning, error)."),
) -> None:
    """Context assembly and memory tools."""
    if ctx.invoked_subcommand is None:
        console.print("[bold red]No command specified.[/bold red]")
        console.print("[bold yellow]Running --help for your convenience.[/bold yellow]")
        console.print(ctx.get_help())
        raise typer.Exit
    import dotenv  # noqa: PLC0415

    dotenv.load_dotenv()
    setup_rich_logging(log_level)


def _settings(config_file: str | None) -> Settings:
    try:
        return load_settings(config_file)
    except ConfigError as e:
        console.print(f"[bold red]{escape(str(e))}[/bold red]")
        raise typer.Exit(1) from e


@app.command("parse")
def parse(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Raw model output file."),
    expect_title: bool = typer.Option(
        False,  # noqa: FBT003
        "--expect-title",
        help="Require a title block.",
    ),
) -> None:
    """Parse a raw model output into title, summary and response."""
    parsed = parse_model_output(file.read_bytes(), expect_title=expect_title)
    table = Table(show_header=False)
    table.add_row("Title", escape(parsed.title) if parsed.title else "[dim]-[/dim]")
    table.add_row("Summary", escape(parsed.summary) if parsed.summary else "[dim]-[/dim]")
    table.add_row("Fallback", "yes" if parsed.used_fallback else "no")
    table.add_row("Errors", escape("\n".join(parsed.errors)) or "[dim]none[/dim]")
    console.print(table)
    console.print(Panel(Text(parsed.response or ""), title="Response"))


@app.command("route")
def route(
    query: str = typer.Argument(..., help="User query to classify."),
    offline: bool = typer.Option(
        False,  # noqa: FBT003
        "--offline",
        help="Classify with keywords only, without calling a model.",
    ),
    tokens: int = typer.Option(1000, help="Token count for the cost comparison."),
    config_file: str | None = typer.Option(None, "--config", help="Path to a TOML config file."),
) -> None:
    """Classify a query and show the model it would be routed to."""
    settings = _settings(config_file)
    classifier = (
        None
        if offline
        else PydanticAIClassifier(settings.provider, model=settings.routing.classifier_model)
    )
    router = QueryRouter(settings.routing, classifier=classifier)
    result = asyncio.run(router.route(query))
    cost = estimate_cost_savings(result.category, tokens).formatted()
    console.print(f"[bold]Category:[/bold] {result.category.value} (via {result.source})")
    console.print(f"[bold]Model:[/bold] {result.model_id}")
    console.print(f"[bold]Reasoning:[/bold] {result.reasoning}")
    console.print(
        f"[bold]Cost for {tokens} tokens:[/bold] {cost['actual_price']} "
        f"vs {cost['baseline_price']} baseline ({cost['savings_percent']} saved)",
    )


@app.command("facts")
def facts(text: str = typer.Argument(..., help="Free text to scan for assignments.")) -> None:
    """Show the key/value assignments found in a text."""
    found = extract_assignments(text)
    if not found:
        console.print("[yellow]No assignments found.[/yellow]")
        return
    table = Table("Key", "Value")
    for fact in found:
        table.add_row(escape(fact.key), escape(fact.value))
    console.print(table)


def _load_turns(path: Path) -> list[ConversationTurn]:
    raw: list[dict[str, Any]] = json.loads(path.read_text(encoding="utf-8"))
    with_ids = [{"id": str(i), **item} for i, item in enumerate(raw)]
    return _TURNS_ADAPTER.validate_python(with_ids)


@app.command("assemble")
def assemble(
    turns_json: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        help="JSON list of turns with conversation_id, user_text and assistant_text.",
    ),
    query: str = typer.Argument(..., help="The new user query."),
    instruction: str | None = typer.Option(None, help="Standing user instruction."),
    needs_title: bool = typer.Option(
        False,  # noqa: FBT003
        "--needs-title",
        help="Ask the model for a title block.",
    ),
    offline: bool = typer.Option(
        False,  # noqa: FBT003
        "--offline",
        help="Skip summary, semantic recall and model routing.",
    ),
    config_file: str | None = typer.Option(None, "--config", help="Path to a TOML config file."),
) -> None:
    """Assemble the prompt for a new query against a stored conversation."""
    settings = _settings(config_file)
    try:
        turns = _load_turns(turns_json)
    except (json.JSONDecodeError, ValidationError) as e:
        console.print(f"[bold red]Invalid turns file: {escape(str(e))}[/bold red]")
        raise typer.Exit(1) from e
    if not turns:
        console.print("[bold red]Turns file is empty.[/bold red]")
        raise typer.Exit(1)
    conversation_id = turns[0].conversation_id
    store = InMemoryTurnStore(turns)

    async def _run() -> None:
        engine = (
            ContextEngine(settings, turn_store=store)
            if offline
            else ContextEngine.from_settings(settings, turn_store=store)
        )
        async with engine:
            context = await engine.assemble_context(
                conversation_id,
                query,
                instruction,
                needs_title=needs_title,
            )
        console.print(Panel(Text(context.system_prompt), title="System prompt"))
        for message in context.history_messages:
            console.print(f"[bold cyan]{message.role.value}[/bold cyan]: {escape(message.content)}")
        console.print(
            f"[bold]Route:[/bold] {context.routing.model_id} ({context.routing.category.value})",
        )
        console.print(
            f"[bold]Prompt chars:[/bold] {context.budget.total_chars}/{context.budget.budget}"
            + (" [red](over budget)[/red]" if context.budget.over_budget else ""),
        )

    asyncio.run(_run())
