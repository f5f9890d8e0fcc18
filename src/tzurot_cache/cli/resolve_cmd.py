"""CLI command for resolving the config cascade against the database.

Usage:
    tzurot-cache resolve
    tzurot-cache resolve --user 278863839632818186 --personality 0b3c...
    tzurot-cache resolve --user 278863839632818186 --format json
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import typer

if TYPE_CHECKING:
    from rich.console import Console

    from tzurot_cache.resolvers.overrides import ResolvedConfigOverrides

app = typer.Typer(help="Resolve the config cascade")


@app.callback(invoke_without_command=True)
def resolve(
    user: str | None = typer.Option(None, "--user", "-u", help="Discord user ID"),
    personality: str | None = typer.Option(None, "--personality", "-p", help="Personality ID"),
    channel: str | None = typer.Option(None, "--channel", "-c", help="Discord channel ID"),
    output_format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: text, json",
    ),
) -> None:
    """Resolve effective config overrides and show the tier of each value."""
    from rich.console import Console

    console = Console()

    resolved = asyncio.run(_resolve(user, personality, channel))

    if output_format == "json":
        console.print_json(resolved.model_dump_json(by_alias=True))
        return

    render_table(console, resolved)


def render_table(console: Console, resolved: ResolvedConfigOverrides) -> None:
    from rich.table import Table

    from tzurot_cache.resolvers.overrides import CONFIG_OVERRIDE_KEYS, ConfigOverrides

    table = Table(title="Resolved config overrides")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_column("Source", style="green")

    for key in CONFIG_OVERRIDE_KEYS:
        value = getattr(resolved, key)
        table.add_row(
            ConfigOverrides.model_fields[key].alias or key,
            "no limit" if value is None else str(value),
            resolved.sources[key].value,
        )
    console.print(table)


async def _resolve(
    user: str | None, personality: str | None, channel: str | None
) -> ResolvedConfigOverrides:
    from tzurot_cache.persistence.db import close_db
    from tzurot_cache.persistence.store import SqlConfigStore
    from tzurot_cache.resolvers.cascade import ConfigCascadeResolver

    resolver = ConfigCascadeResolver(SqlConfigStore(), enable_cleanup=False)
    try:
        return await resolver.resolve_overrides(user, personality, channel)
    finally:
        await close_db()

