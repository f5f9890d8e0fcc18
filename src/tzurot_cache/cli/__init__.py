"""CLI commands for tzurot-cache.

Provides command-line interface using Typer:
- tzurot-cache invalidate: Publish a cache invalidation event
- tzurot-cache resolve: Resolve the config cascade and show where each value came from

Usage:
    tzurot-cache --help
    tzurot-cache invalidate config-cascade --user 278863839632818186
    tzurot-cache invalidate llm-config
    tzurot-cache resolve --user 278863839632818186 --channel 1091134545546248282
"""

import typer

from tzurot_cache.cli.invalidate_cmd import app as invalidate_app
from tzurot_cache.cli.resolve_cmd import app as resolve_app

# Main CLI application
app = typer.Typer(
    name="tzurot-cache",
    help="tzurot-cache: config resolution and cross-process cache invalidation",
    no_args_is_help=True,
)

# Add subcommands
app.add_typer(invalidate_app, name="invalidate")
app.add_typer(resolve_app, name="resolve")


@app.callback()
def callback() -> None:
    """tzurot-cache: config resolution and cross-process cache invalidation."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
