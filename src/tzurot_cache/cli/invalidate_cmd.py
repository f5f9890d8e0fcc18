"""CLI command for publishing cache invalidation events.

Usage:
    tzurot-cache invalidate config-cascade            # all
    tzurot-cache invalidate config-cascade --admin
    tzurot-cache invalidate persona --user 278863839632818186
    tzurot-cache invalidate llm-config --config 6c0f4e0a-...
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import typer

from tzurot_cache.invalidation.events import (
    AdminInvalidation,
    AllInvalidation,
    ChannelInvalidation,
    ConfigInvalidation,
    InvalidationEvent,
    PersonalityInvalidation,
    UserInvalidation,
)
from tzurot_cache.invalidation.services import (
    ApiKeyCacheInvalidationService,
    ChannelActivationCacheInvalidationService,
    ConfigCascadeCacheInvalidationService,
    LlmConfigCacheInvalidationService,
    PersonaCacheInvalidationService,
    PersonalityCacheInvalidationService,
)

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from rich.console import Console

    from tzurot_cache.invalidation.base import BaseCacheInvalidationService

SERVICES: dict[str, type[BaseCacheInvalidationService]] = {
    "personality": PersonalityCacheInvalidationService,
    "persona": PersonaCacheInvalidationService,
    "api-key": ApiKeyCacheInvalidationService,
    "channel-activation": ChannelActivationCacheInvalidationService,
    "config-cascade": ConfigCascadeCacheInvalidationService,
    "llm-config": LlmConfigCacheInvalidationService,
}

app = typer.Typer(help="Publish a cache invalidation event")


def build_event(
    user: str | None = None,
    personality: str | None = None,
    channel: str | None = None,
    config: str | None = None,
    admin: bool = False,
) -> InvalidationEvent:
    """Event for the given selector; no selector means ``all``."""
    selected = sum(1 for s in (user, personality, channel, config, admin) if s)
    if selected > 1:
        raise typer.BadParameter(
            "Pass at most one of --user, --personality, --channel, --config or --admin"
        )

    if user:
        return UserInvalidation(discordId=user)
    if personality:
        return PersonalityInvalidation(personalityId=personality)
    if channel:
        return ChannelInvalidation(channelId=channel)
    if config:
        return ConfigInvalidation(configId=config)
    if admin:
        return AdminInvalidation()
    return AllInvalidation()


@app.callback(invoke_without_command=True)
def invalidate(
    domain: str = typer.Argument(
        ...,
        help=f"Cache domain: {', '.join(SERVICES)}",
    ),
    user: str | None = typer.Option(None, "--user", "-u", help="Discord user ID"),
    personality: str | None = typer.Option(None, "--personality", "-p", help="Personality ID"),
    channel: str | None = typer.Option(None, "--channel", "-c", help="Discord channel ID"),
    config: str | None = typer.Option(None, "--config", help="LLM config ID"),
    admin: bool = typer.Option(False, "--admin", help="Admin defaults changed"),
) -> None:
    """Publish an invalidation event on a domain's channel.

    Without a selector, everything cached for the domain is invalidated.
    """
    from rich.console import Console

    console = Console()

    service_cls = SERVICES.get(domain)
    if service_cls is None:
        console.print(f"[red]Unknown domain:[/red] {domain}")
        raise typer.Exit(code=2)

    event = build_event(user, personality, channel, config, admin)
    count = asyncio.run(_publish(service_cls, event, console))
    console.print(
        f"[green]Published[/green] {event.describe()} on {domain} "
        f"([blue]{count}[/blue] receiver(s))"
    )


async def _publish(
    service_cls: type[BaseCacheInvalidationService],
    event: InvalidationEvent,
    console: Console,
) -> int:
    from tzurot_cache.cache.redis import close_redis, get_redis
    from tzurot_cache.invalidation.base import InvalidEventError

    redis: Redis = await get_redis()
    try:
        service = service_cls(redis)
        return await service.publish(event)
    except InvalidEventError as e:
        console.print(f"[red]Rejected:[/red] {e}")
        raise typer.Exit(code=2) from e
    finally:
        await close_redis()

