"""Cross-process cache invalidation over Redis Pub/Sub.

Every process keeps its own in-memory caches. When the data behind a
cache key changes, the writer publishes a small typed event on the
domain's channel; every subscribed process (including the writer)
receives it and evicts or refreshes its local entries.

Delivery is whatever Redis Pub/Sub gives: ordered, at-most-once, only to
currently connected subscribers. Missed events are not replayed; caches
fall back on their TTL.

Example:
    service = ConfigCascadeCacheInvalidationService(redis)

    # Reader side
    await service.subscribe(on_event)

    # Writer side, after committing the change
    await service.invalidate_user("278863839632818186")
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Annotated, Any, Generic, TypeVar, Union, cast

import orjson
from pydantic import Field, TypeAdapter, ValidationError

from tzurot_cache.config import settings
from tzurot_cache.invalidation.events import (
    AllInvalidation,
    InvalidationEvent,
    UserInvalidation,
)
from tzurot_cache.observability.metrics import (
    record_invalidation_published,
    record_invalidation_received,
    record_invalidation_rejected,
)

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from redis.asyncio.client import PubSub

logger = logging.getLogger(__name__)

EventT = TypeVar("EventT", bound=InvalidationEvent)

# Callbacks may be plain functions or coroutine functions
InvalidationCallback = Callable[[EventT], Union[Awaitable[None], None]]


class InvalidEventError(ValueError):
    """Raised when publishing an event the channel's validator rejects."""


class EventValidator(Generic[EventT]):
    """Structural validator for one domain's closed set of event variants.

    Accepts arbitrary decoded JSON. An input is valid only if it is an
    object whose ``type`` names a declared variant, every required field
    of that variant is present as a string, and no other key is present.
    Never raises.
    """

    def __init__(self, *variants: type[EventT]) -> None:
        if not variants:
            raise ValueError("EventValidator needs at least one variant")
        self.variants = variants
        self.tags = frozenset(cast(str, v.model_fields["type"].default) for v in variants)

        if len(variants) == 1:
            target: Any = variants[0]
        else:
            target = Annotated[Union[variants], Field(discriminator="type")]  # type: ignore[valid-type]
        self._adapter: TypeAdapter[EventT] = TypeAdapter(target)

    def parse(self, raw: object) -> EventT | None:
        """Return the typed event, or None if ``raw`` is not a valid variant."""
        if not isinstance(raw, dict):
            return None
        try:
            return self._adapter.validate_python(raw)
        except ValidationError:
            return None

    def is_valid(self, raw: object) -> bool:
        """Return True if ``raw`` is a valid variant."""
        return self.parse(raw) is not None

    __call__ = is_valid


def create_event_validator(*variants: type[EventT]) -> EventValidator[EventT]:
    """Build a validator accepting exactly the given variants."""
    return EventValidator(*variants)


def create_standard_event_validator() -> EventValidator[Any]:
    """Validator for the common ``all`` / ``user {discordId}`` pair."""
    return EventValidator(AllInvalidation, UserInvalidation)


class BaseCacheInvalidationService(Generic[EventT]):
    """Publishes and receives invalidation events on one Redis channel.

    States: idle -> subscribing -> subscribed -> idle (on unsubscribe or a
    failed subscribe). At most one dedicated subscriber connection exists
    per service instance regardless of how many callbacks are registered.

    Publishing always goes through the shared client; receiving uses a
    dedicated Pub/Sub connection because a connection in subscribe mode
    cannot issue other commands.
    """

    def __init__(
        self,
        redis: Redis,
        channel: str,
        service_name: str,
        validator: EventValidator[EventT],
        *,
        get_log_context: Callable[[EventT], dict[str, Any]] | None = None,
        get_event_description: Callable[[EventT], str] | None = None,
        poll_timeout: float | None = None,
    ) -> None:
        self._redis = redis
        self.channel = channel
        self.service_name = service_name
        self._validator = validator
        self._get_log_context = get_log_context
        self._get_event_description = get_event_description
        self._poll_timeout = (
            poll_timeout if poll_timeout is not None else settings.invalidation_poll_timeout
        )
        self._callbacks: list[InvalidationCallback[EventT]] = []
        self._pubsub: PubSub | None = None
        self._listener: asyncio.Task[None] | None = None
        self._setup_lock = asyncio.Lock()

    @property
    def validator(self) -> EventValidator[EventT]:
        return self._validator

    def is_subscribed(self) -> bool:
        """True while the dedicated subscriber connection is up."""
        return self._pubsub is not None

    def _describe(self, event: EventT) -> str:
        if self._get_event_description is not None:
            return self._get_event_description(event)
        return event.describe()

    def _log_context(self, event: EventT) -> dict[str, Any]:
        context: dict[str, Any] = {"service": self.service_name, "channel": self.channel}
        if self._get_log_context is not None:
            context.update(self._get_log_context(event))
        return context

    # -------------------------------------------------------------------------
    # Subscribe side
    # -------------------------------------------------------------------------

    async def subscribe(self, callback: InvalidationCallback[EventT]) -> None:
        """Register ``callback`` and make sure the channel is subscribed.

        The first call opens the dedicated connection; later calls only add
        the callback. Calls made while the connection is being set up wait
        for that setup instead of opening their own. If the connection
        cannot be set up it is torn down, the callback is not kept, and the
        error propagates.
        """
        self._callbacks.append(callback)

        async with self._setup_lock:
            if self._pubsub is not None:
                return

            pubsub = self._redis.pubsub()
            try:
                await pubsub.subscribe(self.channel)
            except Exception:
                self._callbacks.remove(callback)
                logger.error(
                    f"[{self.service_name}] Failed to subscribe to {self.channel}",
                    exc_info=True,
                )
                await self._close_pubsub(pubsub)
                raise

            self._pubsub = pubsub
            self._listener = asyncio.create_task(self._listen_loop(pubsub))
        logger.info(f"[{self.service_name}] Subscribed to invalidation channel {self.channel}")

    async def unsubscribe(self) -> None:
        """Leave the channel and drop all callbacks. Idempotent."""
        async with self._setup_lock:
            pubsub = self._pubsub
            if pubsub is None:
                return

            listener = self._listener
            self._pubsub = None
            self._listener = None
            self._callbacks.clear()

        if listener is not None and listener is not asyncio.current_task():
            listener.cancel()
            try:
                await listener
            except asyncio.CancelledError:
                pass

        try:
            await pubsub.unsubscribe(self.channel)
        finally:
            await self._close_pubsub(pubsub)

        logger.info(f"[{self.service_name}] Unsubscribed from {self.channel}")

    async def _close_pubsub(self, pubsub: PubSub) -> None:
        try:
            await pubsub.aclose()
        except Exception:
            logger.warning(
                f"[{self.service_name}] Error closing subscriber connection", exc_info=True
            )

    async def _listen_loop(self, pubsub: PubSub) -> None:
        """Receive loop for the dedicated connection."""
        while self._pubsub is pubsub:
            try:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=self._poll_timeout,
                )

                if message is None:
                    continue

                if message["type"] == "message":
                    await self._handle_message(message["channel"], message["data"])

            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception(f"[{self.service_name}] Error in invalidation listener")
                await asyncio.sleep(1)

    async def _handle_message(self, channel: str | bytes, data: str | bytes) -> None:
        """Validate one raw message and fan it out to every callback."""
        if isinstance(channel, bytes):
            channel = channel.decode("utf-8", errors="replace")
        if channel != self.channel:
            return

        try:
            raw = orjson.loads(data)
        except orjson.JSONDecodeError:
            record_invalidation_rejected(self.channel)
            logger.warning(
                f"[{self.service_name}] Dropping unparseable invalidation message",
                extra={"channel": self.channel},
            )
            return

        event = self._validator.parse(raw)
        if event is None:
            record_invalidation_rejected(self.channel)
            logger.warning(
                f"[{self.service_name}] Dropping invalid invalidation event",
                extra={"channel": self.channel, "payload": raw},
            )
            return

        record_invalidation_received(self.channel)
        logger.info(
            f"[{self.service_name}] Received invalidation: {self._describe(event)}",
            extra=self._log_context(event),
        )

        for callback in list(self._callbacks):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                callback_name = getattr(callback, "__name__", callback.__class__.__name__)
                logger.exception(
                    f"[{self.service_name}] Invalidation callback {callback_name} failed"
                )

    # -------------------------------------------------------------------------
    # Publish side
    # -------------------------------------------------------------------------

    async def publish(self, event: EventT) -> int:
        """Publish an event to every subscribed process.

        Returns the number of subscribers that received it. Transport
        errors propagate; retrying is up to the caller.
        """
        wire = event.to_wire()
        if not self._validator.is_valid(wire):
            raise InvalidEventError(
                f"{self.service_name} does not accept '{event.type}' events"
            )

        count = cast(int, await self._redis.publish(self.channel, orjson.dumps(wire)))
        record_invalidation_published(self.channel)
        logger.debug(
            f"[{self.service_name}] Published invalidation {self._describe(event)} "
            f"to {count} subscribers",
            extra=self._log_context(event),
        )
        return count
