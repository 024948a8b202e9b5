"""Jellyfin "item added" notifications."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from . import render
from .coalescer import QUIET_PERIOD_SECONDS, NotificationCoalescer
from .log import get_logger
from .pipeline import fetch_rating
from .types import CoalescingKey, GuildConfig

if TYPE_CHECKING:
    import discord

    from .adapters import JellyfinEvent, OMDbClient
    from .client import SentMessage
    from .state import GuildConfigStore

logger = get_logger(__name__)

TRACKED_NOTIFICATION = "ItemAdded"
TRACKED_ITEM_TYPES = frozenset({"Movie", "Episode"})


class NotificationSender(Protocol):
    async def send_message(
        self,
        *,
        channel_id: int,
        content: str | None = None,
        view: discord.ui.View | None = None,
        embed: discord.Embed | None = None,
    ) -> SentMessage | None: ...


class IngestOutcome(enum.Enum):
    IGNORED_TYPE = "ignored_type"
    NOT_CONFIGURED = "not_configured"
    IGNORED_ITEM = "ignored_item"
    DEBOUNCED = "debounced"


@dataclass(frozen=True, slots=True)
class QueuedEvent:
    """Coalescer payload: the event plus the config it arrived under."""

    config: GuildConfig
    event: JellyfinEvent


def coalescing_key(guild_id: str, event: JellyfinEvent) -> CoalescingKey | None:
    """Series id when present (episodes of one show collapse), else item id."""
    media_id = event.series_id or event.item_id
    if not media_id:
        return None
    return CoalescingKey(guild_id=guild_id, media_id=media_id)


class NotificationService:
    """Filters webhook events, debounces them, and publishes to Discord."""

    def __init__(
        self,
        *,
        store: GuildConfigStore,
        omdb: OMDbClient,
        sender: NotificationSender,
        quiet_period: float = QUIET_PERIOD_SECONDS,
        coalescer: NotificationCoalescer[CoalescingKey, QueuedEvent] | None = None,
    ) -> None:
        self._store = store
        self._omdb = omdb
        self._sender = sender
        if coalescer is None:
            coalescer = NotificationCoalescer(self.publish, quiet_period=quiet_period)
        self.coalescer = coalescer

    async def ingest(self, guild_id: str, event: JellyfinEvent) -> IngestOutcome:
        if event.notification_type != TRACKED_NOTIFICATION:
            return IngestOutcome.IGNORED_TYPE

        config = await self._store.get(guild_id)
        if config is None or not config.notifications_ready:
            logger.warning("webhook.not_configured", guild_id=guild_id)
            return IngestOutcome.NOT_CONFIGURED

        if event.item_type not in TRACKED_ITEM_TYPES:
            return IngestOutcome.IGNORED_ITEM

        key = coalescing_key(guild_id, event)
        if key is None:
            logger.warning("webhook.missing_item_id", guild_id=guild_id, item_type=event.item_type)
            return IngestOutcome.IGNORED_ITEM

        self.coalescer.ingest(key, QueuedEvent(config=config, event=event))
        return IngestOutcome.DEBOUNCED

    async def publish(self, key: CoalescingKey, queued: QueuedEvent) -> None:
        """Enrich the last event of a burst and post it to the guild's channel."""
        config, event = queued.config, queued.event
        title = render.notification_title(event)
        try:
            channel_id = int(config.notification_channel_id or "")
        except ValueError:
            logger.error(
                "notification.bad_channel",
                guild_id=key.guild_id,
                channel_id=config.notification_channel_id,
            )
            return

        rating = await fetch_rating(self._omdb, event.provider_imdb)
        embed = render.build_notification_embed(event, config, rating)
        view = render.build_notification_view(event, config)
        sent = await self._sender.send_message(channel_id=channel_id, embed=embed, view=view)
        if sent is None:
            logger.error(
                "notification.send_failed",
                guild_id=key.guild_id,
                channel_id=channel_id,
                title=title,
            )
            return
        logger.info("notification.sent", guild_id=key.guild_id, channel_id=channel_id, title=title)

    async def aclose(self) -> None:
        await self.coalescer.aclose()
