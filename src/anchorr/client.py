"""Discord API client wrapper."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import discord

from .log import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    InteractionHandler = Callable[[discord.Interaction], Coroutine[Any, Any, None]]

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SentMessage:
    """Result of sending a message."""

    message_id: int
    channel_id: int


class DiscordBotClient:
    """Wrapper around a Pycord Bot: lifecycle, component routing, sends."""

    def __init__(self, token: str, *, guild_id: int | None = None) -> None:
        self._token = token
        self._guild_id = guild_id
        self._interaction_handler: InteractionHandler | None = None
        # Defer bot creation until inside async context (Python 3.10+ compatibility)
        self._bot: discord.Bot | None = None
        self._ready_event: asyncio.Event | None = None
        self._start_task: asyncio.Task[None] | None = None

    def _ensure_bot(self) -> discord.Bot:
        """Create the bot if not already created. Must be called from async context."""
        if self._bot is not None:
            return self._bot

        intents = discord.Intents.default()
        intents.guilds = True
        # debug_guilds makes command registration instant for one guild
        debug_guilds = [self._guild_id] if self._guild_id else None
        self._bot = discord.Bot(intents=intents, debug_guilds=debug_guilds)
        self._ready_event = asyncio.Event()

        @self._bot.event
        async def on_ready() -> None:
            assert self._ready_event is not None
            assert self._bot is not None
            logger.info("bot.ready", user=str(self._bot.user), guilds=len(self._bot.guilds))
            self._ready_event.set()

        # A listener, so Pycord's own on_interaction still dispatches commands.
        @self._bot.listen("on_interaction")
        async def on_component(interaction: discord.Interaction) -> None:
            if interaction.type != discord.InteractionType.component:
                return
            if self._interaction_handler is not None:
                await self._interaction_handler(interaction)

        return self._bot

    @property
    def bot(self) -> discord.Bot:
        """Get the underlying Pycord bot. Creates it if needed."""
        return self._ensure_bot()

    @property
    def user(self) -> discord.ClientUser | None:
        """Get the bot user."""
        if self._bot is None:
            return None
        return self._bot.user

    def set_interaction_handler(self, handler: InteractionHandler) -> None:
        """Set the handler for component (button) interactions."""
        self._interaction_handler = handler

    async def start(self) -> None:
        """Start the bot and wait until ready."""
        bot = self._ensure_bot()
        assert self._ready_event is not None

        async def _run_bot() -> None:
            try:
                await bot.start(self._token)
            except asyncio.CancelledError:
                pass
            except RuntimeError as e:
                # Suppress "Session is closed" error during shutdown
                if "Session is closed" not in str(e):
                    raise

        self._start_task = asyncio.create_task(_run_bot(), name="discord-bot-start")
        ready = asyncio.create_task(self._ready_event.wait())
        done, _ = await asyncio.wait(
            {ready, self._start_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if ready not in done:
            ready.cancel()
            # The bot stopped before becoming ready (bad token, network).
            self._start_task.result()
            raise RuntimeError("Discord bot exited before becoming ready")

    async def close(self) -> None:
        """Close the bot connection."""
        if self._bot is not None:
            await self._bot.close()
            # Cancel the start task and wait for it to finish
            if self._start_task is not None and not self._start_task.done():
                self._start_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._start_task

    async def send_message(
        self,
        *,
        channel_id: int,
        content: str | None = None,
        view: discord.ui.View | None = None,
        embed: discord.Embed | None = None,
    ) -> SentMessage | None:
        """Send a message to a channel. Returns None if it could not be sent."""
        bot = self._ensure_bot()
        channel = bot.get_channel(channel_id)
        if channel is None:
            try:
                channel = await bot.fetch_channel(channel_id)
            except discord.HTTPException as exc:
                logger.warning("send.channel_unavailable", channel_id=channel_id, error=str(exc))
                return None

        if not isinstance(channel, discord.abc.Messageable):
            logger.warning("send.channel_not_messageable", channel_id=channel_id)
            return None

        kwargs: dict[str, Any] = {}
        if content is not None:
            kwargs["content"] = content
        if view is not None:
            kwargs["view"] = view
        if embed is not None:
            kwargs["embed"] = embed

        try:
            message = await channel.send(**kwargs)
        except discord.HTTPException as exc:
            logger.warning(
                "send.rejected", channel_id=channel_id, status=exc.status, error=exc.text
            )
            return None
        return SentMessage(message_id=message.id, channel_id=message.channel.id)
