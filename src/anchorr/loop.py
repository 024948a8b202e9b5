"""Main event loop: Discord gateway, webhook server and shared clients."""

from __future__ import annotations

from typing import TYPE_CHECKING

import anyio
import httpx

from .adapters import OMDbClient, TMDBClient
from .client import DiscordBotClient
from .handlers import register_slash_commands
from .interactions import InteractionController
from .log import get_logger
from .notifications import NotificationService
from .pipeline import MediaPipeline
from .state import GuildConfigStore
from .webhook import WebhookServer

if TYPE_CHECKING:
    from .settings import Settings

logger = get_logger(__name__)

__all__ = ["run_main_loop"]


async def run_main_loop(settings: Settings) -> None:
    """Run the bot and the webhook listener until cancelled."""
    store = GuildConfigStore(settings.state_path)
    bot = DiscordBotClient(settings.discord_token, guild_id=settings.debug_guild_id)

    logger.info(
        "loop.config",
        state_path=str(store.path),
        webhook_port=settings.webhook_port,
        omdb_enabled=bool(settings.omdb_api_key),
        debug_guild_id=settings.debug_guild_id,
    )

    async with httpx.AsyncClient(follow_redirects=True) as http:
        tmdb = TMDBClient(http, settings.tmdb_api_key)
        omdb = OMDbClient(http, settings.omdb_api_key)
        pipeline = MediaPipeline(http, tmdb, omdb)
        controller = InteractionController(
            store=store, pipeline=pipeline, public_url=settings.public_bot_url
        )
        notifications = NotificationService(store=store, omdb=omdb, sender=bot)
        webhook = WebhookServer(
            notifications, host=settings.webhook_host, port=settings.webhook_port
        )

        register_slash_commands(bot, controller=controller)

        try:
            await bot.start()
            await webhook.start()
            logger.info("loop.running", user=str(bot.user) if bot.user else "unknown")
            await anyio.sleep_forever()
        finally:
            with anyio.CancelScope(shield=True):
                await webhook.close()
                await notifications.aclose()
                try:
                    await bot.close()
                except Exception:
                    logger.exception("loop.bot_close_failed")
                logger.info("loop.stopped")
