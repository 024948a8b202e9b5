"""Slash command, button and autocomplete handlers for Discord."""

# Pycord inspects command signatures at runtime; keep annotations evaluated.

from typing import TYPE_CHECKING, Any, Optional

import discord

from .errors import InteractionExpired
from .interactions import InteractionController, InteractionSession, OriginKind, run_guarded
from .log import get_logger
from .render import REQUEST_BUTTON_PREFIX

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from .client import DiscordBotClient

logger = get_logger(__name__)

# Unknown Interaction / Unknown Webhook: the response window has closed.
EXPIRED_ERROR_CODES = frozenset({10062, 10015})


class DiscordResponder:
    """Responder backed by a Pycord interaction."""

    def __init__(self, interaction: discord.Interaction) -> None:
        self._interaction = interaction

    @staticmethod
    async def _call(awaitable: "Awaitable[Any]") -> None:
        try:
            await awaitable
        except discord.NotFound as exc:
            if exc.code in EXPIRED_ERROR_CODES:
                raise InteractionExpired(str(exc)) from exc
            raise

    async def reply(
        self, content: str, *, ephemeral: bool, view: Optional[discord.ui.View] = None
    ) -> None:
        kwargs: dict[str, Any] = {"ephemeral": ephemeral}
        if view is not None:
            kwargs["view"] = view
        await self._call(self._interaction.response.send_message(content, **kwargs))

    async def defer(self, *, ephemeral: bool) -> None:
        await self._call(self._interaction.response.defer(ephemeral=ephemeral))

    async def defer_update(self) -> None:
        # For component interactions this is a deferred update of the message.
        await self._call(self._interaction.response.defer())

    async def edit(
        self,
        *,
        content: Optional[str],
        embed: Optional[discord.Embed],
        view: Optional[discord.ui.View],
    ) -> None:
        await self._call(
            self._interaction.edit_original_response(content=content, embed=embed, view=view)
        )


def new_session(interaction: discord.Interaction, origin: OriginKind) -> InteractionSession:
    guild_id = str(interaction.guild_id) if interaction.guild_id else None
    return InteractionSession(
        id=interaction.id,
        origin=origin,
        guild_id=guild_id,
        responder=DiscordResponder(interaction),
    )


def is_admin(user: Any) -> bool:
    """Check whether the invoking user administers the guild."""
    if not isinstance(user, discord.Member):
        return False
    return user.guild_permissions.administrator


def register_slash_commands(bot: "DiscordBotClient", *, controller: InteractionController) -> None:
    """Register /setup, /search and /request, and the Request button route."""
    client = bot.bot

    async def title_autocomplete(ctx: discord.AutocompleteContext) -> list[discord.OptionChoice]:
        choices = await controller.autocomplete(ctx.value)
        return [discord.OptionChoice(name=choice.name, value=choice.value) for choice in choices]

    @client.slash_command(
        name="setup", description="Get a link to configure the bot on the web dashboard."
    )
    async def setup_command(ctx: discord.ApplicationContext) -> None:
        session = new_session(ctx.interaction, OriginKind.COMMAND)
        await run_guarded(session, lambda: controller.setup(session, is_admin=is_admin(ctx.author)))

    @client.slash_command(name="search", description="Search for a movie or TV show.")
    @discord.option(
        "title",
        str,
        description="The title to search for",
        required=True,
        autocomplete=title_autocomplete,
    )
    async def search_command(ctx: discord.ApplicationContext, title: str) -> None:
        session = new_session(ctx.interaction, OriginKind.COMMAND)
        await run_guarded(session, lambda: controller.media_command(session, title, request=False))

    @client.slash_command(name="request", description="Request a movie or TV show directly.")
    @discord.option(
        "title",
        str,
        description="The title to request",
        required=True,
        autocomplete=title_autocomplete,
    )
    async def request_command(ctx: discord.ApplicationContext, title: str) -> None:
        session = new_session(ctx.interaction, OriginKind.COMMAND)
        await run_guarded(session, lambda: controller.media_command(session, title, request=True))

    async def handle_component(interaction: discord.Interaction) -> None:
        custom_id = interaction.custom_id or ""
        if not custom_id.startswith(REQUEST_BUTTON_PREFIX):
            return
        session = new_session(interaction, OriginKind.BUTTON)
        await run_guarded(session, lambda: controller.request_button(session, custom_id))

    bot.set_interaction_handler(handle_component)
    logger.debug("commands.registered", commands=["setup", "search", "request"])
