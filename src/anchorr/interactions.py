"""Lifecycle of slash commands, button presses and autocomplete.

A session moves ``RECEIVED -> ACKNOWLEDGED -> TERMINAL`` (or straight from
``RECEIVED`` to ``TERMINAL`` for rejections that need no lookups). The
acknowledgment is always sent before any external call, and a session is
edited into its terminal state at most once.
"""

from __future__ import annotations

import enum
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import anyio

from . import render
from .errors import ConfigurationMissing, InteractionExpired, UpstreamError, ValidationError
from .log import get_logger
from .types import GuildConfig, MediaKind, MediaReference

if TYPE_CHECKING:
    import discord

    from .pipeline import MediaPipeline
    from .state import GuildConfigStore

logger = get_logger(__name__)

MIN_QUERY_LENGTH = 2
MAX_AUTOCOMPLETE_CHOICES = 10
AUTOCOMPLETE_TIMEOUT_SECONDS = 2.5

NOT_CONFIGURED_MESSAGE = "⚠️ Anchorr is not configured. An admin needs to run `/setup`."
ADMIN_ONLY_MESSAGE = "Only administrators can use this command."
INVALID_SELECTION_MESSAGE = "⚠️ Please select a valid title from the list."
PIPELINE_ERROR_MESSAGE = "❌ An error occurred. The item might already be requested."
GENERIC_ERROR_MESSAGE = "There was an error while executing this command!"
DASHBOARD_MISSING_MESSAGE = "The configuration dashboard is not available right now."


class SessionState(enum.Enum):
    RECEIVED = "received"
    ACKNOWLEDGED = "acknowledged"
    TERMINAL = "terminal"


class OriginKind(enum.Enum):
    COMMAND = "command"
    BUTTON = "button"
    AUTOCOMPLETE = "autocomplete"


class Responder(Protocol):
    """The platform calls a session needs. Raise InteractionExpired when
    the interaction token is no longer valid."""

    async def reply(
        self, content: str, *, ephemeral: bool, view: discord.ui.View | None = None
    ) -> None: ...

    async def defer(self, *, ephemeral: bool) -> None: ...

    async def defer_update(self) -> None: ...

    async def edit(
        self,
        *,
        content: str | None,
        embed: discord.Embed | None,
        view: discord.ui.View | None,
    ) -> None: ...


class InteractionSession:
    """One user-initiated exchange, from receipt to its terminal response."""

    def __init__(
        self,
        *,
        id: int | str,
        origin: OriginKind,
        guild_id: str | None,
        responder: Responder,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.id = id
        self.origin = origin
        self.guild_id = guild_id
        self._responder = responder
        self._clock = clock
        self.state = SessionState.RECEIVED
        self.acknowledged_at: float | None = None
        self.terminal_at: float | None = None

    def __repr__(self) -> str:
        return (
            f"InteractionSession(id={self.id!r}, origin={self.origin.value}, "
            f"state={self.state.value})"
        )

    @property
    def is_terminal(self) -> bool:
        return self.state is SessionState.TERMINAL

    def _log_fields(self) -> dict[str, object]:
        return {"session_id": self.id, "origin": self.origin.value, "guild_id": self.guild_id}

    def _terminate(self) -> None:
        self.state = SessionState.TERMINAL
        self.terminal_at = self._clock()

    def _abandon(self, step: str) -> None:
        logger.warning("interaction.abandoned", step=step, **self._log_fields())
        self._terminate()

    async def respond(
        self, content: str, *, view: discord.ui.View | None = None, ephemeral: bool = True
    ) -> bool:
        """Single direct reply: RECEIVED -> TERMINAL."""
        if self.state is not SessionState.RECEIVED:
            logger.warning(
                "interaction.invalid_transition",
                action="respond",
                state=self.state.value,
                **self._log_fields(),
            )
            return False
        try:
            await self._responder.reply(content, ephemeral=ephemeral, view=view)
        except InteractionExpired:
            self._abandon("respond")
            return False
        self._terminate()
        return True

    async def acknowledge(self, *, ephemeral: bool = False) -> bool:
        """Deferred acknowledgment: RECEIVED -> ACKNOWLEDGED.

        Commands get a "thinking" placeholder; buttons get a deferred update
        of the message they are attached to.
        """
        if self.state is not SessionState.RECEIVED:
            logger.warning(
                "interaction.invalid_transition",
                action="acknowledge",
                state=self.state.value,
                **self._log_fields(),
            )
            return False
        try:
            if self.origin is OriginKind.BUTTON:
                await self._responder.defer_update()
            else:
                await self._responder.defer(ephemeral=ephemeral)
        except InteractionExpired:
            self._abandon("acknowledge")
            return False
        self.state = SessionState.ACKNOWLEDGED
        self.acknowledged_at = self._clock()
        return True

    async def finish(
        self,
        *,
        content: str | None = None,
        embed: discord.Embed | None = None,
        view: discord.ui.View | None = None,
    ) -> bool:
        """The one terminal edit: ACKNOWLEDGED -> TERMINAL.

        A second terminal transition is ignored and logged, never sent.
        """
        if self.state is SessionState.TERMINAL:
            logger.warning("interaction.duplicate_terminal", **self._log_fields())
            return False
        if self.state is not SessionState.ACKNOWLEDGED:
            raise RuntimeError(f"cannot edit {self!r} before acknowledging it")
        # Mark terminal first so a concurrent caller cannot edit again.
        self._terminate()
        try:
            await self._responder.edit(content=content, embed=embed, view=view)
        except InteractionExpired:
            logger.warning("interaction.abandoned", step="finish", **self._log_fields())
            return False
        return True

    async def fail(self, message: str = GENERIC_ERROR_MESSAGE) -> bool:
        """Best-effort generic error from whatever state the session is in."""
        try:
            if self.state is SessionState.ACKNOWLEDGED:
                return await self.finish(content=message)
            if self.state is SessionState.RECEIVED:
                return await self.respond(message, ephemeral=True)
        except Exception:
            logger.exception("interaction.fail_unsent", **self._log_fields())
        return False


@dataclass(frozen=True, slots=True)
class AutocompleteChoice:
    name: str
    value: str


async def run_guarded(session: InteractionSession, handler: Callable[[], Awaitable[None]]) -> None:
    """Outermost boundary: nothing a handler raises escapes the session."""
    try:
        await handler()
    except Exception:
        logger.exception(
            "interaction.unhandled",
            session_id=session.id,
            origin=session.origin.value,
            state=session.state.value,
        )
        if not session.is_terminal:
            await session.fail(GENERIC_ERROR_MESSAGE)


def parse_request_button(custom_id: str) -> MediaReference:
    """Decode ``request|{id}|{kind}``."""
    if not custom_id.startswith(render.REQUEST_BUTTON_PREFIX):
        raise ValidationError(f"not a request button: {custom_id!r}")
    return MediaReference.decode(custom_id[len(render.REQUEST_BUTTON_PREFIX) :])


class InteractionController:
    """Handlers for each interaction kind, independent of the Discord SDK."""

    def __init__(
        self,
        *,
        store: GuildConfigStore,
        pipeline: MediaPipeline,
        public_url: str | None = None,
        autocomplete_timeout: float = AUTOCOMPLETE_TIMEOUT_SECONDS,
    ) -> None:
        self._store = store
        self._pipeline = pipeline
        self._public_url = public_url.rstrip("/") if public_url else None
        self._autocomplete_timeout = autocomplete_timeout

    def dashboard_url(self, guild_id: str | None) -> str | None:
        if not self._public_url or guild_id is None:
            return None
        return f"{self._public_url}/auth/discord?guild_id={guild_id}"

    async def setup(self, session: InteractionSession, *, is_admin: bool) -> None:
        if not is_admin:
            await session.respond(ADMIN_ONLY_MESSAGE)
            return
        url = self.dashboard_url(session.guild_id)
        if url is None:
            await session.respond(DASHBOARD_MISSING_MESSAGE)
            return
        await session.respond(
            "Click the button below to configure Anchorr for this server.\n"
            f"[Configure Bot]({url})",
            view=render.build_setup_view(url),
        )

    async def media_command(
        self, session: InteractionSession, raw_value: str | None, *, request: bool
    ) -> None:
        """``/search`` and ``/request``: the value comes from autocomplete."""
        config = await self._store.get(session.guild_id)
        if config is None or not config.commands_ready:
            await session.respond(NOT_CONFIGURED_MESSAGE)
            return
        if not await session.acknowledge(ephemeral=config.ephemeral_responses):
            return
        try:
            ref = MediaReference.decode(raw_value)
        except ValidationError as exc:
            logger.info("interaction.invalid_selection", session_id=session.id, error=str(exc))
            await session.finish(content=INVALID_SELECTION_MESSAGE)
            return
        await self._enrich_and_finish(session, ref, config, request=request)

    async def request_button(self, session: InteractionSession, custom_id: str) -> None:
        """A "Request" button on a previously rendered search card."""
        try:
            ref = parse_request_button(custom_id)
        except ValidationError as exc:
            logger.info("interaction.invalid_button", session_id=session.id, error=str(exc))
            await session.respond(INVALID_SELECTION_MESSAGE)
            return
        config = await self._store.get(session.guild_id)
        if config is None or not config.commands_ready:
            await session.respond(NOT_CONFIGURED_MESSAGE)
            return
        if not await session.acknowledge():
            return
        await self._enrich_and_finish(session, ref, config, request=True)

    async def _enrich_and_finish(
        self,
        session: InteractionSession,
        ref: MediaReference,
        config: GuildConfig,
        *,
        request: bool,
    ) -> None:
        try:
            enriched = await self._pipeline.enrich(ref, config, request=request)
        except (UpstreamError, ConfigurationMissing) as exc:
            logger.error(
                "interaction.pipeline_failed",
                session_id=session.id,
                guild_id=session.guild_id,
                media_id=ref.external_id,
                kind=ref.kind.value,
                request=request,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            await session.finish(content=PIPELINE_ERROR_MESSAGE)
            return
        embed, view = self._pipeline.render(enriched, config)
        if await session.finish(embed=embed, view=view):
            logger.info(
                "interaction.completed",
                session_id=session.id,
                media_id=ref.external_id,
                kind=ref.kind.value,
                request=request,
            )

    async def autocomplete(self, query: str | None) -> list[AutocompleteChoice]:
        """Up to ten title suggestions; empty on short queries or failure."""
        query = (query or "").strip()
        if len(query) < MIN_QUERY_LENGTH:
            return []
        try:
            with anyio.fail_after(self._autocomplete_timeout):
                results = await self._pipeline.tmdb.search(query)
        except TimeoutError:
            logger.warning("autocomplete.timeout", query=query)
            return []
        except UpstreamError as exc:
            logger.warning("autocomplete.failed", query=query, error=str(exc))
            return []
        except Exception:
            logger.exception("autocomplete.unhandled", query=query)
            return []

        choices: list[AutocompleteChoice] = []
        kinds = {kind.value for kind in MediaKind}
        for candidate in results:
            if candidate.media_type not in kinds or not candidate.poster_path:
                continue
            ref = MediaReference(candidate.id, MediaKind(candidate.media_type))
            choices.append(
                AutocompleteChoice(name=render.autocomplete_label(candidate), value=ref.encode())
            )
            if len(choices) >= MAX_AUTOCOMPLETE_CHOICES:
                break
        return choices
