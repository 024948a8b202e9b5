"""Enrichment pipeline shared by commands, buttons and notifications."""

from __future__ import annotations

from dataclasses import dataclass

import discord
import httpx

from . import render
from .adapters import (
    JellyseerrClient,
    MediaDetails,
    OMDbClient,
    RatingInfo,
    TMDBClient,
)
from .errors import ConfigurationMissing, OptionalEnrichmentFailure
from .log import get_logger
from .types import GuildConfig, MediaReference

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class EnrichedMedia:
    """Everything the presentation layer needs for one title."""

    ref: MediaReference
    details: MediaDetails
    rating: RatingInfo | None
    backdrop_path: str | None
    requested: bool

    @property
    def imdb_id(self) -> str | None:
        return self.details.imdb_id


def find_best_backdrop(details: MediaDetails) -> str | None:
    """Prefer an English-tagged backdrop, else the primary one."""
    if details.images is not None:
        for backdrop in details.images.backdrops:
            if backdrop.iso_639_1 == "en" and backdrop.file_path:
                return backdrop.file_path
    return details.backdrop_path


async def fetch_rating(omdb: OMDbClient, imdb_id: str | None) -> RatingInfo | None:
    """Best-effort OMDb lookup: failures are logged and yield None."""
    try:
        return await omdb.lookup(imdb_id)
    except OptionalEnrichmentFailure as exc:
        logger.warning("omdb.lookup_failed", imdb_id=imdb_id, error=str(exc))
        return None


class MediaPipeline:
    """Submit (optionally), look up details, enrich, and render."""

    def __init__(self, http: httpx.AsyncClient, tmdb: TMDBClient, omdb: OMDbClient) -> None:
        self._http = http
        self.tmdb = tmdb
        self.omdb = omdb

    def jellyseerr_for(self, config: GuildConfig) -> JellyseerrClient:
        if not config.jellyseerr_url:
            raise ConfigurationMissing(f"guild {config.guild_id} has no Jellyseerr URL")
        return JellyseerrClient(self._http, config.jellyseerr_url, config.jellyseerr_api_key)

    async def enrich(
        self, ref: MediaReference, config: GuildConfig, *, request: bool
    ) -> EnrichedMedia:
        """Run steps 1-4. Upstream errors from submit/details propagate."""
        if request:
            await self.jellyseerr_for(config).submit(ref)
        details = await self.tmdb.details(ref)
        rating = await fetch_rating(self.omdb, details.imdb_id)
        return EnrichedMedia(
            ref=ref,
            details=details,
            rating=rating,
            backdrop_path=find_best_backdrop(details),
            requested=request,
        )

    @staticmethod
    def render(
        enriched: EnrichedMedia, config: GuildConfig
    ) -> tuple[discord.Embed, discord.ui.View]:
        status = render.CardStatus.SUCCESS if enriched.requested else render.CardStatus.SEARCH
        embed = render.build_media_embed(
            enriched.details,
            enriched.ref.kind,
            status,
            config,
            enriched.rating,
            enriched.backdrop_path,
        )
        view = render.build_action_view(
            enriched.ref, enriched.imdb_id, requested=enriched.requested
        )
        return embed, view
