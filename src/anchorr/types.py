"""Type definitions shared across the bridge."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from .errors import ValidationError


class MediaKind(str, enum.Enum):
    """The two kinds of requestable media."""

    MOVIE = "movie"
    TV = "tv"

    @classmethod
    def parse(cls, value: str) -> MediaKind:
        """Parse an upstream media kind, rejecting anything unrecognized."""
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"unrecognized media kind: {value!r}") from None


@dataclass(frozen=True, slots=True)
class MediaReference:
    """A requestable title: external (TMDB) id and kind."""

    external_id: int
    kind: MediaKind

    def encode(self) -> str:
        return f"{self.external_id}|{self.kind.value}"

    @classmethod
    def decode(cls, raw: str | None) -> MediaReference:
        """Decode an ``{id}|{kind}`` value produced by autocomplete.

        Raises ValidationError for anything that is not exactly two parts
        with a numeric id and a known kind.
        """
        parts = (raw or "").split("|")
        if len(parts) != 2 or not all(parts):
            raise ValidationError(f"malformed media selection: {raw!r}")
        external_id, kind = parts
        if not (external_id.isascii() and external_id.isdigit()):
            raise ValidationError(f"malformed media id: {external_id!r}")
        return cls(external_id=int(external_id), kind=MediaKind.parse(kind))


@dataclass(frozen=True, slots=True)
class CoalescingKey:
    """Groups ingestion events belonging to one logical unit."""

    guild_id: str
    media_id: str


@dataclass(frozen=True, slots=True)
class GuildConfig:
    """Per-guild settings, as stored by the dashboard."""

    guild_id: str
    jellyseerr_url: str | None = None
    jellyseerr_api_key: str | None = None
    notification_channel_id: str | None = None
    jellyfin_server_url: str | None = None
    color_search: str | None = None
    color_success: str | None = None
    color_notification: str | None = None
    ephemeral_responses: bool = False

    @property
    def commands_ready(self) -> bool:
        return bool(self.jellyseerr_url)

    @property
    def notifications_ready(self) -> bool:
        return bool(self.notification_channel_id and self.jellyfin_server_url)
