"""Embed and button rendering.

Pure formatting: nothing here performs I/O.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

import discord

from .types import GuildConfig, MediaKind, MediaReference

if TYPE_CHECKING:
    from .adapters import JellyfinEvent, MediaDetails, RatingInfo, SearchCandidate

NOT_AVAILABLE = "N/A"
NO_DESCRIPTION = "No description available."
FIELD_LIMIT = 1024

DEFAULT_COLOR_SEARCH = "#ef9f76"
DEFAULT_COLOR_SUCCESS = "#a6d189"
DEFAULT_COLOR_NOTIFICATION = "#cba6f7"

TMDB_BACKDROP_URL = "https://image.tmdb.org/t/p/w780"
REQUEST_BUTTON_PREFIX = "request|"
REQUESTED_BUTTON_ID = "requested"

TICKS_PER_MINUTE = 10_000_000 * 60


class CardStatus(enum.Enum):
    SEARCH = "search"
    SUCCESS = "success"
    DETAILS = "details"


def parse_color(value: str | None, default: str) -> int:
    """Turn a ``#rrggbb`` string into an int, falling back to ``default``."""
    for candidate in (value, default):
        if not candidate:
            continue
        try:
            return int(candidate.lstrip("#"), 16)
        except ValueError:
            continue
    return 0


def minutes_to_hhmm(minutes: int | float | None) -> str:
    if minutes is None or minutes != minutes or minutes <= 0:
        return NOT_AVAILABLE
    minutes = int(minutes)
    return f"{minutes // 60}h {minutes % 60}m"


def ticks_to_minutes(ticks: int | float | str | None) -> int | None:
    """Convert Jellyfin run time ticks (100ns units) to whole minutes."""
    try:
        value = float(ticks)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return round(value / TICKS_PER_MINUTE)


def truncate(text: str, limit: int = FIELD_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def _known(value: str | None) -> str | None:
    """OMDb reports missing values as the string "N/A"."""
    if not value or value == NOT_AVAILABLE:
        return None
    return value


def format_rating(rating: RatingInfo | None) -> str:
    score = _known(rating.imdb_rating) if rating is not None else None
    return f"{score}/10" if score else NOT_AVAILABLE


def header_line(kind_is_movie: bool, rating: RatingInfo | None) -> str:
    director = _known(rating.director) if rating is not None else None
    if kind_is_movie and director:
        return f"Directed by {director}"
    return "Summary"


def imdb_url(imdb_id: str) -> str:
    return f"https://www.imdb.com/title/{imdb_id}/"


def backdrop_url(path: str | None) -> str | None:
    return f"{TMDB_BACKDROP_URL}{path}" if path else None


def autocomplete_label(candidate: SearchCandidate) -> str:
    emoji = "🎬" if candidate.media_type == MediaKind.MOVIE.value else "📺"
    year = candidate.year
    suffix = f" ({year})" if year else ""
    # Choice names are capped at 100 characters by Discord.
    return truncate(f"{emoji} {candidate.display_title}{suffix}", 100)


def build_media_embed(
    details: MediaDetails,
    kind: MediaKind,
    status: CardStatus,
    config: GuildConfig,
    rating: RatingInfo | None,
    backdrop_path: str | None,
) -> discord.Embed:
    """Render a search result or a successful request."""
    if status is CardStatus.SUCCESS:
        author = "✅ Successfully Requested!"
        color = parse_color(config.color_success, DEFAULT_COLOR_SUCCESS)
    elif status is CardStatus.SEARCH:
        author = "🎬 Movie Found" if kind is MediaKind.MOVIE else "📺 TV Show Found"
        color = parse_color(config.color_search, DEFAULT_COLOR_SEARCH)
    else:
        author = "Item Details"
        color = parse_color(config.color_search, DEFAULT_COLOR_SEARCH)

    year = details.year
    title = f"{details.display_title} ({year})" if year else details.display_title
    imdb_id = details.imdb_id

    embed = discord.Embed(title=title, color=color, url=imdb_url(imdb_id) if imdb_id else None)
    embed.set_author(name=author)
    image = backdrop_url(backdrop_path)
    if image:
        embed.set_image(url=image)

    embed.add_field(
        name=header_line(kind is MediaKind.MOVIE, rating),
        value=truncate(details.overview or NO_DESCRIPTION),
        inline=False,
    )
    genres = ", ".join(g.name for g in details.genres if g.name) or NOT_AVAILABLE
    if kind is MediaKind.MOVIE:
        runtime = minutes_to_hhmm(details.runtime)
    elif details.number_of_seasons:
        runtime = f"{details.number_of_seasons} seasons"
    else:
        runtime = NOT_AVAILABLE
    embed.add_field(name="Genre", value=genres, inline=True)
    embed.add_field(name="Runtime", value=runtime, inline=True)
    embed.add_field(name="Rating", value=format_rating(rating), inline=True)
    return embed


def _link_buttons(imdb_id: str | None) -> list[discord.ui.Button]:
    if not imdb_id:
        return []
    return [
        discord.ui.Button(
            label="Letterboxd",
            style=discord.ButtonStyle.link,
            url=f"https://letterboxd.com/imdb/{imdb_id}",
        ),
        discord.ui.Button(
            label="IMDb",
            style=discord.ButtonStyle.link,
            url=f"https://www.imdb.com/title/{imdb_id}",
        ),
    ]


def build_action_view(
    ref: MediaReference, imdb_id: str | None, *, requested: bool = False
) -> discord.ui.View:
    """Link buttons plus either a Request button or a disabled Requested one."""
    view = discord.ui.View(timeout=None)
    for button in _link_buttons(imdb_id):
        view.add_item(button)
    if requested:
        view.add_item(
            discord.ui.Button(
                label="Requested",
                style=discord.ButtonStyle.success,
                custom_id=REQUESTED_BUTTON_ID,
                disabled=True,
            )
        )
    else:
        view.add_item(
            discord.ui.Button(
                label="Request",
                style=discord.ButtonStyle.primary,
                custom_id=f"{REQUEST_BUTTON_PREFIX}{ref.encode()}",
            )
        )
    return view


def build_setup_view(dashboard_url: str) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    view.add_item(
        discord.ui.Button(label="Configure Bot", style=discord.ButtonStyle.link, url=dashboard_url)
    )
    return view


# --- Jellyfin notifications ---


def _index(value: int | str | None) -> str:
    try:
        return f"{int(value):02d}"  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return "??"


def _server_base(event: JellyfinEvent, config: GuildConfig) -> str:
    return (event.server_url or config.jellyfin_server_url or "").rstrip("/")


def notification_title(event: JellyfinEvent) -> str:
    name = event.name or "Unknown"
    if event.item_type == "Episode":
        series = event.series_name or "Unknown"
        season = _index(event.parent_index_number)
        episode = _index(event.index_number)
        return f"{series} - S{season}E{episode} - {name}"
    return f"{name} ({event.year})" if event.year else name


def watch_url(event: JellyfinEvent, config: GuildConfig) -> str | None:
    if not event.item_id:
        return None
    url = f"{_server_base(event, config)}/web/index.html#!/details?id={event.item_id}"
    if event.server_id:
        url += f"&serverId={event.server_id}"
    return url


def thumbnail_url(event: JellyfinEvent, config: GuildConfig) -> str | None:
    if not event.item_id:
        return None
    return f"{_server_base(event, config)}/Items/{event.item_id}/Images/Thumb"


def _genre_text(event: JellyfinEvent) -> str | None:
    if isinstance(event.genres, list):
        return ", ".join(g for g in event.genres if g) or None
    return event.genres or None


def build_notification_embed(
    event: JellyfinEvent, config: GuildConfig, rating: RatingInfo | None
) -> discord.Embed:
    is_movie = event.item_type == "Movie"
    author = "🎬 New Movie Added" if is_movie else "📺 New Episode Added"
    embed = discord.Embed(
        title=truncate(notification_title(event), 256),
        url=watch_url(event, config),
        color=parse_color(config.color_notification, DEFAULT_COLOR_NOTIFICATION),
    )
    embed.set_author(name=author)
    thumbnail = thumbnail_url(event, config)
    if thumbnail:
        embed.set_image(url=thumbnail)

    plot = _known(rating.plot) if rating is not None else None
    omdb_genre = _known(rating.genre) if rating is not None else None
    embed.add_field(
        name=header_line(is_movie, rating),
        value=truncate(event.overview or plot or NO_DESCRIPTION),
        inline=False,
    )
    embed.add_field(name="Genre", value=_genre_text(event) or omdb_genre or NOT_AVAILABLE, inline=True)
    embed.add_field(
        name="Runtime", value=minutes_to_hhmm(ticks_to_minutes(event.run_time_ticks)), inline=True
    )
    embed.add_field(name="Rating", value=format_rating(rating), inline=True)
    return embed


def build_notification_view(event: JellyfinEvent, config: GuildConfig) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    for button in _link_buttons(event.provider_imdb):
        view.add_item(button)
    url = watch_url(event, config)
    if url:
        view.add_item(
            discord.ui.Button(label="▶ Watch Now", style=discord.ButtonStyle.link, url=url)
        )
    return view
