"""Clients for the external services the bridge talks to.

Every call is bounded by a timeout and either returns a typed result or
raises one of the errors in :mod:`anchorr.errors`:

- ``UpstreamTimeout`` when the service did not answer in time,
- ``UpstreamError`` for connection failures, non-2xx answers and payloads
  that do not decode,
- ``OptionalEnrichmentFailure`` for the best-effort OMDb lookup.
"""

from __future__ import annotations

from typing import Any, TypeVar

import httpx
import msgspec

from .errors import OptionalEnrichmentFailure, UpstreamError, UpstreamTimeout, ValidationError
from .log import get_logger
from .types import MediaKind, MediaReference

logger = get_logger(__name__)

TMDB_BASE_URL = "https://api.themoviedb.org/3"
OMDB_BASE_URL = "http://www.omdbapi.com/"

TMDB_TIMEOUT_SECONDS = 10.0
OMDB_TIMEOUT_SECONDS = 5.0
JELLYSEERR_TIMEOUT_SECONDS = 15.0

T = TypeVar("T")


# --- TMDB payloads ---


class SearchCandidate(msgspec.Struct):
    """One entry of a TMDB multi-search."""

    id: int
    media_type: str = ""
    title: str | None = None
    name: str | None = None
    release_date: str | None = None
    first_air_date: str | None = None
    poster_path: str | None = None

    @property
    def display_title(self) -> str:
        return self.title or self.name or "Unknown"

    @property
    def year(self) -> str | None:
        return (self.release_date or self.first_air_date or "")[:4] or None


class Genre(msgspec.Struct):
    name: str = ""


class ExternalIds(msgspec.Struct):
    imdb_id: str | None = None


class ImageAsset(msgspec.Struct):
    file_path: str | None = None
    iso_639_1: str | None = None


class ImageSet(msgspec.Struct):
    backdrops: list[ImageAsset] = []


class MediaDetails(msgspec.Struct):
    """TMDB movie or TV details with external ids and images appended."""

    id: int
    title: str | None = None
    name: str | None = None
    release_date: str | None = None
    first_air_date: str | None = None
    overview: str | None = None
    genres: list[Genre] = []
    runtime: int | None = None
    number_of_seasons: int | None = None
    backdrop_path: str | None = None
    poster_path: str | None = None
    external_ids: ExternalIds | None = None
    images: ImageSet | None = None

    @property
    def display_title(self) -> str:
        return self.title or self.name or "Unknown"

    @property
    def year(self) -> str | None:
        return (self.release_date or self.first_air_date or "")[:4] or None

    @property
    def imdb_id(self) -> str | None:
        if self.external_ids is None:
            return None
        return self.external_ids.imdb_id or None


class SearchResults(msgspec.Struct):
    results: list[SearchCandidate] = []


# --- OMDb payloads ---


class RatingInfo(msgspec.Struct):
    """The subset of an OMDb record used for enrichment."""

    response: str = msgspec.field(default="False", name="Response")
    title: str | None = msgspec.field(default=None, name="Title")
    director: str | None = msgspec.field(default=None, name="Director")
    genre: str | None = msgspec.field(default=None, name="Genre")
    plot: str | None = msgspec.field(default=None, name="Plot")
    imdb_rating: str | None = msgspec.field(default=None, name="imdbRating")


# --- Jellyfin webhook payload ---


class JellyfinEvent(msgspec.Struct, rename="pascal"):
    """A Jellyfin webhook-plugin notification.

    Every field is optional; the plugin's templates vary and some fields come
    through as strings.
    """

    notification_type: str | None = None
    item_type: str | None = None
    item_id: str | None = None
    series_id: str | None = None
    name: str | None = None
    series_name: str | None = None
    index_number: int | str | None = None
    parent_index_number: int | str | None = None
    year: int | str | None = None
    overview: str | None = None
    run_time_ticks: int | float | str | None = None
    genres: str | list[str] | None = None
    provider_imdb: str | None = msgspec.field(default=None, name="Provider_imdb")
    server_id: str | None = None
    server_url: str | None = None


class _NotificationEnvelope(msgspec.Struct, rename="pascal"):
    notification_type: Any = None


def decode_notification_type(body: bytes) -> str | None:
    """Read only ``NotificationType``, ignoring how the other fields are typed."""
    try:
        envelope = msgspec.json.decode(body, type=_NotificationEnvelope)
    except msgspec.DecodeError as exc:
        raise ValidationError(f"invalid Jellyfin payload: {exc}") from exc
    value = envelope.notification_type
    return value if isinstance(value, str) else None


def decode_jellyfin_event(body: bytes) -> JellyfinEvent:
    """Decode a webhook body, coercing numeric strings where possible."""
    try:
        return msgspec.json.decode(body, type=JellyfinEvent, strict=False)
    except msgspec.DecodeError as exc:
        raise ValidationError(f"invalid Jellyfin payload: {exc}") from exc


# --- HTTP plumbing ---


async def _send(
    http: httpx.AsyncClient,
    service: str,
    method: str,
    url: str,
    *,
    timeout: float,
    **kwargs: Any,
) -> httpx.Response:
    try:
        response = await http.request(method, url, timeout=timeout, **kwargs)
        response.raise_for_status()
    except httpx.TimeoutException as exc:
        raise UpstreamTimeout(service, f"timed out after {timeout}s") from exc
    except httpx.HTTPStatusError as exc:
        body = exc.response.text[:200]
        raise UpstreamError(
            service,
            f"HTTP {exc.response.status_code}: {body}",
            status=exc.response.status_code,
        ) from exc
    except httpx.HTTPError as exc:
        raise UpstreamError(service, f"{type(exc).__name__}: {exc}") from exc
    return response


def _decode(service: str, response: httpx.Response, type_: type[T]) -> T:
    try:
        return msgspec.json.decode(response.content, type=type_)
    except msgspec.DecodeError as exc:
        raise UpstreamError(service, f"unexpected payload: {exc}") from exc


class TMDBClient:
    """Metadata search and details."""

    service = "tmdb"

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        *,
        base_url: str = TMDB_BASE_URL,
        timeout: float = TMDB_TIMEOUT_SECONDS,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def search(self, query: str) -> list[SearchCandidate]:
        response = await _send(
            self._http,
            self.service,
            "GET",
            f"{self._base_url}/search/multi",
            timeout=self._timeout,
            params={"api_key": self._api_key, "query": query, "include_adult": "false"},
        )
        return _decode(self.service, response, SearchResults).results

    async def details(self, ref: MediaReference) -> MediaDetails:
        response = await _send(
            self._http,
            self.service,
            "GET",
            f"{self._base_url}/{ref.kind.value}/{ref.external_id}",
            timeout=self._timeout,
            params={"api_key": self._api_key, "append_to_response": "external_ids,images"},
        )
        return _decode(self.service, response, MediaDetails)


class OMDbClient:
    """Supplementary ratings and credits, keyed by IMDb id."""

    service = "omdb"

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str | None,
        *,
        base_url: str = OMDB_BASE_URL,
        timeout: float = OMDB_TIMEOUT_SECONDS,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def lookup(self, imdb_id: str | None) -> RatingInfo | None:
        """Return the OMDb record, or None when there is nothing to look up.

        Raises OptionalEnrichmentFailure when the lookup itself fails.
        """
        if not imdb_id or not self._api_key:
            return None
        try:
            response = await _send(
                self._http,
                self.service,
                "GET",
                self._base_url,
                timeout=self._timeout,
                params={"i": imdb_id, "apikey": self._api_key},
            )
            info = _decode(self.service, response, RatingInfo)
        except UpstreamError as exc:
            raise OptionalEnrichmentFailure(str(exc)) from exc
        return info if info.response == "True" else None


class JellyseerrClient:
    """Request submission for one guild's Jellyseerr instance."""

    service = "jellyseerr"

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: str,
        api_key: str | None,
        *,
        timeout: float = JELLYSEERR_TIMEOUT_SECONDS,
    ) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key or ""
        self._timeout = timeout

    async def submit(self, ref: MediaReference) -> None:
        payload: dict[str, Any] = {"mediaId": ref.external_id, "mediaType": ref.kind.value}
        if ref.kind is MediaKind.TV:
            payload["seasons"] = "all"
        await _send(
            self._http,
            self.service,
            "POST",
            f"{self._base_url}/request",
            timeout=self._timeout,
            json=payload,
            headers={"X-Api-Key": self._api_key},
        )
        logger.info("jellyseerr.requested", media_id=ref.external_id, kind=ref.kind.value)
