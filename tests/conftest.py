from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from anchorr.adapters import OMDbClient, TMDBClient
from anchorr.errors import InteractionExpired
from anchorr.pipeline import MediaPipeline
from anchorr.state import GuildConfigStore
from anchorr.types import GuildConfig

GUILD_ID = "111111111111111111"
CHANNEL_ID = "222222222222222222"
JELLYSEERR_URL = "http://jellyseerr.local/api/v1"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


async def settle(rounds: int = 10) -> None:
    """Let freshly scheduled tasks run up to their next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    """Manually advanced monotonic clock with a matching sleep()."""

    def __init__(self) -> None:
        self.now = 0.0
        self._sleepers: list[tuple[float, asyncio.Future[None]]] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.now + delay, future))
        await future

    def advance(self, seconds: float) -> None:
        self.now += seconds
        remaining = []
        for deadline, future in self._sleepers:
            if future.done():
                continue
            if deadline <= self.now:
                future.set_result(None)
            else:
                remaining.append((deadline, future))
        self._sleepers = remaining


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class FakeResponder:
    """Records what a session sends; can simulate an expired interaction."""

    def __init__(self, *, expire_on: str | None = None) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.expire_on = expire_on

    def _record(self, name: str, **kwargs: Any) -> None:
        if self.expire_on == name:
            raise InteractionExpired(f"{name}: Unknown interaction")
        self.calls.append((name, kwargs))

    async def reply(self, content: str, *, ephemeral: bool, view: Any = None) -> None:
        self._record("reply", content=content, ephemeral=ephemeral, view=view)

    async def defer(self, *, ephemeral: bool) -> None:
        self._record("defer", ephemeral=ephemeral)

    async def defer_update(self) -> None:
        self._record("defer_update")

    async def edit(self, *, content: Any, embed: Any, view: Any) -> None:
        self._record("edit", content=content, embed=embed, view=view)

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def last(self, name: str) -> dict[str, Any]:
        for call_name, kwargs in reversed(self.calls):
            if call_name == name:
                return kwargs
        raise AssertionError(f"no {name} call recorded: {self.names()}")


class FakeSender:
    def __init__(self, *, fail: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail = fail

    async def send_message(self, *, channel_id: int, content=None, view=None, embed=None):
        from anchorr.client import SentMessage

        if self.fail:
            return None
        self.sent.append({"channel_id": channel_id, "embed": embed, "view": view})
        return SentMessage(message_id=len(self.sent), channel_id=channel_id)


class Upstream:
    """httpx.MockTransport router for TMDB, OMDb and Jellyseerr."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], Any]] = {}

    def route(self, host: str, path: str, handler: Callable[[httpx.Request], Any]) -> None:
        self.routes[(host, path)] = handler

    def json(self, host: str, path: str, payload: Any, status: int = 200) -> None:
        self.route(host, path, lambda request: httpx.Response(status, json=payload))

    def hits(self, host: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == host]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.url.host, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"status_message": "not found"})
        result = handler(request)
        if asyncio.iscoroutine(result):
            result = await result
        return result


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
async def http(upstream: Upstream):
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        yield client


@pytest.fixture
def pipeline(http: httpx.AsyncClient) -> MediaPipeline:
    tmdb = TMDBClient(http, "tmdb-key")
    omdb = OMDbClient(http, "omdb-key")
    return MediaPipeline(http, tmdb, omdb)


@pytest.fixture
def store(tmp_path: Path) -> GuildConfigStore:
    return GuildConfigStore(tmp_path / "guild_config.json")


@pytest.fixture
def guild_config() -> GuildConfig:
    return GuildConfig(
        guild_id=GUILD_ID,
        jellyseerr_url=JELLYSEERR_URL,
        jellyseerr_api_key="seerr-key",
        notification_channel_id=CHANNEL_ID,
        jellyfin_server_url="http://jellyfin.local:8096",
    )


@pytest.fixture
async def configured_store(store: GuildConfigStore, guild_config: GuildConfig) -> GuildConfigStore:
    await store.set(guild_config)
    return store


def load_fixture(name: str) -> Any:
    return json.loads((Path(__file__).parent / "fixtures" / name).read_text(encoding="utf-8"))
