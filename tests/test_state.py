from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from anchorr.state import GuildConfigStore
from anchorr.types import GuildConfig

from .conftest import GUILD_ID

pytestmark = pytest.mark.anyio


async def test_missing_file_means_unconfigured(store: GuildConfigStore) -> None:
    assert await store.get(GUILD_ID) is None
    assert await store.get(None) is None
    assert not store.path.exists()


async def test_set_get_roundtrip(store: GuildConfigStore, guild_config: GuildConfig) -> None:
    await store.set(guild_config)
    assert await store.get(GUILD_ID) == guild_config
    assert await store.get(int(GUILD_ID)) == guild_config

    on_disk = json.loads(store.path.read_text(encoding="utf-8"))
    assert on_disk["version"] == 1
    assert on_disk["guilds"][GUILD_ID]["jellyseerr_url"] == guild_config.jellyseerr_url
    # Unset values are not written.
    assert "color_search" not in on_disk["guilds"][GUILD_ID]


async def test_clear(store: GuildConfigStore, guild_config: GuildConfig) -> None:
    await store.set(guild_config)
    await store.clear(GUILD_ID)
    assert await store.get(GUILD_ID) is None


async def test_picks_up_external_edits(store: GuildConfigStore, guild_config: GuildConfig) -> None:
    await store.set(guild_config)

    payload = json.loads(store.path.read_text(encoding="utf-8"))
    payload["guilds"]["999"] = {"jellyseerr_url": "http://other"}
    store.path.write_text(json.dumps(payload), encoding="utf-8")
    stat = store.path.stat()
    os.utime(store.path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

    other = await store.get("999")
    assert other is not None
    assert other.commands_ready
    assert not other.notifications_ready


async def test_corrupt_file_is_treated_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "guild_config.json"
    path.write_text("{ nope", encoding="utf-8")
    assert await GuildConfigStore(path).get(GUILD_ID) is None


async def test_unknown_version_is_ignored(tmp_path: Path) -> None:
    path = tmp_path / "guild_config.json"
    path.write_text(
        json.dumps({"version": 99, "guilds": {GUILD_ID: {"jellyseerr_url": "http://x"}}}),
        encoding="utf-8",
    )
    assert await GuildConfigStore(path).get(GUILD_ID) is None
