"""Per-guild configuration store."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import anyio
import msgspec

from .log import get_logger
from .settings import DEFAULT_STATE_PATH
from .types import GuildConfig

logger = get_logger(__name__)

STATE_VERSION = 1


class GuildConfigData(msgspec.Struct, omit_defaults=True):
    """Stored settings for a single guild."""

    jellyseerr_url: str | None = None
    jellyseerr_api_key: str | None = None
    notification_channel_id: str | None = None
    jellyfin_server_url: str | None = None
    color_search: str | None = None
    color_success: str | None = None
    color_notification: str | None = None
    ephemeral_responses: bool = False


class GuildConfigState(msgspec.Struct):
    """Root state structure."""

    version: int = STATE_VERSION
    guilds: dict[str, GuildConfigData] = msgspec.field(default_factory=dict)


def _atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON atomically using a temp file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(".tmp")
    content = json.dumps(data, indent=2, ensure_ascii=False)
    tmp_path.write_text(content, encoding="utf-8")
    tmp_path.replace(path)


class GuildConfigStore:
    """JSON-file backed key-value store of GuildConfig records.

    The file is re-read whenever its mtime changes, so edits made by the
    dashboard process are picked up without a restart.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path if path is not None else DEFAULT_STATE_PATH
        self._lock = anyio.Lock()
        self._loaded = False
        self._mtime_ns: int | None = None
        self._state = GuildConfigState()

    @property
    def path(self) -> Path:
        return self._path

    def _stat_mtime_ns(self) -> int | None:
        try:
            return self._path.stat().st_mtime_ns
        except FileNotFoundError:
            return None

    def _reload_if_needed(self) -> None:
        current = self._stat_mtime_ns()
        if self._loaded and current == self._mtime_ns:
            return
        self._load()

    def _load(self) -> None:
        self._loaded = True
        self._mtime_ns = self._stat_mtime_ns()
        if self._mtime_ns is None:
            self._state = GuildConfigState()
            return
        try:
            payload = msgspec.json.decode(self._path.read_bytes(), type=GuildConfigState)
        except (OSError, msgspec.DecodeError) as exc:
            logger.warning("state.load_failed", path=str(self._path), error=str(exc))
            self._state = GuildConfigState()
            return
        if payload.version != STATE_VERSION:
            logger.warning(
                "state.version_mismatch", path=str(self._path), version=payload.version
            )
            self._state = GuildConfigState()
            return
        self._state = payload

    def _save(self) -> None:
        payload = msgspec.to_builtins(self._state)
        _atomic_write_json(self._path, payload)
        self._mtime_ns = self._stat_mtime_ns()

    async def get(self, guild_id: str | int | None) -> GuildConfig | None:
        """Return the guild's config, or None if it was never set up."""
        if guild_id is None:
            return None
        async with self._lock:
            self._reload_if_needed()
            data = self._state.guilds.get(str(guild_id))
            if data is None:
                return None
            return GuildConfig(guild_id=str(guild_id), **msgspec.structs.asdict(data))

    async def set(self, config: GuildConfig) -> None:
        """Create or replace the guild's config."""
        async with self._lock:
            self._reload_if_needed()
            self._state.guilds[config.guild_id] = GuildConfigData(
                jellyseerr_url=config.jellyseerr_url,
                jellyseerr_api_key=config.jellyseerr_api_key,
                notification_channel_id=config.notification_channel_id,
                jellyfin_server_url=config.jellyfin_server_url,
                color_search=config.color_search,
                color_success=config.color_success,
                color_notification=config.color_notification,
                ephemeral_responses=config.ephemeral_responses,
            )
            self._save()

    async def clear(self, guild_id: str | int) -> None:
        """Remove all config for a guild."""
        async with self._lock:
            self._reload_if_needed()
            self._state.guilds.pop(str(guild_id), None)
            self._save()
