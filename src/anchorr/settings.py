"""Process settings loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigurationMissing

DEFAULT_STATE_PATH = Path.home() / ".anchorr" / "guild_config.json"
DEFAULT_WEBHOOK_PORT = 8282


def _optional(env: dict[str, str], name: str) -> str | None:
    value = env.get(name, "").strip()
    return value or None


def _required(env: dict[str, str], name: str) -> str:
    value = _optional(env, name)
    if value is None:
        raise ConfigurationMissing(f"environment variable {name} is not set")
    return value


@dataclass(frozen=True, slots=True)
class Settings:
    """Process-wide settings. Per-guild settings live in the state store."""

    discord_token: str
    tmdb_api_key: str
    omdb_api_key: str | None = None
    bot_id: str | None = None
    public_bot_url: str | None = None
    webhook_host: str = "0.0.0.0"
    webhook_port: int = DEFAULT_WEBHOOK_PORT
    state_path: Path = DEFAULT_STATE_PATH
    debug_guild_id: int | None = None
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(
        cls, env: dict[str, str] | None = None, *, dotenv: bool = True
    ) -> Settings:
        """Build settings from ``env`` (default: ``os.environ`` plus ``.env``)."""
        if env is None:
            if dotenv:
                load_dotenv()
            env = dict(os.environ)

        port_raw = _optional(env, "WEBHOOK_PORT")
        debug_guild = _optional(env, "DEBUG_GUILD_ID")
        state_path = _optional(env, "ANCHORR_STATE_PATH")
        try:
            port = int(port_raw) if port_raw else DEFAULT_WEBHOOK_PORT
            debug_guild_id = int(debug_guild) if debug_guild else None
        except ValueError as exc:
            raise ConfigurationMissing(f"invalid numeric setting: {exc}") from exc

        return cls(
            discord_token=_required(env, "DISCORD_TOKEN"),
            tmdb_api_key=_required(env, "TMDB_API_KEY"),
            omdb_api_key=_optional(env, "OMDB_API_KEY"),
            bot_id=_optional(env, "BOT_ID"),
            public_bot_url=_optional(env, "PUBLIC_BOT_URL"),
            webhook_host=_optional(env, "WEBHOOK_HOST") or "0.0.0.0",
            webhook_port=port,
            state_path=Path(state_path).expanduser() if state_path else DEFAULT_STATE_PATH,
            debug_guild_id=debug_guild_id,
            log_level=_optional(env, "LOG_LEVEL") or "INFO",
            log_json=(_optional(env, "LOG_FORMAT") or "").lower() == "json",
        )
