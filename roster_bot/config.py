import os
from dataclasses import dataclass

DEFAULT_STAGING_TIMEOUT = 120


@dataclass(frozen=True)
class Settings:
    token: str
    data_path: str = "data"
    state_path: str = "state/user_database.json"
    # Seconds before uncommitted staged config is discarded
    staging_timeout: int = DEFAULT_STAGING_TIMEOUT
    # When set, commands are also synced to this guild for faster propagation
    guild_id: int | None = None
    log_level: str = "INFO"


def _int_env(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw)
    except ValueError:
        return None


def load_settings() -> Settings:
    token = os.getenv("DISCORD_BOT_TOKEN", "").strip()
    timeout = _int_env("ROSTER_STAGING_TIMEOUT")
    return Settings(
        token=token or "",
        data_path=os.getenv("ROSTER_DATA_PATH", "").strip() or "data",
        state_path=os.getenv("ROSTER_STATE_PATH", "").strip()
        or "state/user_database.json",
        staging_timeout=timeout if timeout and timeout > 0 else DEFAULT_STAGING_TIMEOUT,
        guild_id=_int_env("ROSTER_GUILD_ID"),
        log_level=os.getenv("ROSTER_LOG_LEVEL", "").strip().upper() or "INFO",
    )
