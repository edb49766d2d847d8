"""Runtime settings read from ``QRBOT_*`` environment variables."""

import os
from dataclasses import dataclass

from qrbot.artifacts import DEFAULT_LOGO_MAX_BYTES, DEFAULT_LOGO_TIMEOUT


def _env_number(env, name: str, default, cast):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class Settings:
    db_url: str = "sqlite:///qrbot.db"
    render_workers: int = 4
    logo_timeout: float = DEFAULT_LOGO_TIMEOUT
    logo_max_bytes: int = DEFAULT_LOGO_MAX_BYTES
    log_level: str = "INFO"
    log_file: str | None = None

    @classmethod
    def from_env(cls, env=None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            db_url=env.get("QRBOT_DB_URL") or cls.db_url,
            render_workers=_env_number(env, "QRBOT_RENDER_WORKERS", cls.render_workers, int),
            logo_timeout=_env_number(env, "QRBOT_LOGO_TIMEOUT", cls.logo_timeout, float),
            logo_max_bytes=_env_number(env, "QRBOT_LOGO_MAX_BYTES", cls.logo_max_bytes, int),
            log_level=(env.get("QRBOT_LOG_LEVEL") or cls.log_level).upper(),
            log_file=env.get("QRBOT_LOG_FILE") or None,
        )
