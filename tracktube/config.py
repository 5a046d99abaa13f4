from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = ".tracktube"
_DATA_DIR_RELATIVE_DEFAULTS: tuple[tuple[str, Path], ...] = (
    ("db_path", Path("tracktube.db")),
    ("log_dir", Path("logs")),
)
_PATH_FIELDS: tuple[str, ...] = (
    "data_dir",
    *(field_name for field_name, _ in _DATA_DIR_RELATIVE_DEFAULTS),
)
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = (
    "rewarm_store_on_cache_hit",
    "telemetry_enabled",
)


def _default_in_data_dir(relative_path: Path) -> Path:
    return Path(DEFAULT_DATA_DIR) / relative_path


def _data_dir_default_note(relative_path: Path) -> str:
    return f"Defaults to `${{TRACKTUBE_DATA_DIR}}/{relative_path}` when not explicitly set."


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _normalize_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if normalized:
        return normalized
    return None


class AppSettings(BaseSettings):
    """
    Runtime configuration, read from `TRACKTUBE_*` environment variables or `.env`.
    """

    model_config = SettingsConfigDict(
        env_prefix="TRACKTUBE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Paths and server.
    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root runtime directory for the track/video database and logs.",
    )
    db_path: Path = Field(
        default=_default_in_data_dir(Path("tracktube.db")),
        description=f"SQLite database path. {_data_dir_default_note(Path('tracktube.db'))}",
    )
    host: str = Field(default="127.0.0.1", description="Bind address for `tracktube serve`.")
    port: int = Field(default=8080, ge=1, le=65535, description="Port for `tracktube serve`.")

    # Spotify playback source.
    spotify_api_base_url: str = Field(
        default="https://api.spotify.com/v1",
        description="Spotify Web API base URL.",
    )
    spotify_access_token: str | None = Field(
        default=None,
        description="Static Spotify bearer token. Takes precedence over the token file.",
    )
    spotify_token_path: Path | None = Field(
        default=None,
        description=(
            "JSON file holding `access_token`, kept fresh by an external OAuth helper. "
            "Re-read on every poll."
        ),
    )
    spotify_http_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout for Spotify playback requests.",
    )
    spotify_market: str | None = Field(
        default=None,
        description="Optional ISO market code passed to the playback endpoint.",
    )

    # YouTube search.
    youtube_api_key: str | None = Field(
        default=None,
        description="YouTube Data API key used for `search.list`.",
    )
    youtube_search_query_suffix: str | None = Field(
        default=None,
        description="Optional words appended to every search query, e.g. `music video`.",
    )
    youtube_daily_quota_limit: int = Field(
        default=10_000,
        description="Expected daily YouTube Data API quota budget used for warnings.",
    )
    youtube_quota_warning_percent: float = Field(
        default=0.8,
        description="Warn when estimated daily usage exceeds this fraction of quota limit.",
    )

    # Polling loop and caching.
    poll_interval_seconds: float = Field(
        default=0.25,
        description="Delay between playback polls when nothing failed.",
    )
    fetch_backoff_seconds: float = Field(
        default=5.0,
        description="Delay before retrying a failed playback fetch.",
    )
    resolve_max_attempts: int | None = Field(
        default=3,
        description=(
            "Video search attempts per track change before the change is reported as failed. "
            "Empty means retry until the search succeeds."
        ),
    )
    resolve_retry_delay_seconds: float = Field(
        default=0.0,
        ge=0.0,
        description="Delay between video search retries for the same track change.",
    )
    recency_cache_capacity: int = Field(
        default=256,
        ge=1,
        description="Maximum track/video pairs kept in the in-memory recency cache.",
    )
    rewarm_store_on_cache_hit: bool = Field(
        default=False,
        description="Write memory-cache hits back to the database.",
    )

    # Logging.
    log_dir: Path = Field(
        default=_default_in_data_dir(Path("logs")),
        description=f"Directory for log files. {_data_dir_default_note(Path('logs'))}",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level (stdout).",
    )

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=True,
        description="Enable lightweight internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description=(
            "Telemetry sink backend. `log` emits structured telemetry locally; "
            "`none` disables sink output."
        ),
    )

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("TRACKTUBE_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("TRACKTUBE_TELEMETRY_SINK must be set to: none, log.")

    @field_validator("spotify_api_base_url", mode="before")
    @classmethod
    def _normalize_spotify_base_url(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("TRACKTUBE_SPOTIFY_API_BASE_URL must be a string.")
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError("TRACKTUBE_SPOTIFY_API_BASE_URL must not be empty.")
        return normalized

    @field_validator("resolve_max_attempts", mode="before")
    @classmethod
    def _normalize_resolve_max_attempts(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("resolve_max_attempts")
    @classmethod
    def _check_resolve_max_attempts(cls, value: int | None) -> int | None:
        if value is not None and value < 1:
            raise ValueError("TRACKTUBE_RESOLVE_MAX_ATTEMPTS must be at least 1 or empty.")
        return value

    @field_validator(*_PATH_FIELDS, "spotify_token_path", mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str) and not value.strip():
            return None
        return _resolve_path(value)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)

    @field_validator(
        "spotify_access_token",
        "spotify_market",
        "youtube_api_key",
        "youtube_search_query_suffix",
        mode="before",
    )
    @classmethod
    def _normalize_optional_strings(cls, value: Any) -> str | None:
        return _normalize_optional_text(value)


def _validate_credentials(settings: AppSettings) -> None:
    errors: list[str] = []

    if settings.youtube_api_key is None:
        errors.append("TRACKTUBE_YOUTUBE_API_KEY is required for video search.")
    if settings.spotify_access_token is None:
        if settings.spotify_token_path is None:
            errors.append(
                "Set TRACKTUBE_SPOTIFY_ACCESS_TOKEN or TRACKTUBE_SPOTIFY_TOKEN_PATH "
                "to read playback state."
            )
        elif not settings.spotify_token_path.is_file():
            errors.append(f"Missing Spotify token JSON: {settings.spotify_token_path}")

    if errors:
        bullets = "\n".join(f"- {message}" for message in errors)
        raise ValueError(f"Invalid tracktube configuration:\n{bullets}")


def _apply_path_defaults(settings: AppSettings) -> AppSettings:
    updates: dict[str, Path] = {}
    for field_name, relative_default in _DATA_DIR_RELATIVE_DEFAULTS:
        if field_name in settings.model_fields_set:
            continue
        updates[field_name] = settings.data_dir / relative_default
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def _resolve_path_fields(settings: AppSettings) -> AppSettings:
    resolved_updates = {
        field_name: _resolve_path(getattr(settings, field_name))
        for field_name in _PATH_FIELDS
    }
    return settings.model_copy(update=resolved_updates)


def load_settings(*, validate_credentials: bool = True) -> AppSettings:
    settings = AppSettings()
    settings = _apply_path_defaults(settings)
    settings = _resolve_path_fields(settings)

    if validate_credentials:
        _validate_credentials(settings)

    return settings
