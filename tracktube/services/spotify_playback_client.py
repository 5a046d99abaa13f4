from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, cast
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from tracktube.services.playback_types import TrackFetchError, TrackSnapshot

LOGGER = logging.getLogger("tracktube.spotify")

DEFAULT_SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"
CURRENTLY_PLAYING_PATH = "/me/player/currently-playing"

TokenProvider = Callable[[], str]


class SpotifyPlaybackClient:
    """Reads the user's currently-playing track from the Spotify Web API."""

    def __init__(
        self,
        *,
        token_provider: TokenProvider,
        base_url: str = DEFAULT_SPOTIFY_API_BASE_URL,
        timeout_seconds: float = 10.0,
        market: str | None = None,
    ) -> None:
        self._token_provider = token_provider
        self._base_url = _normalize_base_url(base_url)
        self._timeout_seconds = max(1.0, timeout_seconds)
        self._market = market

    def fetch_current_track(self) -> TrackSnapshot:
        params = {"additional_types": "track"}
        if self._market:
            params["market"] = self._market
        status_code, payload = self._get_json(CURRENTLY_PLAYING_PATH, params=params)

        if status_code == 204:
            return TrackSnapshot.nothing_playing()
        if status_code in (401, 403):
            raise TrackFetchError(
                f"Spotify rejected the access token (status={status_code}): "
                f"{_extract_error_message(payload) or 'no details'}"
            )
        if status_code == 429:
            raise TrackFetchError("Spotify rate limited the playback request (status=429).")
        if status_code < 200 or status_code >= 300:
            raise TrackFetchError(
                f"Spotify playback request failed (status={status_code}): "
                f"{_extract_error_message(payload) or 'no details'}"
            )

        return parse_currently_playing(payload)

    def _get_json(self, path: str, *, params: dict[str, str]) -> tuple[int, dict[str, Any]]:
        token = self._token_provider().strip()
        if not token:
            raise TrackFetchError("Spotify access token is empty.")

        query = urlencode(params)
        request = Request(
            f"{self._base_url}{path}?{query}" if query else f"{self._base_url}{path}",
            headers={
                "authorization": f"Bearer {token}",
                "accept": "application/json",
                "user-agent": "tracktube/0.1",
            },
            method="GET",
        )

        status_code = 0
        raw_body = ""
        try:
            with urlopen(request, timeout=self._timeout_seconds) as response:
                status_code = int(response.getcode() or 0)
                raw_body = response.read().decode("utf-8", errors="replace")
        except HTTPError as exc:
            status_code = int(exc.code)
            raw_body = exc.read().decode("utf-8", errors="replace")
        except (URLError, TimeoutError, OSError) as exc:
            raise TrackFetchError(f"Spotify request failed: {exc}") from exc

        return status_code, _parse_json_dict(raw_body)


def parse_currently_playing(payload: dict[str, Any]) -> TrackSnapshot:
    progress_ms = _coerce_int(payload.get("progress_ms")) or 0
    item = _as_dict(payload.get("item"))
    if not item:
        return TrackSnapshot.nothing_playing(progress_ms=progress_ms)

    item_type = item.get("type")
    if isinstance(item_type, str) and item_type != "track":
        LOGGER.debug("ignoring non-track playback item type=%s", item_type)
        return TrackSnapshot.nothing_playing(progress_ms=progress_ms)

    title = _coerce_nonempty_string(item.get("name"))
    artists = [_as_dict(artist) for artist in _as_list(item.get("artists"))]
    artist_names = [
        name for name in (_coerce_nonempty_string(a.get("name")) for a in artists) if name
    ]
    if title is None or not artist_names:
        return TrackSnapshot.nothing_playing(progress_ms=progress_ms)

    return TrackSnapshot(
        title=title,
        artist=artist_names[0],
        progress_ms=progress_ms,
        track_id=_coerce_nonempty_string(item.get("id")),
    )


def static_token_provider(token: str) -> TokenProvider:
    def _provider() -> str:
        return token

    return _provider


def file_token_provider(token_path: Path) -> TokenProvider:
    """
    Read `access_token` from a JSON file on every call.

    The file is owned by whatever tool performs the OAuth refresh, so re-reading
    it picks up rotated tokens without restarting.
    """

    def _provider() -> str:
        try:
            raw = token_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise TrackFetchError(f"Cannot read Spotify token file {token_path}: {exc}") from exc
        token = _coerce_nonempty_string(_parse_json_dict(raw).get("access_token"))
        if token is None:
            raise TrackFetchError(f"Spotify token file {token_path} has no access_token.")
        return token

    return _provider


def _normalize_base_url(raw_value: str) -> str:
    trimmed = raw_value.strip()
    if not trimmed:
        return DEFAULT_SPOTIFY_API_BASE_URL
    return trimmed.rstrip("/")


def _extract_error_message(payload: dict[str, Any]) -> str | None:
    error = payload.get("error")
    if isinstance(error, str):
        return _coerce_nonempty_string(error)
    return _coerce_nonempty_string(_as_dict(error).get("message"))


def _parse_json_dict(raw_body: str) -> dict[str, Any]:
    if not raw_body.strip():
        return {}
    try:
        parsed = json.loads(raw_body)
    except json.JSONDecodeError:
        return {}
    return _as_dict(parsed)


def _coerce_nonempty_string(raw_value: object) -> str | None:
    if isinstance(raw_value, str) and raw_value.strip():
        return raw_value.strip()
    return None


def _coerce_int(raw_value: object) -> int | None:
    if isinstance(raw_value, bool):
        return None
    if isinstance(raw_value, int):
        return raw_value
    if isinstance(raw_value, float):
        return int(raw_value)
    return None


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        raw_dict = cast(dict[object, object], value)
        return {key: item for key, item in raw_dict.items() if isinstance(key, str)}
    return {}


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return list(cast(list[Any], value))
    return []
