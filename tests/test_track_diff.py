from __future__ import annotations

import pytest

from tracktube.services.playback_types import (
    ResolveError,
    TrackKey,
    TrackSnapshot,
    VideoMatch,
    embed_url,
)
from tracktube.services.track_diff import has_changed


def _snapshot(title: str, artist: str, progress_ms: int = 0, track_id: str | None = None) -> TrackSnapshot:
    return TrackSnapshot(title=title, artist=artist, progress_ms=progress_ms, track_id=track_id)


def test_first_observation_is_always_a_change() -> None:
    assert has_changed(None, _snapshot("Song1", "ArtistA")) is True
    assert has_changed(None, TrackSnapshot.nothing_playing()) is True


@pytest.mark.parametrize(
    ("previous_progress", "current_progress"),
    [(0, 0), (1_000, 95_000), (200_000, 3_000)],
)
def test_progress_alone_is_not_a_change(previous_progress: int, current_progress: int) -> None:
    previous = _snapshot("Song1", "ArtistA", previous_progress)
    current = _snapshot("Song1", "ArtistA", current_progress)
    assert has_changed(previous, current) is False


@pytest.mark.parametrize(
    ("previous", "current"),
    [
        (("Song1", "ArtistA"), ("Song2", "ArtistA")),
        (("Song1", "ArtistA"), ("Song1", "ArtistB")),
        (("Song1", "ArtistA"), ("song1", "ArtistA")),
    ],
)
def test_different_title_or_artist_is_a_change(
    previous: tuple[str, str],
    current: tuple[str, str],
) -> None:
    assert has_changed(_snapshot(*previous), _snapshot(*current)) is True


def test_upstream_id_decides_when_both_snapshots_carry_one() -> None:
    previous = _snapshot("Song1", "ArtistA", track_id="sp_1")
    same_id_retitled = _snapshot("Song1 - Remastered", "ArtistA", track_id="sp_1")
    other_id = _snapshot("Song1", "ArtistA", track_id="sp_2")

    assert has_changed(previous, same_id_retitled) is False
    assert has_changed(previous, other_id) is True


def test_falls_back_to_title_and_artist_when_one_id_is_missing() -> None:
    previous = _snapshot("Song1", "ArtistA", track_id="sp_1")
    current = _snapshot("Song1", "ArtistA")
    assert has_changed(previous, current) is False


def test_nothing_playing_is_distinct_from_any_track() -> None:
    playing = _snapshot("Song1", "ArtistA")
    idle = TrackSnapshot.nothing_playing()

    assert has_changed(playing, idle) is True
    assert has_changed(idle, playing) is True
    assert has_changed(idle, TrackSnapshot.nothing_playing(progress_ms=500)) is False


def test_surrounding_whitespace_does_not_change_identity() -> None:
    assert has_changed(_snapshot("Song1 ", "ArtistA"), _snapshot("Song1", " ArtistA")) is False


def test_track_key_and_urls_from_snapshot() -> None:
    snapshot = _snapshot("  Song1 ", "ArtistA", progress_ms=83_400)
    key = TrackKey.from_snapshot(snapshot)

    assert key == TrackKey(title="Song1", artist="ArtistA")
    assert key.search_query() == "ArtistA Song1"
    assert key.search_query("music video") == "ArtistA Song1 music video"
    assert snapshot.progress_as_string() == "01:23"
    assert embed_url("abc", start_seconds=snapshot.progress_seconds).endswith(
        "/embed/abc?start=83&autoplay=1&enablejsapi=1"
    )


@pytest.mark.parametrize(("title", "artist"), [("   ", "ArtistA"), ("Song1", "\t"), ("", "")])
def test_blank_fields_mean_nothing_playing(title: str, artist: str) -> None:
    blank = _snapshot(title, artist)

    assert blank.has_item is False
    assert has_changed(TrackSnapshot.nothing_playing(), blank) is False
    with pytest.raises(ResolveError):
        TrackKey.from_snapshot(blank)


def test_video_match_keeps_watch_and_embed_links_apart() -> None:
    match = VideoMatch.from_video_id("abc", start_seconds=61)

    assert match.watch_url == "https://www.youtube.com/watch?v=abc"
    assert match.embed_url == "https://www.youtube.com/embed/abc?start=61&autoplay=1&enablejsapi=1"
