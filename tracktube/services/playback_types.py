from __future__ import annotations

from dataclasses import dataclass

YOUTUBE_EMBED_URL_TEMPLATE = "https://www.youtube.com/embed/{video_id}?start={start}&autoplay=1&enablejsapi=1"
YOUTUBE_WATCH_URL_TEMPLATE = "https://www.youtube.com/watch?v={video_id}"


@dataclass(frozen=True)
class TrackSnapshot:
    title: str | None
    artist: str | None
    progress_ms: int = 0
    track_id: str | None = None

    @classmethod
    def nothing_playing(cls, *, progress_ms: int = 0) -> TrackSnapshot:
        return cls(title=None, artist=None, progress_ms=progress_ms, track_id=None)

    @property
    def has_item(self) -> bool:
        return bool(self.title and self.title.strip()) and bool(self.artist and self.artist.strip())

    @property
    def identity(self) -> tuple[str, ...]:
        if not self.has_item:
            return ()
        assert self.title is not None and self.artist is not None
        return (self.title.strip(), self.artist.strip())

    @property
    def progress_seconds(self) -> int:
        return max(0, self.progress_ms) // 1000

    def progress_as_string(self) -> str:
        minutes, seconds = divmod(self.progress_seconds, 60)
        return f"{minutes:02d}:{seconds:02d}"

    def describe(self) -> str:
        if not self.has_item:
            return "nothing playing"
        return f"{self.title} by {self.artist}"


@dataclass(frozen=True)
class TrackKey:
    title: str
    artist: str

    @classmethod
    def from_snapshot(cls, snapshot: TrackSnapshot) -> TrackKey:
        if not snapshot.has_item:
            raise ResolveError("Cannot build a track key while nothing is playing.")
        assert snapshot.title is not None and snapshot.artist is not None
        return cls(title=snapshot.title.strip(), artist=snapshot.artist.strip())

    def search_query(self, suffix: str | None = None) -> str:
        query = f"{self.artist} {self.title}"
        if suffix:
            return f"{query} {suffix.strip()}"
        return query


@dataclass(frozen=True)
class VideoMatch:
    video_id: str
    watch_url: str
    embed_url: str

    @classmethod
    def from_video_id(cls, video_id: str, *, start_seconds: int = 0) -> VideoMatch:
        return cls(
            video_id=video_id,
            watch_url=watch_url(video_id),
            embed_url=embed_url(video_id, start_seconds=start_seconds),
        )


def watch_url(video_id: str) -> str:
    return YOUTUBE_WATCH_URL_TEMPLATE.format(video_id=video_id)


def embed_url(video_id: str, *, start_seconds: int = 0) -> str:
    return YOUTUBE_EMBED_URL_TEMPLATE.format(video_id=video_id, start=max(0, start_seconds))


class TracktubeError(Exception):
    pass


class TrackFetchError(TracktubeError):
    def __init__(self, message: str, *, fatal: bool = False) -> None:
        super().__init__(message)
        self.fatal = fatal


class VideoSearchError(TracktubeError):
    pass


class TrackVideoStoreError(TracktubeError):
    pass


class DeliveryError(TracktubeError):
    pass


class ResolveError(TracktubeError):
    pass


class SearchFailedError(ResolveError):
    pass


class ResolutionExhaustedError(ResolveError):
    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts
