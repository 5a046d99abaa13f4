from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ResolveResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str
    artist: str
    video_id: str
    watch_url: str
    embed_url: str = Field(description="Embeddable player URL starting at the requested position.")
    source: Literal["store", "memory", "search"]


class RecencyCacheResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    capacity: int
    size: int
    hits: int
    misses: int
    evictions: int
    stored_tracks: int = Field(description="Rows in the persistent track/video table.")
