from __future__ import annotations

from tracktube.services.playback_types import TrackSnapshot


def has_changed(previous: TrackSnapshot | None, current: TrackSnapshot) -> bool:
    """
    Decide whether `current` is a different track than `previous`.

    Playback position never counts as a change. The upstream track id is
    compared when both snapshots carry one; otherwise the (title, artist) pair
    decides. "Nothing playing" has its own identity, so resuming after an empty
    player is reported as a change.
    """
    if previous is None:
        return True

    if previous.has_item != current.has_item:
        return True
    if not current.has_item:
        return False

    if previous.track_id and current.track_id:
        return previous.track_id != current.track_id
    return previous.identity != current.identity
