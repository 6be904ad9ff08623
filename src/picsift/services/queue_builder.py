"""Builds the randomized review queue for a folder."""

import random
from collections.abc import Iterable

from picsift.domain.photos import PhotoEntry
from picsift.domain.sessions import (
    EmptyQueue,
    EmptyReason,
    QueueBuildResult,
    QueueReady,
)

MAX_QUEUE_SIZE = 5000

NO_PHOTOS_MESSAGE = "No images found in this folder."
ALL_REVIEWED_MESSAGE = (
    "You've reviewed all images in this folder. "
    "Start completely fresh to see them again."
)


def build_queue(
    raw_entries: Iterable[PhotoEntry],
    reviewed: set[str],
    *,
    cap: int = MAX_QUEUE_SIZE,
    fresh_start: bool = False,
    rng: random.Random | None = None,
) -> QueueBuildResult:
    """Deduplicate, drop reviewed photos, shuffle and cap the listing.

    The shuffle happens before the cap, so a capped queue is a uniformly random
    subset of the eligible photos.
    """
    if cap <= 0:
        raise ValueError("cap must be positive")

    deduped = _dedupe(raw_entries)
    if not deduped:
        return EmptyQueue(reason=EmptyReason.NO_PHOTOS, message=NO_PHOTOS_MESSAGE)

    entries = (
        deduped
        if fresh_start
        else [entry for entry in deduped if entry.key not in reviewed]
    )
    if not entries:
        return EmptyQueue(
            reason=EmptyReason.ALL_REVIEWED, message=ALL_REVIEWED_MESSAGE
        )

    shuffled = shuffle_entries(entries, rng or random.Random())
    if len(shuffled) > cap:
        return QueueReady(queue=shuffled[:cap], truncated_from=len(shuffled))
    return QueueReady(queue=shuffled)


def shuffle_entries(entries: list[PhotoEntry], rng: random.Random) -> list[PhotoEntry]:
    """Return a Fisher-Yates shuffled copy of ``entries``."""
    shuffled = list(entries)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def _dedupe(raw_entries: Iterable[PhotoEntry]) -> list[PhotoEntry]:
    seen: set[str] = set()
    deduped: list[PhotoEntry] = []
    for entry in raw_entries:
        if entry.key in seen:
            continue
        seen.add(entry.key)
        deduped.append(entry)
    return deduped
