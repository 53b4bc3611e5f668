"""Group a flat, time-ordered story snapshot into per-author runs."""
from __future__ import annotations

import logging
from collections.abc import Collection, Iterable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from .story_media import AuthorGroup, AuthorRef, MediaItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BuildReport:
    """Diagnostics describing what a build kept and what it discarded."""

    missing_author: tuple[UUID, ...] = ()
    unknown_author: tuple[UUID, ...] = ()
    expired: tuple[UUID, ...] = ()
    group_count: int = 0
    item_count: int = 0

    @property
    def dropped(self) -> int:
        """Return the total number of discarded items."""

        return len(self.missing_author) + len(self.unknown_author) + len(self.expired)


def build_with_report(
    items: Iterable[MediaItem],
    *,
    known_author_ids: Collection[UUID] | None = None,
    now: datetime | None = None,
) -> tuple[list[AuthorGroup], BuildReport]:
    """Group ``items`` by author and describe any items that were dropped.

    Parameters
    ----------
    items:
        Story items in viewing order.
    known_author_ids:
        When provided, items whose author id is not in this collection are
        discarded as unknown.
    now:
        When provided, items that expired at or before this instant are
        discarded.

    Returns
    -------
    tuple[list[AuthorGroup], BuildReport]
        Groups in the order their authors first appear, each keeping the
        relative order of its items, plus the build diagnostics.
    """

    missing: list[UUID] = []
    unknown: list[UUID] = []
    expired: list[UUID] = []

    authors: dict[UUID, AuthorRef] = {}
    buckets: dict[UUID, list[MediaItem]] = {}
    for item in items:
        author = item.author
        if author is None:
            missing.append(item.id)
            continue
        if known_author_ids is not None and author.id not in known_author_ids:
            unknown.append(item.id)
            continue
        if now is not None and item.is_expired(now):
            expired.append(item.id)
            continue
        bucket = buckets.get(author.id)
        if bucket is None:
            bucket = []
            buckets[author.id] = bucket
            authors[author.id] = author
        bucket.append(item)

    groups = [AuthorGroup(author=authors[author_id], items=tuple(bucket)) for author_id, bucket in buckets.items()]

    report = BuildReport(
        missing_author=tuple(missing),
        unknown_author=tuple(unknown),
        expired=tuple(expired),
        group_count=len(groups),
        item_count=sum(len(group) for group in groups),
    )
    if report.dropped:
        logger.debug(
            "Dropped story items during grouping (missing_author=%d, unknown_author=%d, expired=%d)",
            len(report.missing_author),
            len(report.unknown_author),
            len(report.expired),
        )
    return groups, report


def build(
    items: Iterable[MediaItem],
    *,
    known_author_ids: Collection[UUID] | None = None,
    now: datetime | None = None,
) -> list[AuthorGroup]:
    groups, _report = build_with_report(items, known_author_ids=known_author_ids, now=now)
    return groups


__all__ = ["BuildReport", "build", "build_with_report"]
