"""Two-level bucketing of the active shows feed.

Both projections keep keys in the order they are first seen, so callers are
expected to pass listings already ordered the way they should be displayed.
"""

from __future__ import annotations

from typing import Callable, Iterable

from ..models import ShowListing

GroupedShows = dict[str, dict[str, list[ShowListing]]]


def _bucket(
    listings: Iterable[ShowListing],
    outer_key: Callable[[ShowListing], str],
    inner_key: Callable[[ShowListing], str],
) -> GroupedShows:
    grouped: GroupedShows = {}
    for listing in listings:
        inner = grouped.setdefault(outer_key(listing), {})
        inner.setdefault(inner_key(listing), []).append(listing)
    return grouped


def group_by_status_then_watchers(listings: Iterable[ShowListing]) -> GroupedShows:
    """Status label outside, watcher group inside."""

    return _bucket(
        listings,
        lambda listing: listing.watch_status,
        lambda listing: listing.watcher_name,
    )


def group_by_watchers_then_status(listings: Iterable[ShowListing]) -> GroupedShows:
    """Watcher group outside, status label inside."""

    return _bucket(
        listings,
        lambda listing: listing.watcher_name,
        lambda listing: listing.watch_status,
    )
