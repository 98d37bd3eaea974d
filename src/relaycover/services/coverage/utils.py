"""Coverage driver utility functions.

Pure helpers for relay-set union and the plain-text result dump.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from relaycover.core.coverage import calculate_ranks, read_relays_of, sort_by_coverage
from relaycover.models.relay import normalize_relay_url
from relaycover.utils.parsing import format_relay_name


if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from relaycover.models.analysis import FolloweeAnalysis, RelayDescriptor
    from relaycover.models.profile import Profile


_PLACEHOLDER = "-"


def union_relays(*groups: Iterable[str]) -> list[str]:
    """Concatenate relay groups, dropping later spellings of an already seen relay."""
    seen: set[str] = set()
    merged: list[str] = []
    for group in groups:
        for url in group:
            key = normalize_relay_url(url)
            if key not in seen:
                seen.add(key)
                merged.append(url)
    return merged


def format_dump(
    user_profile: Profile | None,
    user_relays: Sequence[RelayDescriptor],
    analyses: Iterable[FolloweeAnalysis],
) -> list[str]:
    """Render the analysis as comma-separated text lines.

    The first line describes the user (when known); each following line is
    ``seq, rank, picture, name, display_name, coverage, relays`` for one
    followee in display order. Relays carry a ``:R`` (readable) or ``:N``
    (not readable) suffix; missing values render as ``-``.

    Examples:
        ```text
        , user, -, https://x/a.png, alice, Alice, , nos.lol, relay.damus.io
        1, 1, -, bob, -, 0, relay.example.com:N
        2, -, -, -, -, -, -
        ```
    """
    lines: list[str] = []

    if user_profile is not None:
        read_relays = [format_relay_name(url) for url in read_relays_of(user_relays)]
        lines.append(
            ", user, -, "
            f"{user_profile.picture or _PLACEHOLDER}, "
            f"{user_profile.name or _PLACEHOLDER}, "
            f"{user_profile.display_name or _PLACEHOLDER}, , "
            f"{', '.join(read_relays) or _PLACEHOLDER}"
        )

    ordered = sort_by_coverage(analyses)
    for seq, (rank, analysis) in enumerate(zip(calculate_ranks(ordered), ordered, strict=True), 1):
        relays = [f"{format_relay_name(url)}:R" for url in analysis.readable_relays]
        relays += [f"{format_relay_name(url)}:N" for url in analysis.unreadable_relays]
        coverage = analysis.coverage if analysis.is_analyzed else _PLACEHOLDER
        profile = analysis.profile
        lines.append(
            f"{seq}, {rank if rank is not None else _PLACEHOLDER}, "
            f"{profile.picture or _PLACEHOLDER}, "
            f"{profile.name or _PLACEHOLDER}, "
            f"{profile.display_name or _PLACEHOLDER}, "
            f"{coverage}, "
            f"{', '.join(relays) or _PLACEHOLDER}"
        )

    return lines
