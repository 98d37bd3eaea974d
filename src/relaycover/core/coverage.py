"""
Coverage computation and ranking.

Pure functions with no network or clock dependency:

* [analyze_coverage()][relaycover.core.coverage.analyze_coverage] partitions
  a followee's write relays into those the user reads from and the rest.
* [sort_by_coverage()][relaycover.core.coverage.sort_by_coverage] orders
  analyses ascending by coverage with unanalyzed entries last.
* [calculate_ranks()][relaycover.core.coverage.calculate_ranks] assigns
  competition ranks (ties share a rank, the next value skips ahead).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from relaycover.models.analysis import FolloweeAnalysis
from relaycover.models.constants import UNANALYZED_COVERAGE
from relaycover.models.relay import normalize_relay_url


if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from relaycover.models.analysis import RelayDescriptor
    from relaycover.models.profile import Profile


@dataclass(frozen=True, slots=True)
class CoverageResult:
    """Readable/unreadable partition of a followee's write relays."""

    readable_relays: tuple[str, ...]
    unreadable_relays: tuple[str, ...]

    @property
    def coverage(self) -> int:
        return len(self.readable_relays)


def analyze_coverage(write_relays: Iterable[str], read_relays: Iterable[str]) -> CoverageResult:
    """Partition ``write_relays`` by membership in the user's ``read_relays``.

    Both inputs are compared on their normalized form; output entries keep
    their original spelling and duplicates are preserved, so every write
    relay lands in exactly one of the two lists.

    Examples:
        ```python
        result = analyze_coverage(["wss://A", "wss://B"], ["wss://a/"])
        result.readable_relays    # ('wss://A',)
        result.unreadable_relays  # ('wss://B',)
        result.coverage           # 1
        ```
    """
    readable_set = {normalize_relay_url(url) for url in read_relays}
    readable: list[str] = []
    unreadable: list[str] = []
    for url in write_relays:
        if normalize_relay_url(url) in readable_set:
            readable.append(url)
        else:
            unreadable.append(url)
    return CoverageResult(tuple(readable), tuple(unreadable))


def build_analysis(
    profile: Profile,
    write_relays: Sequence[str],
    read_relays: Iterable[str],
) -> FolloweeAnalysis:
    """Build a fully analyzed record for one followee."""
    result = analyze_coverage(write_relays, read_relays)
    return FolloweeAnalysis(
        profile=profile,
        write_relays=tuple(write_relays),
        readable_relays=result.readable_relays,
        unreadable_relays=result.unreadable_relays,
        coverage=result.coverage,
    )


def write_relays_of(relays: Iterable[RelayDescriptor]) -> list[str]:
    return [r.url for r in relays if r.can_write]


def read_relays_of(relays: Iterable[RelayDescriptor]) -> list[str]:
    return [r.url for r in relays if r.can_read]


def sort_by_coverage(analyses: Iterable[FolloweeAnalysis]) -> list[FolloweeAnalysis]:
    """Sort ascending by coverage; unanalyzed (``-1``) entries go last.

    The sort is stable, so equal-coverage entries and the unanalyzed tail
    keep their relative input order, and sorting twice is a no-op.
    """
    return sorted(
        analyses,
        key=lambda a: (a.coverage == UNANALYZED_COVERAGE, a.coverage),
    )


def calculate_ranks(analyses: Sequence[FolloweeAnalysis]) -> list[int | None]:
    """Assign a rank to each entry of an already displayed list.

    Walks the list in order counting analyzed entries. An entry whose
    coverage equals the previous analyzed entry's coverage shares its rank;
    otherwise its rank is the running count of analyzed entries seen so
    far. Unanalyzed entries get ``None`` and do not break a tie run.

    For a list sorted by ``sort_by_coverage`` this is standard competition
    ranking: coverages ``[0, 0, 1, 3, -1]`` rank ``[1, 1, 3, 4, None]``.
    """
    ranks: list[int | None] = []
    analyzed_count = 0
    prev_coverage: int | None = None
    prev_rank: int | None = None

    for analysis in analyses:
        if analysis.coverage == UNANALYZED_COVERAGE:
            ranks.append(None)
            continue

        analyzed_count += 1
        if prev_coverage is not None and analysis.coverage == prev_coverage:
            ranks.append(prev_rank)
        else:
            prev_rank = analyzed_count
            ranks.append(prev_rank)
        prev_coverage = analysis.coverage

    return ranks


def rank_followees(
    analyses: Iterable[FolloweeAnalysis],
) -> list[tuple[int | None, FolloweeAnalysis]]:
    """Sort ``analyses`` for display and pair each entry with its rank."""
    ordered = sort_by_coverage(analyses)
    return list(zip(calculate_ranks(ordered), ordered, strict=True))
