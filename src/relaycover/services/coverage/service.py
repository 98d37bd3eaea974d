"""
Followee relay-coverage aggregation driver.

[FolloweeCoverage][relaycover.services.coverage.FolloweeCoverage] wires the
core components together across one user's analysis:

1. **Load** -- [load_user()][relaycover.services.coverage.FolloweeCoverage.load_user]
   fetches the user's relay list and profile concurrently from the
   bootstrap relays, then the contact list from the union of the user's
   relays and the bootstrap relays. Followee records are seeded from the
   profile cache with coverage ``-1``.
2. **Profiles** -- in the background, kind-0 events of all followees are
   streamed in batches; each accepted profile updates the followee's
   record and the profile cache.
3. **Analysis** -- [start_analysis()][relaycover.services.coverage.FolloweeCoverage.start_analysis]
   streams relay lists of all followees in batches. Every accepted event
   re-runs the coverage analysis of its author and emits the full
   re-sorted snapshot.

A new ``load_user()`` call synchronously cancels everything the previous
one started: the scheduler stops starting batches, in-flight sessions are
cancelled, and their late callbacks are dropped. Failures never escape
as exceptions; they surface as status messages and relay-status entries.

Examples:
    ```python
    async with NostrSdkRelayPool() as pool:
        driver = FolloweeCoverage.from_yaml("config/relaycover.yaml", pool=pool)
        async for update in driver.load_user("npub1..."):
            print(update.status_message)
        async for update in driver.start_analysis():
            print(update.status_message)
        await driver.close()
    ```

See Also:
    [CoverageConfig][relaycover.services.coverage.CoverageConfig]:
        Configuration model for this driver.
    [SubscriptionSession][relaycover.core.session.SubscriptionSession]:
        Per-batch relay query with per-relay completion tracking.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar, Self

from relaycover.core.cache import ProfileCache
from relaycover.core.coverage import (
    build_analysis,
    calculate_ranks,
    read_relays_of,
    sort_by_coverage,
    write_relays_of,
)
from relaycover.core.dedup import EventDeduplicator
from relaycover.core.health import RelayHealthTracker
from relaycover.core.logger import Logger
from relaycover.core.metrics import SERVICE_COUNTER, SERVICE_GAUGE, SESSION_DURATION_SECONDS
from relaycover.core.scheduler import BatchScheduler
from relaycover.core.session import SubscriptionSession, fetch_latest
from relaycover.core.stream import UpdateStream
from relaycover.core.yaml import load_yaml
from relaycover.models.analysis import FolloweeAnalysis, RelayStatusEntry
from relaycover.models.constants import AnalysisPhase, EventKind, RelayState
from relaycover.models.profile import Profile
from relaycover.utils.identity import decode_identity
from relaycover.utils.parsing import (
    merge_profile,
    parse_contact_list,
    parse_profile,
    parse_relay_list,
    select_relay_source,
)

from .configs import CoverageConfig, SourceFlags
from .utils import union_relays


if TYPE_CHECKING:
    from collections.abc import Coroutine
    from types import TracebackType

    from relaycover.core.pool import RelayPool
    from relaycover.core.scheduler import Batch
    from relaycover.core.session import SessionResult
    from relaycover.models.analysis import RelayDescriptor
    from relaycover.models.event import Event


# Status messages
MSG_INVALID_PUBKEY = "Invalid pubkey"
MSG_LOADING_RELAYS = "Loading relays..."
MSG_LOADING_FOLLOWEES = "Loading followees..."
MSG_NO_FOLLOWEES = "No followees found"
MSG_FOUND_FOLLOWEES = "Found {count} followees"
MSG_ANALYZING = "Analyzing followees... {current}/{total}"
MSG_ANALYSIS_COMPLETE = "Analysis complete: {count}/{total} followees analyzed"
MSG_NOTHING_TO_ANALYZE = "Nothing to analyze"
MSG_LOAD_FAILED = "Load failed: {error}"
MSG_ANALYSIS_FAILED = "Analysis failed: {error}"


@dataclass(frozen=True, slots=True)
class LoadUpdate:
    """Snapshot emitted by [load_user()][relaycover.services.coverage.FolloweeCoverage.load_user]."""

    phase: AnalysisPhase
    status_message: str
    user_profile: Profile | None = None
    user_relays: tuple[RelayDescriptor, ...] = ()
    followees: tuple[str, ...] = ()
    followee_analyses: tuple[FolloweeAnalysis, ...] = ()


@dataclass(frozen=True, slots=True)
class AnalysisUpdate:
    """Snapshot emitted by [start_analysis()][relaycover.services.coverage.FolloweeCoverage.start_analysis].

    ``followee_analyses`` is always the full current set in display order
    and ``ranks`` holds the rank of each entry at the same position.
    """

    followee_analyses: tuple[FolloweeAnalysis, ...]
    ranks: tuple[int | None, ...]
    relay_statuses: tuple[RelayStatusEntry, ...]
    status_message: str
    is_analyzing: bool


class _Run:
    """Cancellation scope of one load or analysis operation."""

    __slots__ = ("cancelled", "schedulers", "sessions", "stream", "tasks")

    def __init__(self, stream: UpdateStream[Any]) -> None:
        self.stream = stream
        self.cancelled = False
        self.tasks: set[asyncio.Task[None]] = set()
        self.sessions: set[SubscriptionSession] = set()
        self.schedulers: list[BatchScheduler] = []

    def spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.create_task(coro)
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    def cancel(self) -> None:
        self.cancelled = True
        for scheduler in self.schedulers:
            scheduler.cancel()
        for session in self.sessions:
            session.cancel()
        for task in list(self.tasks):
            task.cancel()
        self.stream.close()


@dataclass(slots=True)
class _AnalysisContext:
    """Per-run bookkeeping of an analysis."""

    flags: SourceFlags
    read_relays: list[str]
    directory: dict[str, Event] = field(default_factory=dict)
    legacy: dict[str, Event] = field(default_factory=dict)
    analyzed: set[str] = field(default_factory=set)
    profile_fetches: set[str] = field(default_factory=set)
    profile_tasks: set[asyncio.Task[None]] = field(default_factory=set)


class FolloweeCoverage:
    """Aggregation driver computing relay coverage for every followee of a user.

    Args:
        pool: Relay pool every query is issued to.
        config: Driver configuration; defaults apply when omitted.
        cache: Profile cache; built from ``config.profiles`` when omitted.
        health: Relay failure tracker shared by every session.
        json_logs: Emit driver log records as JSON objects.
    """

    SERVICE_NAME: ClassVar[str] = "coverage"

    def __init__(
        self,
        pool: RelayPool,
        config: CoverageConfig | None = None,
        *,
        cache: ProfileCache | None = None,
        health: RelayHealthTracker | None = None,
        json_logs: bool = False,
    ) -> None:
        self._pool = pool
        self._config = config or CoverageConfig()
        self._logger = Logger(f"relaycover.{self.SERVICE_NAME}", json_output=json_logs)
        self._health = health or RelayHealthTracker(self._config.health.failure_threshold)
        if cache is None:
            path = self._config.profiles.cache_path
            cache = ProfileCache(
                Path(path).expanduser() if path else None,
                flush_interval=self._config.profiles.flush_interval,
            )
            cache.load()
        self._cache = cache

        self._phase = AnalysisPhase.IDLE
        self._status_message = ""
        self._user_profile: Profile | None = None
        self._user_relays: list[RelayDescriptor] = []
        self._followees: list[str] = []
        self._analyses: dict[str, FolloweeAnalysis] = {}
        self._relay_statuses: dict[str, RelayState] = {}

        self._load_run: _Run | None = None
        self._analysis_run: _Run | None = None

    # -------------------------------------------------------------------------
    # Factory Methods
    # -------------------------------------------------------------------------

    @classmethod
    def from_yaml(cls, config_path: str | Path, pool: RelayPool, **kwargs: Any) -> Self:
        """Create a driver from a YAML configuration file."""
        return cls.from_dict(load_yaml(config_path), pool=pool, **kwargs)

    @classmethod
    def from_dict(cls, data: dict[str, Any], pool: RelayPool, **kwargs: Any) -> Self:
        """Create a driver from a configuration dictionary.

        Raises:
            pydantic.ValidationError: If ``data`` is not a valid
                [CoverageConfig][relaycover.services.coverage.CoverageConfig].
        """
        return cls(pool, CoverageConfig(**data), **kwargs)

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def config(self) -> CoverageConfig:
        return self._config

    @property
    def health(self) -> RelayHealthTracker:
        return self._health

    @property
    def cache(self) -> ProfileCache:
        return self._cache

    @property
    def phase(self) -> AnalysisPhase:
        return self._phase

    @property
    def status_message(self) -> str:
        return self._status_message

    @property
    def user_profile(self) -> Profile | None:
        return self._user_profile

    @property
    def user_relays(self) -> list[RelayDescriptor]:
        return list(self._user_relays)

    @property
    def followees(self) -> list[str]:
        return list(self._followees)

    @property
    def analyses(self) -> list[FolloweeAnalysis]:
        """Current followee records in display order."""
        return sort_by_coverage(self._analyses.values())

    @property
    def relay_statuses(self) -> list[RelayStatusEntry]:
        return [RelayStatusEntry(url, state) for url, state in self._relay_statuses.items()]

    @property
    def can_analyze(self) -> bool:
        return bool(self._followees) and self._phase in (
            AnalysisPhase.READY,
            AnalysisPhase.ANALYZING,
            AnalysisPhase.COMPLETE,
        )

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def set_gauge(self, name: str, value: float) -> None:
        """Set a named gauge metric for this driver; no-op if metrics are disabled."""
        if not self._config.metrics.enabled:
            return
        SERVICE_GAUGE.labels(service=self.SERVICE_NAME, name=name).set(value)

    def inc_counter(self, name: str, value: float = 1) -> None:
        """Increment a named counter metric for this driver; no-op if metrics are disabled."""
        if not self._config.metrics.enabled:
            return
        SERVICE_COUNTER.labels(service=self.SERVICE_NAME, name=name).inc(value)

    def _record_session(self, result: SessionResult) -> None:
        self.inc_counter("sessions_finished")
        if result.timed_out:
            self.inc_counter("sessions_timed_out")
            self.inc_counter("relay_timeouts", len(result.relays_in(RelayState.TIMEOUT)))
        if self._config.metrics.enabled:
            SESSION_DURATION_SECONDS.labels(service=self.SERVICE_NAME).observe(result.duration)

    # -------------------------------------------------------------------------
    # Load
    # -------------------------------------------------------------------------

    def load_user(self, identity: str) -> UpdateStream[LoadUpdate]:
        """Start loading ``identity`` (hex or ``npub``) and its followees.

        Must be called from a running event loop. An invalid identity only
        sets the status message; outstanding work is left untouched.
        Otherwise every previous load and analysis is cancelled first.

        Returns:
            Stream of [LoadUpdate][relaycover.services.coverage.service.LoadUpdate]
            snapshots, closed once the followees are known or loading failed.
        """
        stream: UpdateStream[LoadUpdate] = UpdateStream()
        pubkey = decode_identity(identity)
        if pubkey is None:
            self._logger.info("invalid_identity", identity=identity)
            self._status_message = MSG_INVALID_PUBKEY
            stream.emit(self._load_snapshot())
            stream.close()
            return stream

        self.cancel()
        run = _Run(stream)
        self._load_run = run

        self._phase = AnalysisPhase.LOADING_USER_DATA
        self._status_message = MSG_LOADING_RELAYS
        self._user_profile = None
        self._user_relays = []
        self._followees = []
        self._analyses = {}
        self._relay_statuses = {}
        self.set_gauge("followees_analyzed", 0)

        self._logger.info("load_started", pubkey=pubkey)
        stream.emit(self._load_snapshot())
        run.spawn(self._load(run, pubkey))
        return stream

    async def _load(self, run: _Run, pubkey: str) -> None:
        bootstrap = self._config.bootstrap_relays
        try:
            relay_event, profile_event = await asyncio.gather(
                self._fetch_one(pubkey, EventKind.RELAY_LIST, bootstrap),
                self._fetch_one(pubkey, EventKind.SET_METADATA, bootstrap),
            )
            if run.cancelled:
                return

            self._user_relays = parse_relay_list(relay_event) if relay_event else []
            cached = self._cache.get(pubkey)
            if profile_event is not None:
                fetched = parse_profile(profile_event)
                self._user_profile = merge_profile(cached, fetched) if cached else fetched
                self._cache.put(self._user_profile)
            else:
                self._user_profile = cached or Profile(pubkey)
            self._phase = AnalysisPhase.LOADING_FOLLOWEES
            self._status_message = MSG_LOADING_FOLLOWEES
            run.stream.emit(self._load_snapshot())

            all_relays = union_relays((r.url for r in self._user_relays), bootstrap)
            contact_event = await self._fetch_one(pubkey, EventKind.CONTACTS, all_relays)
            if run.cancelled:
                return

            followees = parse_contact_list(contact_event) if contact_event else []
            if not followees:
                self._logger.info("no_followees", pubkey=pubkey)
                self._phase = AnalysisPhase.IDLE
                self._status_message = MSG_NO_FOLLOWEES
                run.stream.emit(self._load_snapshot())
                return

            cached = self._cache.get_many(followees)
            self._followees = followees
            self._analyses = {
                pk: FolloweeAnalysis.unanalyzed(cached.get(pk) or Profile(pk)) for pk in followees
            }
            self._phase = AnalysisPhase.READY
            self._status_message = MSG_FOUND_FOLLOWEES.format(count=len(followees))
            self._logger.info(
                "followees_loaded",
                pubkey=pubkey,
                followees=len(followees),
                cached_profiles=len(cached),
                user_relays=len(self._user_relays),
            )
            run.stream.emit(self._load_snapshot())

            run.spawn(self._stream_profiles(run, followees, all_relays))
        except Exception as e:
            if run.cancelled:
                return
            self._logger.exception("load_failed", pubkey=pubkey, error=str(e))
            self._phase = AnalysisPhase.IDLE
            self._status_message = MSG_LOAD_FAILED.format(error=e)
            run.stream.emit(self._load_snapshot())
        finally:
            run.stream.close()

    async def _fetch_one(self, pubkey: str, kind: int, relays: list[str]) -> Event | None:
        return await fetch_latest(
            self._pool,
            pubkey,
            kind,
            relays,
            timeout=self._config.timeouts.fetch,
            limit=self._config.limits.events_per_fetch,
            health=self._health,
        )

    def _load_snapshot(self) -> LoadUpdate:
        return LoadUpdate(
            phase=self._phase,
            status_message=self._status_message,
            user_profile=self._user_profile,
            user_relays=tuple(self._user_relays),
            followees=tuple(self._followees),
            followee_analyses=tuple(self._analyses.values()),
        )

    # -------------------------------------------------------------------------
    # Profile Phase
    # -------------------------------------------------------------------------

    async def _stream_profiles(self, run: _Run, followees: list[str], relays: list[str]) -> None:
        """Stream kind-0 events of every followee in the background."""
        scheduler = BatchScheduler(self._config.batch.size, self._config.batch.max_concurrent)
        run.schedulers.append(scheduler)
        dedup = EventDeduplicator()

        async def run_batch(batch: Batch) -> None:
            session = SubscriptionSession(
                self._pool,
                batch.identities,
                relays,
                [EventKind.SET_METADATA],
                timeout=self._config.timeouts.fetch,
                deduplicator=dedup,
                health=self._health,
                on_event=lambda event, _relay: self._on_profile_event(run, event),
                on_finish=self._record_session,
            )
            await self._run_session(run, session)

        try:
            await scheduler.run(followees, run_batch)
        except Exception as e:
            self._logger.warning("profile_phase_failed", error=str(e))
            return
        if not run.cancelled:
            self._logger.debug("profile_phase_completed", profiles=len(dedup))

    def _on_profile_event(self, run: _Run, event: Event) -> None:
        if run.cancelled:
            return
        self._apply_profile(parse_profile(event))

    def _apply_profile(self, profile: Profile) -> None:
        current = self._analyses.get(profile.pubkey)
        if current is None:
            return
        merged = merge_profile(current.profile, profile)
        self._cache.put(merged)
        self._analyses[profile.pubkey] = current.with_profile(merged)
        self._emit_analysis()

    # -------------------------------------------------------------------------
    # Analysis
    # -------------------------------------------------------------------------

    def start_analysis(self, flags: SourceFlags | None = None) -> UpdateStream[AnalysisUpdate]:
        """Start analyzing the loaded followees.

        Any previous analysis is cancelled first. Relay statuses are reset
        to ``wait`` for the union of the user's read relays and the
        bootstrap relays, and every followee record starts unanalyzed.

        Args:
            flags: Relay-list formats to consult; ``config.sources`` by default.

        Returns:
            Stream of [AnalysisUpdate][relaycover.services.coverage.service.AnalysisUpdate]
            snapshots, closed once the analysis completes or is cancelled.
        """
        stream: UpdateStream[AnalysisUpdate] = UpdateStream()
        if not self.can_analyze:
            stream.emit(
                AnalysisUpdate(
                    followee_analyses=tuple(self.analyses),
                    ranks=tuple(calculate_ranks(self.analyses)),
                    relay_statuses=tuple(self.relay_statuses),
                    status_message=self._status_message or MSG_NOTHING_TO_ANALYZE,
                    is_analyzing=False,
                )
            )
            stream.close()
            return stream

        flags = flags or self._config.sources
        if self._analysis_run is not None:
            self._analysis_run.cancel()
        run = _Run(stream)
        self._analysis_run = run

        read_relays = read_relays_of(self._user_relays)
        endpoints = union_relays(read_relays, self._config.bootstrap_relays)
        self._relay_statuses = {
            url: RelayState.WAIT if self._health.is_healthy(url) else RelayState.ERROR
            for url in endpoints
        }
        self._analyses = {
            pk: FolloweeAnalysis.unanalyzed(a.profile) for pk, a in self._analyses.items()
        }
        self._phase = AnalysisPhase.ANALYZING
        self._status_message = MSG_ANALYZING.format(current=0, total=len(self._followees))
        self.set_gauge("followees_analyzed", 0)

        self._logger.info(
            "analysis_started",
            followees=len(self._followees),
            relays=len(endpoints),
            directory=flags.use_directory_format,
            legacy=flags.use_legacy_format,
        )
        ctx = _AnalysisContext(flags=flags, read_relays=read_relays)
        self._emit_analysis()
        run.spawn(self._analyze(run, ctx, endpoints))
        return stream

    async def _analyze(self, run: _Run, ctx: _AnalysisContext, endpoints: list[str]) -> None:
        scheduler = BatchScheduler(self._config.batch.size, self._config.batch.max_concurrent)
        run.schedulers.append(scheduler)
        dedup = EventDeduplicator()
        kinds = ctx.flags.kinds

        async def run_batch(batch: Batch) -> None:
            session = SubscriptionSession(
                self._pool,
                batch.identities,
                endpoints,
                kinds,
                timeout=self._config.timeouts.fetch,
                deduplicator=dedup,
                health=self._health,
                on_event=lambda event, _relay: self._on_relay_event(run, ctx, event),
                on_relay_state=lambda url, state: self._on_relay_state(run, url, state),
                on_finish=self._record_session,
            )
            await self._run_session(run, session)

        try:
            if kinds:
                await scheduler.run(self._followees, run_batch)
            if ctx.profile_tasks:
                await asyncio.gather(*ctx.profile_tasks, return_exceptions=True)
            if run.cancelled:
                return

            self._phase = AnalysisPhase.COMPLETE
            self._status_message = MSG_ANALYSIS_COMPLETE.format(
                count=len(ctx.analyzed), total=len(self._followees)
            )
            self._logger.info(
                "analysis_completed",
                analyzed=len(ctx.analyzed),
                total=len(self._followees),
                batches=scheduler.progress.finished,
                duration=scheduler.progress.elapsed,
            )
            self._emit_analysis()
        except Exception as e:
            if run.cancelled:
                return
            self._logger.exception("analysis_failed", error=str(e))
            self._phase = AnalysisPhase.COMPLETE
            self._status_message = MSG_ANALYSIS_FAILED.format(error=e)
            self._emit_analysis()
        finally:
            run.stream.close()

    def _on_relay_event(self, run: _Run, ctx: _AnalysisContext, event: Event) -> None:
        """Re-analyze the author of a newly accepted relay-list or contact-list event."""
        if run.cancelled:
            return
        pubkey = event.pubkey
        current = self._analyses.get(pubkey)
        if current is None:
            return

        if event.kind == EventKind.RELAY_LIST:
            ctx.directory[pubkey] = event
        elif event.kind == EventKind.CONTACTS:
            ctx.legacy[pubkey] = event

        source = select_relay_source(ctx.directory.get(pubkey), ctx.legacy.get(pubkey))
        if source is None:
            return

        write_relays = write_relays_of(source.descriptors())
        analysis = build_analysis(current.profile, write_relays, ctx.read_relays)
        self._analyses[pubkey] = analysis
        ctx.analyzed.add(pubkey)
        self.inc_counter("events_accepted")
        self.set_gauge("followees_analyzed", len(ctx.analyzed))
        self._status_message = MSG_ANALYZING.format(
            current=len(ctx.analyzed), total=len(self._followees)
        )
        self._emit_analysis()

        if (
            self._config.profiles.fetch_missing
            and analysis.profile.is_missing
            and write_relays
            and pubkey not in ctx.profile_fetches
        ):
            ctx.profile_fetches.add(pubkey)
            task = run.spawn(self._fetch_missing_profile(run, pubkey, write_relays))
            ctx.profile_tasks.add(task)
            task.add_done_callback(ctx.profile_tasks.discard)

    async def _fetch_missing_profile(self, run: _Run, pubkey: str, relays: list[str]) -> None:
        """Look up a followee's profile on its own write relays."""
        try:
            event = await self._fetch_one(pubkey, EventKind.SET_METADATA, relays)
        except Exception as e:
            self._logger.warning("profile_fetch_failed", pubkey=pubkey, error=str(e))
            return
        if run.cancelled or event is None:
            return
        self._logger.debug("missing_profile_found", pubkey=pubkey)
        self._apply_profile(parse_profile(event))

    def _on_relay_state(self, run: _Run, url: str, state: RelayState) -> None:
        if run.cancelled or url not in self._relay_statuses:
            return
        self._relay_statuses[url] = state
        if state is RelayState.ERROR:
            self.inc_counter("relay_failures")
        self._emit_analysis()

    def _emit_analysis(self) -> None:
        run = self._analysis_run
        if run is None or run.cancelled:
            return
        ordered = sort_by_coverage(self._analyses.values())
        run.stream.emit(
            AnalysisUpdate(
                followee_analyses=tuple(ordered),
                ranks=tuple(calculate_ranks(ordered)),
                relay_statuses=tuple(self.relay_statuses),
                status_message=self._status_message,
                is_analyzing=self._phase is AnalysisPhase.ANALYZING,
            )
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def _run_session(self, run: _Run, session: SubscriptionSession) -> None:
        if run.cancelled:
            return
        run.sessions.add(session)
        try:
            await session.run()
        finally:
            run.sessions.discard(session)

    def cancel(self) -> None:
        """Cancel every outstanding load, profile and analysis operation."""
        for run in (self._load_run, self._analysis_run):
            if run is not None and not run.cancelled:
                run.cancel()
        self._load_run = None
        self._analysis_run = None

    async def join(self) -> None:
        """Wait until every background task of the current operations has ended."""
        for run in (self._load_run, self._analysis_run):
            while run is not None and run.tasks:
                await asyncio.gather(*list(run.tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding work and flush the profile cache."""
        runs = [r for r in (self._load_run, self._analysis_run) if r is not None]
        self.cancel()
        pending = [task for run in runs for task in run.tasks]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._cache.flush()

