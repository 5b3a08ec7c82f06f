"""Reconciliation Orchestrator -- one sync pass for one viewer.

fetch -> filter -> group -> per-organizer resolve+probe -> match-back ->
caller filters -> persist -> report

Concurrency model:
- Organizer groups run concurrently (asyncio.gather); within a group each
  distinct join key is resolved and probed concurrently. A semaphore
  bounds the number of in-flight provider requests.
- Workers return ``(join_key, KeyOutcome)`` pairs and the collector
  assembles the outcome map, so no task writes shared state.
- Persistence is sequential.

Error scopes:
- Fatal (propagate): CredentialError, EventFetchError, SyncTimeoutError.
- Organizer: any resolve/probe failure marks the whole group FAILED;
  its events are left out of the result.
- Meeting: a persistence failure is logged and counted.
- Absence (no organizer, no resource, no transcript) is a normal branch.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import structlog

from src.meetsync.core.monitoring import record_sync_counters, track_sync_pass
from src.meetsync.graph.exceptions import CredentialError
from src.meetsync.meetings.schemas import (
    CalendarEvent,
    MatchedMeeting,
    OutcomeStatus,
    ParticipantRole,
    RoleFilter,
    SyncCounters,
    SyncFilters,
    SyncResult,
    SyncWindow,
    TranscriptDescriptor,
    Viewer,
)
from src.meetsync.sync.exceptions import SyncTimeoutError
from src.meetsync.sync.fetcher import DEFAULT_MAX_EVENTS, EventWindowFetcher
from src.meetsync.sync.grouping import group_by_organizer, is_online_meeting
from src.meetsync.sync.join_key import join_key_candidates, normalize_join_url
from src.meetsync.sync.prober import TranscriptProber
from src.meetsync.sync.protocols import (
    CalendarProvider,
    ConferencingProvider,
    MeetingStore,
    TranscriptProvider,
)
from src.meetsync.sync.reconciler import UNTITLED_MEETING, PersistenceReconciler
from src.meetsync.sync.resolver import ConferencingResourceResolver

logger = structlog.get_logger(__name__)

DEFAULT_WINDOW_DAYS = 365
DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_MAX_CONCURRENCY = 8


def default_window(days: int = DEFAULT_WINDOW_DAYS, now: datetime | None = None) -> SyncWindow:
    """Trailing window ending now."""
    end = now or datetime.now(timezone.utc)
    return SyncWindow(start=end - timedelta(days=days), end=end)


# ── Tagged Outcomes ──────────────────────────────────────────────────────────


@dataclass
class KeyOutcome:
    """Resolve+probe result for one join key."""

    status: OutcomeStatus
    resource_id: str | None = None
    transcripts: list[TranscriptDescriptor] = field(default_factory=list)
    has_recording: bool = False


@dataclass
class OrganizerOutcome:
    """Result of one organizer group, keyed by normalized join key."""

    organizer: str
    status: OutcomeStatus
    outcomes: dict[str, KeyOutcome] = field(default_factory=dict)
    error: str | None = None


@dataclass
class _Match:
    meeting: MatchedMeeting
    event: CalendarEvent
    outcome: KeyOutcome


def _viewer_role(event: CalendarEvent, viewer: Viewer) -> ParticipantRole:
    if event.organizer_email and event.organizer_email == viewer.email.lower():
        return ParticipantRole.ORGANIZER
    return ParticipantRole.ATTENDEE


def _viewer_response(event: CalendarEvent, viewer: Viewer, role: ParticipantRole) -> str:
    if role is ParticipantRole.ORGANIZER:
        return "organizer"
    viewer_email = viewer.email.lower()
    for attendee in event.attendees:
        if (attendee.email or "").lower() == viewer_email and attendee.response:
            return attendee.response
    return event.viewer_response or "unknown"


# ── Orchestrator ─────────────────────────────────────────────────────────────


class ReconciliationOrchestrator:
    """Runs sync passes against injected collaborators.

    Args:
        calendar: Calendar Provider for the viewer's events.
        conferencing: Conferencing Provider (organizer ids, join-URL search).
        transcripts: Transcript Provider.
        store: Meeting store; None disables persistence.
        max_events: Event cap for the window fetch.
        max_concurrency: Bound on in-flight resolve/probe requests.
        timeout_seconds: Overall budget for one pass.
        probe_recordings: Also probe recordings for resolved resources.
    """

    def __init__(
        self,
        calendar: CalendarProvider,
        conferencing: ConferencingProvider,
        transcripts: TranscriptProvider,
        store: MeetingStore | None = None,
        *,
        max_events: int = DEFAULT_MAX_EVENTS,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        probe_recordings: bool = False,
    ) -> None:
        self._conferencing = conferencing
        self._fetcher = EventWindowFetcher(calendar, max_events=max_events)
        self._resolver = ConferencingResourceResolver(conferencing)
        self._prober = TranscriptProber(transcripts)
        self._reconciler = PersistenceReconciler(store) if store is not None else None
        self._max_concurrency = max_concurrency
        self._timeout_seconds = timeout_seconds
        self._probe_recordings = probe_recordings

    async def sync(
        self,
        viewer: Viewer,
        window: SyncWindow | None = None,
        filters: SyncFilters | None = None,
    ) -> SyncResult:
        """Run one pass for ``viewer`` and return matched meetings plus counters.

        Raises:
            CredentialError: A token could not be obtained.
            EventFetchError: The viewer's calendar could not be fetched.
            SyncTimeoutError: The pass exceeded ``timeout_seconds``;
                outstanding provider calls are cancelled.
        """
        window = window or default_window()
        filters = filters or SyncFilters()

        with structlog.contextvars.bound_contextvars(viewer=viewer.email):
            return await self._sync_with_tracking(viewer, window, filters)

    async def _sync_with_tracking(
        self, viewer: Viewer, window: SyncWindow, filters: SyncFilters
    ) -> SyncResult:
        async with track_sync_pass() as tracker:
            try:
                result = await asyncio.wait_for(
                    self._run(viewer, window, filters),
                    timeout=self._timeout_seconds,
                )
            except asyncio.TimeoutError as exc:
                tracker["status"] = "timeout"
                logger.error(
                    "sync_timeout",
                    viewer=viewer.email,
                    timeout_seconds=self._timeout_seconds,
                )
                raise SyncTimeoutError(self._timeout_seconds) from exc

            counters = result.counters
            if counters.organizer_failures or counters.persist_failures:
                tracker["status"] = "partial"
            record_sync_counters(counters)
            return result

    async def _run(
        self, viewer: Viewer, window: SyncWindow, filters: SyncFilters
    ) -> SyncResult:
        started = time.perf_counter()
        counters = SyncCounters()
        logger.info(
            "sync_started",
            viewer=viewer.email,
            start=window.start.isoformat(),
            end=window.end.isoformat(),
        )

        # 1. Fetch
        events = await self._fetcher.fetch(viewer.id, window)
        counters.events_fetched = len(events)

        # 2. Filter
        online = [e for e in events if is_online_meeting(e)]
        counters.online_events = len(online)

        # 3. Group
        groups, dropped = group_by_organizer(online)
        counters.events_without_organizer = len(dropped)
        counters.organizers = len(groups)

        # 4. Resolve + probe, fanned out per organizer
        semaphore = asyncio.Semaphore(self._max_concurrency)
        results = await asyncio.gather(
            *(
                self._process_organizer(organizer, group, semaphore)
                for organizer, group in groups.items()
            ),
            return_exceptions=True,
        )

        cache: dict[str, KeyOutcome] = {}
        for item in results:
            if isinstance(item, BaseException):
                raise item
            if item.status is OutcomeStatus.FAILED:
                counters.organizer_failures += 1
            for key, outcome in item.outcomes.items():
                if key not in cache or cache[key].status is OutcomeStatus.FAILED:
                    cache[key] = outcome

        # 5. Match-back
        matches = self._match_back(online, cache, viewer, counters)
        counters.with_transcript = sum(1 for m in matches if m.meeting.transcript_evidence)

        # 6. Caller filters
        matches = self._apply_filters(matches, filters)
        counters.matched = len(matches)

        # 7. Persist
        if filters.persist and self._reconciler is not None:
            await self._persist(self._reconciler, matches, counters)

        # 8. Report
        counters.duration_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info("sync_completed", viewer=viewer.email, **counters.model_dump())

        return SyncResult(
            viewer=viewer,
            window=window,
            filters=filters,
            meetings=[m.meeting for m in matches],
            counters=counters,
        )

    # ── Organizer / Meeting Workers ──────────────────────────────────────

    async def _process_organizer(
        self,
        organizer: str,
        events: list[CalendarEvent],
        semaphore: asyncio.Semaphore,
    ) -> OrganizerOutcome:
        """Organizer-scope boundary: never raises except for fatal errors."""
        urls_by_key: dict[str, str] = {}
        for event in events:
            key = normalize_join_url(event.join_url)
            if key is not None and key not in urls_by_key:
                urls_by_key[key] = event.join_url.strip()  # type: ignore[union-attr]

        if not urls_by_key:
            return OrganizerOutcome(organizer=organizer, status=OutcomeStatus.RESOLVED)

        try:
            async with semaphore:
                organizer_id = await self._conferencing.resolve_organizer_id(organizer)

            if organizer_id is None:
                logger.info("organizer_unresolved", organizer=organizer, meetings=len(urls_by_key))
                return OrganizerOutcome(
                    organizer=organizer,
                    status=OutcomeStatus.UNRESOLVED,
                    outcomes={k: KeyOutcome(OutcomeStatus.UNRESOLVED) for k in urls_by_key},
                )

            results = await asyncio.gather(
                *(
                    self._process_meeting(organizer_id, key, url, semaphore)
                    for key, url in urls_by_key.items()
                ),
                return_exceptions=True,
            )
            for item in results:
                if isinstance(item, BaseException):
                    raise item

            outcomes = dict(results)  # type: ignore[arg-type]
        except CredentialError:
            raise
        except Exception as exc:
            logger.warning(
                "organizer_failed",
                organizer=organizer,
                meetings=len(urls_by_key),
                error=str(exc),
                exc_info=True,
            )
            return OrganizerOutcome(
                organizer=organizer,
                status=OutcomeStatus.FAILED,
                outcomes={k: KeyOutcome(OutcomeStatus.FAILED) for k in urls_by_key},
                error=str(exc),
            )

        found = sum(1 for o in outcomes.values() if o.transcripts)
        logger.info(
            "organizer_processed",
            organizer=organizer,
            meetings=len(outcomes),
            with_transcript=found,
        )
        return OrganizerOutcome(
            organizer=organizer, status=OutcomeStatus.RESOLVED, outcomes=outcomes
        )

    async def _process_meeting(
        self,
        organizer_id: str,
        key: str,
        join_url: str,
        semaphore: asyncio.Semaphore,
    ) -> tuple[str, KeyOutcome]:
        async with semaphore:
            resource_id = await self._resolver.resolve(organizer_id, join_url)
        if resource_id is None:
            return key, KeyOutcome(OutcomeStatus.UNRESOLVED)

        async with semaphore:
            transcripts = await self._prober.probe(organizer_id, resource_id)

        has_recording = False
        if self._probe_recordings:
            async with semaphore:
                has_recording = await self._prober.probe_recording(organizer_id, resource_id)

        return key, KeyOutcome(
            OutcomeStatus.RESOLVED,
            resource_id=resource_id,
            transcripts=transcripts,
            has_recording=has_recording,
        )

    # ── Match-back / Filters / Persist ───────────────────────────────────

    def _match_back(
        self,
        events: list[CalendarEvent],
        cache: dict[str, KeyOutcome],
        viewer: Viewer,
        counters: SyncCounters,
    ) -> list[_Match]:
        matches: list[_Match] = []
        for event in events:
            if event.organizer_email is None:
                continue

            candidates = join_key_candidates(event.join_url)
            if not candidates:
                counters.without_join_url += 1
                continue

            outcome = next((cache[k] for k in candidates if k in cache), None)
            if outcome is None:
                outcome = KeyOutcome(OutcomeStatus.UNRESOLVED)
            if outcome.status is OutcomeStatus.FAILED:
                counters.failed_events += 1
                continue
            if outcome.status is OutcomeStatus.RESOLVED:
                counters.resolved += 1
            else:
                counters.unresolved += 1

            role = _viewer_role(event, viewer)
            response = _viewer_response(event, viewer, role)
            emails = [event.organizer_email] + [
                a.email.lower() for a in event.attendees if a.email
            ]
            matches.append(
                _Match(
                    meeting=MatchedMeeting(
                        event_id=event.id,
                        title=event.subject or UNTITLED_MEETING,
                        start=event.start,
                        end=event.end,
                        join_url=event.join_url,  # type: ignore[arg-type]
                        web_link=event.web_link,
                        location=event.location,
                        organizer=event.organizer,
                        attendees=event.attendees,
                        participant_emails=list(dict.fromkeys(emails)),
                        role=role,
                        response_status=response,
                        accepted=role is ParticipantRole.ORGANIZER or response == "accepted",
                        declined=response == "declined",
                        resource_id=outcome.resource_id,
                        transcript_evidence=bool(outcome.transcripts),
                        has_recording=outcome.has_recording,
                        transcripts=outcome.transcripts,
                    ),
                    event=event,
                    outcome=outcome,
                )
            )
        return matches

    @staticmethod
    def _apply_filters(matches: list[_Match], filters: SyncFilters) -> list[_Match]:
        if filters.role is RoleFilter.ORGANIZER:
            matches = [m for m in matches if m.meeting.role is ParticipantRole.ORGANIZER]
        elif filters.role is RoleFilter.ATTENDEE:
            matches = [m for m in matches if m.meeting.role is ParticipantRole.ATTENDEE]
        if filters.only_with_transcripts:
            matches = [m for m in matches if m.meeting.transcript_evidence]
        if filters.limit is not None:
            matches = matches[: filters.limit]
        return matches

    async def _persist(
        self,
        reconciler: PersistenceReconciler,
        matches: list[_Match],
        counters: SyncCounters,
    ) -> None:
        """Meeting-scope boundary around each upsert."""
        for match in matches:
            try:
                meeting_id = await reconciler.upsert(
                    match.event,
                    match.outcome.resource_id,
                    match.outcome.transcripts,
                    has_recording=match.outcome.has_recording,
                )
            except Exception:
                counters.persist_failures += 1
                logger.error(
                    "meeting_persist_failed",
                    event_id=match.event.id,
                    exc_info=True,
                )
                continue
            match.meeting.meeting_id = meeting_id
            counters.persisted += 1
