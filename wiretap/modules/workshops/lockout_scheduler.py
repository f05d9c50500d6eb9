"""
Per-workshop lockout timers.

The allowed console window of a workshop is [lockout_start, lockout_end). Outside it every
console session on the workshop's instances is terminated. Timers are single-shot asyncio
handles held in memory; after a restart or a clock jump they are rebuilt by initialize()
or reschedule(), nothing is persisted.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from supabase import Client

from wiretap.config.settings import Settings, settings as default_settings
from wiretap.core.errors import NotFoundLocal
from wiretap.modules.workshops.schemas import LockoutScheduleEntry, WorkshopResponse
from wiretap.modules.workshops.service import WorkshopService

logger = logging.getLogger(__name__)


class LockoutState(str, Enum):
    UNLOCKED = "UNLOCKED"
    PRE_START_LOCKED = "PRE_START_LOCKED"
    ENDED_LOCKED = "ENDED_LOCKED"
    NO_WINDOW = "NO_WINDOW"

    @property
    def locked(self) -> bool:
        return self in (LockoutState.PRE_START_LOCKED, LockoutState.ENDED_LOCKED)


@dataclass
class LockoutTimers:
    start: Optional[asyncio.TimerHandle] = None
    end: Optional[asyncio.TimerHandle] = None

    def cancel(self) -> None:
        if self.start:
            self.start.cancel()
        if self.end:
            self.end.cancel()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_boundary(value: Any) -> Optional[datetime]:
    """Timezone-aware datetime for a stored boundary, or None when absent or unparsable."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Ignoring unparsable lockout boundary: {value!r}")
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        # Stored timestamps are UTC
        value = value.replace(tzinfo=timezone.utc)
    return value


def evaluate_window(now: datetime, start: Optional[datetime], end: Optional[datetime]) -> LockoutState:
    if start is None and end is None:
        return LockoutState.NO_WINDOW
    if start is not None and now < start:
        return LockoutState.PRE_START_LOCKED
    if end is not None and now >= end:
        return LockoutState.ENDED_LOCKED
    return LockoutState.UNLOCKED


class LockoutScheduler:
    """Holds the workshop id -> (start timer, end timer) registry.

    All methods run on the event loop thread. schedule_workshop() cancels the previous pair
    and installs the new one without awaiting in between, so a workshop never has more than
    one pair armed.
    """

    def __init__(
        self,
        supabase: Client,
        app_settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.supabase = supabase
        self.settings = app_settings or default_settings
        self.clock = clock
        self._timers: Dict[str, LockoutTimers] = {}

    def evaluate(self, workshop: WorkshopResponse) -> LockoutState:
        return evaluate_window(
            self.clock(),
            parse_boundary(workshop.lockout_start),
            parse_boundary(workshop.lockout_end),
        )

    def enforce_lockout_now(self, workshop: WorkshopResponse) -> int:
        """Delete every session on the workshop's instances. Logs failures, never raises."""
        try:
            instances = self.supabase.table("instances")\
                .select("id")\
                .eq("workshop_id", workshop.id)\
                .execute()
            instance_ids = [row["id"] for row in (instances.data or [])]
            if not instance_ids:
                logger.info(f"Lock enforced for workshop {workshop.name}: no instances")
                return 0
            result = self.supabase.table("sessions")\
                .delete()\
                .in_("instance_id", instance_ids)\
                .execute()
            terminated = len(result.data or [])
            logger.info(f"Lock enforced for workshop {workshop.name}: {terminated} active session(s) terminated")
            return terminated
        except Exception as e:
            logger.error(f"Error enforcing lockout for workshop {workshop.id}: {e}")
            return 0

    def cancel(self, workshop_id: str) -> None:
        timers = self._timers.pop(workshop_id, None)
        if timers:
            timers.cancel()

    def shutdown(self) -> None:
        for workshop_id in list(self._timers):
            self.cancel(workshop_id)

    def _delay(self, boundary: datetime, now: datetime) -> float:
        return max(0.0, (boundary - now).total_seconds())

    def _on_start(self, workshop: WorkshopResponse, timers: LockoutTimers, last: bool) -> None:
        logger.info(f"Unlocking at start for workshop {workshop.name}")
        if self._timers.get(workshop.id) is not timers:
            return
        if last or timers.end is None:
            del self._timers[workshop.id]
        else:
            timers.start = None

    def _on_end(self, workshop: WorkshopResponse, timers: LockoutTimers) -> None:
        logger.info(f"Locking at end for workshop {workshop.name}")
        self.enforce_lockout_now(workshop)
        if self._timers.get(workshop.id) is timers:
            del self._timers[workshop.id]

    def schedule_workshop(self, workshop: WorkshopResponse) -> LockoutState:
        """Cancel the workshop's timers, enforce if currently outside the window, arm new timers."""
        self.cancel(workshop.id)

        now = self.clock()
        start = parse_boundary(workshop.lockout_start)
        end = parse_boundary(workshop.lockout_end)
        state = evaluate_window(now, start, end)
        logger.info(
            f"Scheduling lockout for workshop {workshop.name}: now={now.isoformat()} "
            f"start={start.isoformat() if start else None} end={end.isoformat() if end else None} state={state.value}"
        )

        if state.locked:
            self.enforce_lockout_now(workshop)

        loop = asyncio.get_running_loop()
        timers = LockoutTimers()
        if start and end:
            if now < start:
                # end <= now < start only happens for rows stored with an inverted window
                timers.start = loop.call_later(self._delay(start, now), self._on_start, workshop, timers, now >= end)
            if now < end:
                timers.end = loop.call_later(self._delay(end, now), self._on_end, workshop, timers)
        elif start and now < start:
            timers.start = loop.call_later(self._delay(start, now), self._on_start, workshop, timers, True)
        elif end and now < end:
            timers.end = loop.call_later(self._delay(end, now), self._on_end, workshop, timers)

        if timers.start or timers.end:
            self._timers[workshop.id] = timers
        return state

    def reschedule(self, workshop_id: str) -> LockoutState:
        """Re-read the workshop and rebuild its timers."""
        try:
            workshop = WorkshopService(self.supabase).get_workshop_by_id(workshop_id)
        except NotFoundLocal:
            self.cancel(workshop_id)
            raise
        if not workshop.enabled:
            self.cancel(workshop_id)
            logger.info(f"Workshop {workshop.name} is disabled; lockout timers cleared")
            return LockoutState.NO_WINDOW
        state = self.schedule_workshop(workshop)
        logger.info(f"Lockout schedule updated for workshop {workshop.name}")
        return state

    def initialize(self) -> int:
        """Arm timers for enabled workshops at startup. Returns the number of workshops with timers."""
        try:
            workshops = WorkshopService(self.supabase).list_workshops(enabled_only=True)
        except Exception as e:
            logger.error(f"Failed to initialize lockout scheduler: {e}")
            return 0
        for workshop in workshops:
            has_start = parse_boundary(workshop.lockout_start) is not None
            has_end = parse_boundary(workshop.lockout_end) is not None
            wanted = (has_start and has_end) or (
                self.settings.lockout_schedule_partial_windows and (has_start or has_end)
            )
            if not wanted:
                continue
            try:
                self.schedule_workshop(workshop)
            except Exception as e:
                logger.error(f"Failed to schedule lockout for workshop {workshop.id}: {e}")
        logger.info(f"Lockout scheduler initialized for {len(self._timers)} workshop(s) with lockout windows")
        return len(self._timers)

    def get_schedules(self) -> List[LockoutScheduleEntry]:
        return [
            LockoutScheduleEntry(
                workshop_id=workshop_id,
                has_start_timer=timers.start is not None,
                has_end_timer=timers.end is not None,
            )
            for workshop_id, timers in self._timers.items()
        ]
