"""
Event folding for focus sessions.

A session's state is a pure function of its event log. `validate_event`
gates new events, `apply_event` folds one event into a snapshot, and
`rebuild` replays a whole log from the empty state. `rebuild` uses
`apply_event` for every step, so replaying a log always lands on the same
total as folding it event by event.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Iterable, Optional, Protocol

from errors import InvalidTransition
from models import EventAction, FocusSession, SessionStatus, to_utc

_ONE_MS = timedelta(milliseconds=1)

_STATUS_AFTER = {
    EventAction.START: SessionStatus.ACTIVE,
    EventAction.PAUSE: SessionStatus.PAUSED,
    EventAction.STOP: SessionStatus.COMPLETED,
}


class LoggedEvent(Protocol):
    action: str
    occured_at: datetime
    sequence: int


@dataclass(frozen=True)
class SessionSnapshot:
    status: Optional[SessionStatus] = None
    last_start_time: Optional[datetime] = None
    total_time: int = 0

    @classmethod
    def of(cls, session: FocusSession) -> SessionSnapshot:
        return cls(
            status=SessionStatus(session.status) if session.status else None,
            last_start_time=session.last_start_time,
            total_time=session.total_time or 0,
        )

    def write_to(self, session: FocusSession) -> None:
        if self.status is not None:
            session.status = self.status.value
        session.last_start_time = self.last_start_time
        session.total_time = self.total_time


def _is_unset(ts: Optional[datetime]) -> bool:
    # Zero-valued timestamps (epoch or earlier, datetime.min) count as unset.
    return ts is None or to_utc(ts).timestamp() <= 0


def interval_ms(start: Optional[datetime], end: Optional[datetime]) -> int:
    """Whole milliseconds from start to end, never negative; 0 if either is unset."""
    if _is_unset(start) or _is_unset(end):
        return 0
    return max(0, (to_utc(end) - to_utc(start)) // _ONE_MS)


def validate_event(
    action: EventAction | str,
    occured_at: datetime,
    last_event: Optional[LoggedEvent],
    reject_backdated: bool = True,
) -> None:
    """
    Raise InvalidTransition if `action` may not follow `last_event`.

    A session's first event is always accepted. After that an action may not
    repeat the previous one, nothing may follow a stop, and (unless
    `reject_backdated` is off) an event may not be older than the last one.
    """
    if last_event is None:
        return
    action = EventAction(action)
    last_action = EventAction(last_event.action)
    if last_action is EventAction.STOP:
        raise InvalidTransition(f"Cannot perform this action: {action.value} (session is stopped)")
    if action is last_action:
        raise InvalidTransition(f"Cannot perform this action: {action.value} (already {action.value}d)")
    if reject_backdated and to_utc(occured_at) < to_utc(last_event.occured_at):
        raise InvalidTransition(
            f"Cannot perform this action: {action.value} "
            f"(occured_at is earlier than the last event)"
        )


def apply_event(
    snapshot: SessionSnapshot, action: EventAction | str, occured_at: datetime
) -> SessionSnapshot:
    """Fold one event into `snapshot` and return the new snapshot."""
    action = EventAction(action)
    status = _STATUS_AFTER[action]

    if action is EventAction.START:
        return replace(snapshot, status=status, last_start_time=occured_at)

    total = snapshot.total_time
    if action is EventAction.PAUSE or snapshot.status is SessionStatus.ACTIVE:
        # A stop after a pause adds nothing: the pause already closed the interval.
        total += interval_ms(snapshot.last_start_time, occured_at)
    return SessionSnapshot(status=status, last_start_time=None, total_time=total)


def ordered(events: Iterable[LoggedEvent]) -> list[LoggedEvent]:
    return sorted(events, key=lambda e: (to_utc(e.occured_at), e.sequence))


def rebuild(events: Iterable[LoggedEvent]) -> SessionSnapshot:
    """Replay a session's whole log from the empty state."""
    snapshot = SessionSnapshot()
    for event in ordered(events):
        snapshot = apply_event(snapshot, event.action, event.occured_at)
    return snapshot
