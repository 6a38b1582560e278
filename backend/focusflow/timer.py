"""In-memory pomodoro state machine cycling through work and break phases."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Literal, Optional

PHASE_WORK = "work"
PHASE_SHORT_BREAK = "break"
PHASE_LONG_BREAK = "longBreak"

STATE_IDLE = "idle"
STATE_RUNNING = "running"
STATE_PAUSED = "paused"

Phase = Literal["work", "break", "longBreak"]
TimerState = Literal["idle", "running", "paused"]


@dataclass(frozen=True)
class TimerSettings:
    """Subset of a user's settings the countdown depends on (minutes)."""

    work_duration: int = 25
    short_break_duration: int = 5
    long_break_duration: int = 15
    sessions_until_long_break: int = 4
    auto_start_breaks: bool = False
    auto_start_pomodoros: bool = False

    def phase_seconds(self, phase: Phase) -> int:
        if phase == PHASE_WORK:
            return self.work_duration * 60
        if phase == PHASE_SHORT_BREAK:
            return self.short_break_duration * 60
        return self.long_break_duration * 60


@dataclass(frozen=True)
class TimerSnapshot:
    state: TimerState
    phase: Phase
    remaining_seconds: int
    planned_seconds: int
    completed_cycles: int
    task_id: Optional[int]


@dataclass(frozen=True)
class PhaseCompletion:
    """Outcome of a finished (or skipped) phase.

    ``task_id`` is only ever set for work phases. ``auto_start`` tells the
    owner of the timer to start ``next_phase`` after the auto-start delay.
    """

    phase: Phase
    duration_minutes: int
    task_id: Optional[int]
    next_phase: Phase
    auto_start: bool
    skipped: bool = False


class PomodoroTimer:
    """Countdown driven by external ticks.

    The timer never looks at a clock itself: whoever owns it delivers one
    ``tick()`` per second while it is running. ``completed_cycles`` counts work
    phases finished by this instance and is never persisted.
    """

    def __init__(
        self,
        settings_provider: Callable[[], TimerSettings],
        *,
        logger: Optional[logging.Logger] = None,
    ):
        self._settings_provider = settings_provider
        self._logger = logger or logging.getLogger(__name__)
        self._settings = settings_provider()
        self.state: TimerState = STATE_IDLE
        self.phase: Phase = PHASE_WORK
        self.completed_cycles = 0
        self.task_id: Optional[int] = None
        self.planned_seconds = self._settings.phase_seconds(self.phase)
        self.remaining_seconds = self.planned_seconds

    @property
    def settings(self) -> TimerSettings:
        return self._settings

    def snapshot(self) -> TimerSnapshot:
        return TimerSnapshot(
            state=self.state,
            phase=self.phase,
            remaining_seconds=self.remaining_seconds,
            planned_seconds=self.planned_seconds,
            completed_cycles=self.completed_cycles,
            task_id=self.task_id,
        )

    def start(self) -> bool:
        if self.state == STATE_RUNNING:
            return False
        self.state = STATE_RUNNING
        self._logger.info("Timer started: phase=%s remaining=%ss", self.phase, self.remaining_seconds)
        return True

    def pause(self) -> bool:
        if self.state != STATE_RUNNING:
            return False
        self.state = STATE_PAUSED
        self._logger.info("Timer paused: phase=%s remaining=%ss", self.phase, self.remaining_seconds)
        return True

    def reset(self) -> None:
        self._settings = self._settings_provider()
        self.state = STATE_IDLE
        self._enter_phase(self.phase)
        self._logger.info("Timer reset: phase=%s", self.phase)

    def select_task(self, task_id: Optional[int]) -> None:
        self.task_id = task_id

    def apply_settings(self, new_settings: TimerSettings) -> None:
        """Adopt new settings; an idle countdown is re-derived immediately."""
        self._settings = new_settings
        if self.state == STATE_IDLE:
            self._enter_phase(self.phase)

    def tick(self) -> Optional[PhaseCompletion]:
        if self.state != STATE_RUNNING:
            return None
        self.remaining_seconds = max(self.remaining_seconds - 1, 0)
        if self.remaining_seconds > 0:
            return None
        return self._complete_phase(skipped=False)

    def skip(self) -> Optional[PhaseCompletion]:
        if self.state not in (STATE_RUNNING, STATE_PAUSED):
            return None
        return self._complete_phase(skipped=True)

    def _complete_phase(self, *, skipped: bool) -> PhaseCompletion:
        finished = self.phase
        duration_minutes = round(self.planned_seconds / 60)
        task_id = self.task_id if finished == PHASE_WORK else None

        self.state = STATE_IDLE
        self._settings = self._settings_provider()
        current = self._settings

        if finished == PHASE_WORK:
            self.completed_cycles += 1
            if self.completed_cycles % current.sessions_until_long_break == 0:
                next_phase: Phase = PHASE_LONG_BREAK
            else:
                next_phase = PHASE_SHORT_BREAK
            auto_start = current.auto_start_breaks
        else:
            next_phase = PHASE_WORK
            auto_start = current.auto_start_pomodoros

        self._enter_phase(next_phase)
        self._logger.info(
            "Phase complete: phase=%s next=%s cycles=%s skipped=%s",
            finished,
            next_phase,
            self.completed_cycles,
            skipped,
        )
        return PhaseCompletion(
            phase=finished,
            duration_minutes=duration_minutes,
            task_id=task_id,
            next_phase=next_phase,
            auto_start=auto_start,
            skipped=skipped,
        )

    def _enter_phase(self, phase: Phase) -> None:
        self.phase = phase
        self.planned_seconds = self._settings.phase_seconds(phase)
        self.remaining_seconds = self.planned_seconds
