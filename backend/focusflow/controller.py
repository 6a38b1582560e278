"""Drives a :class:`PomodoroTimer` from a clock and persists finished phases."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Callable, Dict, Optional

from .clock import Clock, ScheduledCall
from .timer import STATE_RUNNING, PhaseCompletion, PomodoroTimer, TimerSettings

EventListener = Callable[[Dict[str, Any]], None]
CompletionRecorder = Callable[[PhaseCompletion], None]

ACTION_START = "start"
ACTION_PAUSE = "pause"
ACTION_RESET = "reset"
ACTION_SKIP = "skip"


def snapshot_payload(timer: PomodoroTimer) -> Dict[str, Any]:
    snapshot = timer.snapshot()
    return {
        "state": snapshot.state,
        "phase": snapshot.phase,
        "remainingSeconds": snapshot.remaining_seconds,
        "plannedSeconds": snapshot.planned_seconds,
        "completedCycles": snapshot.completed_cycles,
        "taskId": snapshot.task_id,
    }


def completion_payload(completion: PhaseCompletion) -> Dict[str, Any]:
    data = asdict(completion)
    return {
        "phase": data["phase"],
        "durationMinutes": data["duration_minutes"],
        "taskId": data["task_id"],
        "nextPhase": data["next_phase"],
        "autoStart": data["auto_start"],
        "skipped": data["skipped"],
    }


class TimerController:
    """One controller per connected client.

    Ticks are scheduled one at a time: the next tick is only scheduled after
    the previous one, including any persistence it triggered, has returned.
    """

    def __init__(
        self,
        clock: Clock,
        settings_loader: Callable[[], TimerSettings],
        recorder: CompletionRecorder,
        listener: Optional[EventListener] = None,
        *,
        tick_interval: float = 1.0,
        auto_start_delay: float = 2.0,
        logger: Optional[logging.Logger] = None,
    ):
        self._clock = clock
        self._settings_loader = settings_loader
        self._recorder = recorder
        self._listener = listener
        self._tick_interval = tick_interval
        self._auto_start_delay = auto_start_delay
        self._logger = logger or logging.getLogger(__name__)
        self._last_settings: Optional[TimerSettings] = None
        self._tick_handle: Optional[ScheduledCall] = None
        self._auto_start_handle: Optional[ScheduledCall] = None
        self._closed = False
        self.timer = PomodoroTimer(self._load_settings, logger=self._logger)

    def start(self) -> bool:
        self._cancel_auto_start()
        started = self.timer.start()
        if started:
            self._schedule_tick()
        self._emit_snapshot()
        return started

    def pause(self) -> bool:
        self._cancel_auto_start()
        paused = self.timer.pause()
        if paused:
            self._cancel_tick()
        self._emit_snapshot()
        return paused

    def reset(self) -> None:
        self._cancel_auto_start()
        self._cancel_tick()
        self.timer.reset()
        self._emit_snapshot()

    def skip(self) -> Optional[PhaseCompletion]:
        completion = self.timer.skip()
        if completion is None:
            self._emit_snapshot()
            return None
        self._cancel_tick()
        self._handle_completion(completion)
        return completion

    def select_task(self, task_id: Optional[int]) -> None:
        self.timer.select_task(task_id)
        self._emit_snapshot()

    def refresh_settings(self) -> None:
        self.timer.apply_settings(self._load_settings())
        self._emit_snapshot()

    def publish_snapshot(self) -> None:
        self._emit_snapshot()

    def dispatch(self, action: str) -> None:
        if action == ACTION_START:
            self.start()
        elif action == ACTION_PAUSE:
            self.pause()
        elif action == ACTION_RESET:
            self.reset()
        elif action == ACTION_SKIP:
            self.skip()
        else:
            raise ValueError(f"Unsupported timer action: {action}")

    def close(self) -> None:
        self._closed = True
        self._cancel_tick()
        self._cancel_auto_start()

    def _load_settings(self) -> TimerSettings:
        try:
            loaded = self._settings_loader()
        except Exception:
            if self._last_settings is None:
                raise
            self._logger.warning("Could not load settings, keeping previous values", exc_info=True)
            return self._last_settings
        self._last_settings = loaded
        return loaded

    def _schedule_tick(self) -> None:
        if self._closed:
            return
        self._cancel_tick()
        self._tick_handle = self._clock.call_later(self._tick_interval, self._on_tick)

    def _on_tick(self) -> None:
        self._tick_handle = None
        if self._closed or self.timer.state != STATE_RUNNING:
            return
        completion = self.timer.tick()
        if completion is not None:
            self._handle_completion(completion)
            return
        self._emit_snapshot()
        self._schedule_tick()

    def _handle_completion(self, completion: PhaseCompletion) -> None:
        try:
            self._recorder(completion)
        except Exception:
            self._logger.warning("Failed to record %s session", completion.phase, exc_info=True)
            self._emit(
                {
                    "type": "notice",
                    "level": "error",
                    "message": "Session could not be saved",
                }
            )
        self._emit({"type": "phase_complete", "completion": completion_payload(completion)})
        self._emit_snapshot()
        if completion.auto_start and not self._closed:
            self._auto_start_handle = self._clock.call_later(self._auto_start_delay, self._on_auto_start)

    def _on_auto_start(self) -> None:
        self._auto_start_handle = None
        if self._closed:
            return
        if self.timer.start():
            self._schedule_tick()
        self._emit_snapshot()

    def _cancel_tick(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _cancel_auto_start(self) -> None:
        if self._auto_start_handle is not None:
            self._auto_start_handle.cancel()
            self._auto_start_handle = None

    def _emit_snapshot(self) -> None:
        self._emit({"type": "snapshot", "timer": snapshot_payload(self.timer)})

    def _emit(self, event: Dict[str, Any]) -> None:
        if self._listener is None:
            return
        self._listener(event)
