"""
Step controller: decides when the coordinator's pending checkpoint is released.

Manual mode releases one checkpoint per ``step()``. Auto-play runs a timer
task that releases one checkpoint per tick and switches itself back to manual
as soon as a tick finds nothing to release or the session ends.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Optional

from . import config
from .execution_engine import CheckpointCoordinator
from .models import ExecutionSession

logger = logging.getLogger(__name__)


class StepMode(Enum):
    """Who is releasing checkpoints."""
    MANUAL = "manual"
    AUTO_PLAY = "auto_play"


def _current_task() -> Optional['asyncio.Task']:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class StepController:
    """Manual stepping and timed auto-play over one coordinator."""

    def __init__(self, coordinator: CheckpointCoordinator, interval_ms: Optional[int] = None,
                 min_interval_ms: Optional[int] = None, max_interval_ms: Optional[int] = None):
        self.coordinator = coordinator
        self.min_interval_ms = min_interval_ms if min_interval_ms is not None else config.resolve_int('autoplay_min_ms')
        self.max_interval_ms = max_interval_ms if max_interval_ms is not None else config.resolve_int('autoplay_max_ms')
        if interval_ms is None:
            interval_ms = config.resolve_int('autoplay_interval_ms')
        self.interval_ms = self._clamp(interval_ms)
        self.mode = StepMode.MANUAL
        self.ticks = 0
        self._timer_task: Optional[asyncio.Task] = None

        coordinator.add_terminal_listener(self._on_session_ended)
        coordinator.add_teardown_listener(self._on_session_ended)

    def _clamp(self, interval_ms: int) -> int:
        return max(self.min_interval_ms, min(self.max_interval_ms, int(interval_ms)))

    @property
    def is_playing(self) -> bool:
        return self.mode is StepMode.AUTO_PLAY

    @property
    def can_step(self) -> bool:
        """True while a session exists and has not finished or failed."""
        session = self.coordinator.session
        return session is not None and not session.is_terminal

    # ------------------------------------------------------------------
    # manual
    # ------------------------------------------------------------------

    async def step(self) -> bool:
        """Release exactly one checkpoint and wait for the program to settle."""
        return await self.coordinator.step()

    # ------------------------------------------------------------------
    # auto-play
    # ------------------------------------------------------------------

    def play(self) -> bool:
        """Start auto-play. Does nothing once the session has ended."""
        if self.is_playing:
            return True
        if not self.can_step:
            return False
        self.mode = StepMode.AUTO_PLAY
        self._timer_task = asyncio.ensure_future(self._run_timer())
        logger.info(f"Auto-play started at {self.interval_ms} ms")
        return True

    def pause(self):
        """Stop auto-play and return to manual stepping."""
        if not self.is_playing and self._timer_task is None:
            return
        self.mode = StepMode.MANUAL
        task, self._timer_task = self._timer_task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        logger.info("Auto-play stopped")

    def toggle_auto_play(self) -> bool:
        """Flip between auto-play and manual. Returns whether auto-play is now on."""
        if self.is_playing:
            self.pause()
            return False
        return self.play()

    def set_interval(self, interval_ms: int) -> int:
        """Change the tick interval; a running timer picks it up on its next tick."""
        self.interval_ms = self._clamp(interval_ms)
        return self.interval_ms

    def tick(self) -> bool:
        """Release one checkpoint. With nothing pending, auto-play switches itself off."""
        if not self.is_playing:
            return False
        if not self.coordinator.resume():
            logger.debug("Auto-play tick found no pending checkpoint")
            self.pause()
            return False
        self.ticks += 1
        return True

    async def _run_timer(self):
        while self.is_playing:
            await asyncio.sleep(self.interval_ms / 1000.0)
            if not self.tick():
                break

    def _on_session_ended(self, session: ExecutionSession):
        self.pause()

    def get_state(self) -> Dict[str, Any]:
        return {
            'mode': self.mode.value,
            'playing': self.is_playing,
            'interval_ms': self.interval_ms,
            'min_interval_ms': self.min_interval_ms,
            'max_interval_ms': self.max_interval_ms,
            'can_step': self.can_step,
            'ticks': self.ticks,
        }
