# walletsync/core/scheduler.py
"""
Periodic Refresh Scheduler

Runs the refresh cycle on a timer. Starting a new cycle always supersedes
the previous one: its timer is cancelled and, if it is already running,
its results are dropped because its generation is no longer current.
"""

import threading
from enum import Enum
from typing import Callable, Optional

from walletsync.core.bus import StateFlag
from walletsync.core.errors import LogicError
from walletsync.utils.console import print_debug, print_error, print_warn


class SchedulerState(Enum):
    STOPPED = "stopped"
    SCHEDULED = "scheduled"
    RUNNING = "running"


class CycleToken:
    """Handed to a cycle so it can commit only while it is the current one."""

    def __init__(self, scheduler: "RefreshScheduler", generation: int, update_wallets_first: bool):
        self._scheduler = scheduler
        self.generation = generation
        self.update_wallets_first = update_wallets_first

    @property
    def lock(self) -> threading.RLock:
        return self._scheduler.lock

    def is_current(self) -> bool:
        return self._scheduler.generation == self.generation


# A cycle may return a delay for the next run, overriding the success period.
Cycle = Callable[[CycleToken], Optional[float]]


class RefreshScheduler:
    """
    Parameters:
        cycle: Callable running one refresh, raising on failure. A LogicError
            stops the schedule until the next start()
        update_period: Seconds between successful cycles
        error_update_period: Seconds before retrying a failed cycle
        is_local: Both periods are multiplied by `remote_multiplier` when False
        timer_factory: Creates the timers, `threading.Timer` by default
    """

    def __init__(self, cycle: Cycle, update_period: float = 10.0, error_update_period: float = 2.0,
                 is_local: bool = True, remote_multiplier: int = 60,
                 timer_factory: Callable = threading.Timer):
        self.cycle = cycle
        multiplier = 1 if is_local else remote_multiplier
        self.update_period = update_period * multiplier
        self.error_update_period = error_update_period * multiplier
        self.timer_factory = timer_factory

        self.lock = threading.RLock()
        self.generation = 0
        self.state = SchedulerState.STOPPED
        self._timer = None

        self.refreshing = StateFlag(False, "refreshing")
        self.had_error = StateFlag(False, "had_error")

    def start(self, delay: float = 0, update_wallets_first: bool = False) -> CycleToken:
        """Cancel any pending or running cycle and schedule a new one."""
        with self.lock:
            self._cancel_timer()
            self.generation += 1
            token = CycleToken(self, self.generation, update_wallets_first)
            self._schedule(token, delay)
            return token

    def stop(self) -> None:
        with self.lock:
            self._cancel_timer()
            self.generation += 1
            self.state = SchedulerState.STOPPED
        # A cycle still running is dropped and will not clear the flag itself.
        self.refreshing.set_if_changed(False)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule(self, token: CycleToken, delay: float) -> None:
        self._timer = self.timer_factory(max(0, delay), self._run, args=(token,))
        self._timer.daemon = True
        self.state = SchedulerState.SCHEDULED
        self._timer.start()

    def _run(self, token: CycleToken) -> None:
        with self.lock:
            if not token.is_current():
                return
            self.state = SchedulerState.RUNNING
        self.refreshing.set(True)

        next_delay = self.update_period
        failed = False
        halted = False
        try:
            override = self.cycle(token)
            if override is not None:
                next_delay = override
        except LogicError as e:
            failed = halted = True
            print_error(f"❌ Refresh stopped: {e}")
        except Exception as e:
            failed = True
            next_delay = self.error_update_period
            print_warn(f"⚠️  Refresh cycle failed, retrying in {next_delay:g}s: {e}")

        with self.lock:
            current = token.is_current()
            # A newer cycle already running owns the refreshing flag.
            newer_running = not current and self.state == SchedulerState.RUNNING
            if current and halted:
                self.generation += 1
                self.state = SchedulerState.STOPPED

        # Flags are published without holding the lock, subscribers may restart the cycle.
        if not current:
            print_debug("⏭️  Dropping the end of a superseded cycle")
            if not newer_running:
                self.refreshing.set_if_changed(False)
            return

        self.had_error.set(failed)
        self.refreshing.set(False)
        if halted:
            return

        with self.lock:
            if token.is_current():
                # Later cycles of the same generation never update the wallets first.
                next_token = CycleToken(self, token.generation, False)
                self._schedule(next_token, next_delay)
