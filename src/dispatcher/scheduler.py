"""
Periodic Action Scheduler
Runs configured actions on a background thread at fixed periods.

Schedule document (YAML or JSON):
    settings:
      sleep: 100          # loop interval in milliseconds
    schedules:
      - period: 60.0      # seconds; 0 means every tick
        action: LogAllServoRegisters
        on_start: true    # also run once when the scheduler starts

Each tick, every schedule whose elapsed time exceeds its period is invoked
synchronously through the action dispatcher. A failing action is logged
and never stops the loop.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum

import yaml

from lib.config_loader import SCHEDULE_FILE, get_config_path, load_document

from .exceptions import ActionInvocationFailure, ConfigurationLoadFailure

logger = logging.getLogger(__name__)


DEFAULT_SLEEP_MS = 100
JOIN_TIMEOUT = 5.0


class SchedulerState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    JOINING = "joining"


@dataclass
class Schedule:
    """A named action repeated every `period` seconds."""
    action: str
    period: float = 0.0
    on_start: bool = False
    last_performed: float = field(default_factory=time.monotonic)

    @classmethod
    def from_dict(cls, data):
        entry = {str(k).lower(): v for k, v in data.items()}
        action = entry.get("action")
        if not action:
            raise ValueError(f"Schedule entry has no action: {data}")
        on_start = entry.get("on_start", entry.get("onstart", entry.get("run_on_start", False)))
        return cls(
            action=str(action),
            period=float(entry.get("period", 0.0)),
            on_start=bool(on_start),
        )

    def elapsed(self, now):
        return now - self.last_performed

    def is_due(self, now):
        return self.elapsed(now) > self.period

    def perform(self, dispatcher, clock=time.monotonic):
        """
        Invoke the action. last_performed only moves forward, and only
        when the dispatcher returns without raising.
        """
        dispatcher.invoke(self.action)
        self.last_performed = max(self.last_performed, clock())


@dataclass
class SchedulerSettings:
    sleep: int = DEFAULT_SLEEP_MS  # milliseconds

    @property
    def sleep_seconds(self):
        return max(0, self.sleep) / 1000.0


def load_schedule(path=None):
    """
    Load the schedule document.

    Returns:
        (SchedulerSettings, list of Schedule)

    Raises:
        ConfigurationLoadFailure: file missing, unparsable, or malformed
    """
    path = path or get_config_path(SCHEDULE_FILE)
    try:
        document = load_document(path)
    except yaml.YAMLError as e:
        raise ConfigurationLoadFailure(path, e) from e
    if document is None:
        raise ConfigurationLoadFailure(path, "file not found")
    if not isinstance(document, dict):
        raise ConfigurationLoadFailure(path, "document must be a mapping")

    document = {str(k).lower(): v for k, v in document.items()}
    settings_data = {str(k).lower(): v for k, v in (document.get("settings") or {}).items()}
    try:
        settings = SchedulerSettings(sleep=int(settings_data.get("sleep", DEFAULT_SLEEP_MS)))
        schedules = [Schedule.from_dict(entry) for entry in document.get("schedules") or []]
    except (TypeError, ValueError, AttributeError) as e:
        raise ConfigurationLoadFailure(path, e) from e

    return settings, schedules


class Scheduler:
    """
    Background scheduler: STOPPED → RUNNING (start) → JOINING (stop).

    Stop is cooperative. The loop only exits at its sleep point, so an
    action that is being performed always runs to completion.
    """

    def __init__(self, dispatcher, config_path=None, clock=time.monotonic):
        """
        Args:
            dispatcher: Object with invoke(action_name), raising on failure
            config_path: Schedule document (defaults to src/config/schedule.yaml)
            clock: Monotonic time source in seconds
        """
        self.dispatcher = dispatcher
        self.config_path = config_path
        self.schedules = []
        self.settings = SchedulerSettings()
        self.enabled = True
        self.state = SchedulerState.STOPPED
        self._clock = clock
        self._thread = None
        self._wake = threading.Event()

    def load(self):
        self.settings, schedules = load_schedule(self.config_path)
        now = self._clock()
        for schedule in schedules:
            schedule.last_performed = now
        self.schedules = schedules
        logger.info(
            f"[Scheduler] Loaded {len(self.schedules)} schedules "
            f"(sleep={self.settings.sleep}ms)"
        )

    def start(self):
        """
        Load the schedule and start the loop thread.

        Returns:
            bool: True if the loop was started
        """
        if self.state is not SchedulerState.STOPPED:
            logger.warning(f"[Scheduler] Start ignored, scheduler is {self.state.value}")
            return False

        try:
            self.load()
        except ConfigurationLoadFailure as e:
            logger.error(f"[Scheduler] Not started: {e}")
            return False

        self._wake.clear()
        self.state = SchedulerState.RUNNING
        self._thread = threading.Thread(target=self._run, name="Scheduler", daemon=True)
        self._thread.start()
        logger.info("[Scheduler] Started")
        return True

    def stop(self, timeout=JOIN_TIMEOUT):
        """Request the loop to exit and wait for it."""
        if self.state is not SchedulerState.RUNNING:
            return

        self.state = SchedulerState.JOINING
        self._wake.set()

        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("[Scheduler] Loop still busy after stop timeout, it stops once the current action returns")
                return

        self._thread = None
        self.state = SchedulerState.STOPPED

    @property
    def is_running(self):
        return self.state is SchedulerState.RUNNING

    def _run(self):
        try:
            self.run_on_start()

            while self.state is SchedulerState.RUNNING:
                self.tick()
                self._wake.wait(self.settings.sleep_seconds)
        finally:
            # Also completes a stop() whose join timed out
            if self._thread in (None, threading.current_thread()):
                self.state = SchedulerState.STOPPED
            logger.info("[Scheduler] Stopped")

    def run_on_start(self):
        """Perform every on_start schedule once, in list order."""
        performed = 0
        for schedule in self.schedules:
            if schedule.on_start and self._perform(schedule):
                performed += 1
        return performed

    def tick(self):
        """
        Perform every due schedule, in list order.

        Returns:
            int: Number of schedules performed successfully
        """
        if not self.enabled:
            return 0

        now = self._clock()
        performed = 0
        for schedule in self.schedules:
            if schedule.is_due(now) and self._perform(schedule):
                performed += 1
        return performed

    def _perform(self, schedule):
        try:
            schedule.perform(self.dispatcher, self._clock)
            return True
        except ActionInvocationFailure as e:
            logger.error(f"[Scheduler] {e}")
        except Exception:
            logger.exception(f"[Scheduler] Unexpected error performing '{schedule.action}'")
        return False

    def get_status(self):
        now = self._clock()
        return {
            "state": self.state.value,
            "enabled": self.enabled,
            "sleep_ms": self.settings.sleep,
            "schedules": [
                {
                    "action": s.action,
                    "period": s.period,
                    "on_start": s.on_start,
                    "seconds_since_performed": round(s.elapsed(now), 3),
                }
                for s in self.schedules
            ],
        }
