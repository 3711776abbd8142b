"""
Request Handlers
Named actions served at GET /<action> and invoked by the scheduler.

Every handler takes a RequestContext and returns a JSON-serializable result.
Names are matched case-insensitively.
"""

import logging
import time
from dataclasses import dataclass

import serial

from lib.data_logger import get_register_logger, log_register_row

from .exceptions import ServoCommunicationError

logger = logging.getLogger(__name__)


@dataclass
class RequestContext:
    """Objects a handler may act on."""
    pool: object
    scheduler: object = None
    data_logger: logging.Logger = None


class RequestRegistry:
    """Maps action names to handler callables."""

    def __init__(self):
        self._handlers = {}

    @staticmethod
    def _key(name):
        return name.strip("/").lower()

    def register(self, name, handler=None):
        """Register a handler. Usable as a decorator: @registry.register("Ping")."""
        if handler is None:
            def decorator(func):
                self._handlers[self._key(name)] = func
                return func
            return decorator
        self._handlers[self._key(name)] = handler
        return handler

    def get(self, name):
        return self._handlers.get(self._key(name))

    def __contains__(self, name):
        return self._key(name) in self._handlers

    def names(self):
        return sorted(self._handlers)


# =============================================================================
# System Handlers
# =============================================================================

def ping(context):
    return {"pong": True, "time": time.time()}


def refresh(context):
    context.pool.refresh()
    return context.pool.get_status()


def initialise_all(context):
    context.pool.initialise_all()
    return {"servos": sorted(context.pool.snapshot())}


def shutdown_all(context):
    context.pool.shutdown_all()
    return {"servos": sorted(context.pool.snapshot())}


def list_servos(context):
    return {
        "servos": {
            servo_id: servo.port_name
            for servo_id, servo in sorted(context.pool.snapshot().items())
        }
    }


def status(context):
    result = context.pool.get_status()
    result["port_count"] = context.pool.count
    if context.scheduler is not None:
        result["scheduler"] = context.scheduler.get_status()
    return result


def log_all_servo_registers(context):
    """Read every register of every known servo and append a row per servo."""
    data_logger = context.data_logger or get_register_logger()
    logged = []
    failed = []

    for servo in context.pool.snapshot().values():
        try:
            servo.read_all()
        except (ServoCommunicationError, serial.SerialException) as e:
            logger.warning(f"[LogAllServoRegisters] {e}")
            failed.append(servo.id)
            continue
        log_register_row(data_logger, servo.id, servo.register_values())
        logged.append(servo.id)

    return {"logged": logged, "failed": failed}


def enable_scheduler(context):
    return _set_scheduler_enabled(context, True)


def disable_scheduler(context):
    return _set_scheduler_enabled(context, False)


def _set_scheduler_enabled(context, enabled):
    if context.scheduler is None:
        return {"enabled": False, "error": "Scheduler not configured"}
    context.scheduler.enabled = enabled
    logger.info(f"[Scheduler] {'Enabled' if enabled else 'Disabled'} by request")
    return {"enabled": context.scheduler.enabled}


def create_default_registry():
    """Registry with every system handler."""
    registry = RequestRegistry()
    registry.register("Ping", ping)
    registry.register("Refresh", refresh)
    registry.register("InitialiseAll", initialise_all)
    registry.register("ShutdownAll", shutdown_all)
    registry.register("ListServos", list_servos)
    registry.register("Status", status)
    registry.register("LogAllServoRegisters", log_all_servo_registers)
    registry.register("EnableScheduler", enable_scheduler)
    registry.register("DisableScheduler", disable_scheduler)
    return registry
