"""
Servo Dispatcher

This package provides:
- PortPool: serial port discovery and the pool-wide servo index
- Port / Servo: one serial channel and the servos it reaches
- Scheduler / Schedule: periodic actions on a background thread
- HttpActionDispatcher / LocalActionDispatcher: invoke a named action
- RequestRegistry: named request handlers served by the action server
"""

# Lazy imports to avoid loading pyserial/aiohttp until needed
def __getattr__(name):
    if name == 'PortPool':
        from .port_pool import PortPool
        return PortPool
    if name == 'Port':
        from .port import Port
        return Port
    if name == 'Servo':
        from .servo import Servo
        return Servo
    if name in ('Register', 'RegisterType'):
        from . import registers
        return getattr(registers, name)
    if name in ('Scheduler', 'Schedule', 'SchedulerState'):
        from . import scheduler
        return getattr(scheduler, name)
    if name in ('ActionDispatcher', 'HttpActionDispatcher', 'LocalActionDispatcher'):
        from . import actions
        return getattr(actions, name)
    if name in ('RequestRegistry', 'RequestContext', 'create_default_registry'):
        from . import requests
        return getattr(requests, name)
    raise AttributeError(f"module 'dispatcher' has no attribute '{name}'")

__all__ = [
    'PortPool',
    'Port',
    'Servo',
    'Register',
    'RegisterType',
    'Scheduler',
    'Schedule',
    'SchedulerState',
    'ActionDispatcher',
    'HttpActionDispatcher',
    'LocalActionDispatcher',
    'RequestRegistry',
    'RequestContext',
    'create_default_registry',
]
