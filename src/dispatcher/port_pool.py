"""
Port Pool
Tracks every serial port on the system and indexes their servos by ID.

- refresh(): discover new ports, drop closed/missing ones, rebuild the
  servo index, then apply the initialisation registers
- find_servo(): index lookup with one lazy refresh on a miss
- shutdown_all(): disable torque on every known servo

All public operations hold one re-entrant lock, so callers on the
scheduler thread and on request handlers always see one consistent view.
"""

import logging
import threading

import serial
import yaml

from lib.config_loader import INITIALISE_REGISTERS_FILE, get_config_path, load_document

from .exceptions import (
    ChannelOpenFailure,
    ConfigurationLoadFailure,
    DeviceConflict,
    DeviceNotFound,
    ServoCommunicationError,
)
from .port import DEFAULT_BAUD_RATE, ClosedPort, Port, list_port_names
from .registers import RegisterType, parse_registers

logger = logging.getLogger(__name__)


def load_initialise_registers(path=None):
    """Load the ordered list of Registers applied to every servo after a refresh."""
    path = path or get_config_path(INITIALISE_REGISTERS_FILE)
    try:
        document = load_document(path)
    except yaml.YAMLError as e:
        raise ConfigurationLoadFailure(path, e) from e
    if document is None:
        raise ConfigurationLoadFailure(path, "file not found")
    try:
        return parse_registers(document)
    except ValueError as e:
        raise ConfigurationLoadFailure(path, e) from e


class PortPool:
    """
    Pool of serial ports and the servos they reach.

    Args:
        list_ports: Callable returning the channel names currently available
        port_factory: Callable (name, baud_rate) -> Port
        baud_rate: Rate every new channel is opened at
        initialise_registers: Callable returning the list of Registers to apply
    """

    def __init__(self, list_ports=None, port_factory=None, baud_rate=DEFAULT_BAUD_RATE,
                 initialise_registers=None):
        self.ports = {}
        self.servos = {}
        self.conflicts = []
        self.baud_rate = baud_rate
        self._list_ports = list_ports or list_port_names
        self._port_factory = port_factory or Port
        self._initialise_registers = initialise_registers or load_initialise_registers
        self._lock = threading.RLock()

    @property
    def count(self):
        """Number of tracked ports (not servos)."""
        with self._lock:
            return len(self.ports)

    def snapshot(self):
        """Copy of the current {id: Servo} index."""
        with self._lock:
            return dict(self.servos)

    def refresh(self):
        """
        Full discovery pass.

        Order matters: new ports are opened before stale ones are dropped,
        the index is rebuilt after both, and initialisation runs last so
        freshly found servos are configured immediately.
        """
        with self._lock:
            current_names = list(self._list_ports())

            # Check if any new ports have been connected
            for name in current_names:
                if name not in self.ports:
                    self._add_port(name)

            # Drop ports that are closed or no longer reported by the system
            stale = [
                name for name, port in self.ports.items()
                if not port.is_open or name not in current_names
            ]
            for name in stale:
                self._remove_port(name)

            self._rebuild_index()
            self.initialise_all()

    def _add_port(self, name):
        logger.info(f"[PortPool] Found port: {name}")
        try:
            port = self._port_factory(name, self.baud_rate)
        except (serial.SerialException, OSError) as e:
            error = ChannelOpenFailure(name, e)
            logger.warning(f"[PortPool] {error}")
            port = ClosedPort(name, self.baud_rate, error)
        logger.info(f"[PortPool] Connected to port: {name} (is_open={port.is_open})")
        self.ports[name] = port

    def _remove_port(self, name):
        port = self.ports.pop(name)
        try:
            port.close()
        except (serial.SerialException, OSError) as e:
            logger.warning(f"[PortPool] Error closing port {name}: {e}")
        logger.info(f"[PortPool] Removed port: {name}")

    def _rebuild_index(self):
        servos = {}
        conflicts = []

        for port in self.ports.values():
            logger.info(f"[PortPool] Searching for servos on port {port.name}")
            found = []

            for servo_id, servo in port.servos.items():
                if servo_id in servos:
                    conflict = DeviceConflict(servo_id, servos[servo_id].port_name, port.name)
                    logger.warning(f"[PortPool] {conflict}")
                    conflicts.append(conflict)
                else:
                    servos[servo_id] = servo
                    found.append(servo_id)

            logger.info(f"[PortPool] Found servos: {', '.join(str(i) for i in found)}")

        self.servos = servos
        self.conflicts = conflicts

    def initialise_all(self):
        """Write every initialisation register to every indexed servo, in list order."""
        with self._lock:
            try:
                registers = self._initialise_registers()
            except ConfigurationLoadFailure as e:
                logger.error(f"[PortPool] Skipping servo initialisation: {e}")
                return

            for servo in self.servos.values():
                for register in registers:
                    try:
                        servo.write(register)
                    except (serial.SerialException, OSError, ServoCommunicationError) as e:
                        logger.error(f"[PortPool] Initialise failed for servo #{servo.id}: {e}")

    def find_servo(self, servo_id):
        """
        Return the servo with this ID.
        A miss triggers one refresh; a second miss raises DeviceNotFound.
        """
        with self._lock:
            if servo_id not in self.servos:
                self.refresh()
                if servo_id not in self.servos:
                    raise DeviceNotFound(servo_id)
            return self.servos[servo_id]

    def shutdown_all(self):
        """Disable torque on every known servo. Does not refresh first."""
        with self._lock:
            for servo in self.servos.values():
                try:
                    servo.write_value(RegisterType.TORQUE_ENABLE, 0)
                except (serial.SerialException, OSError, ServoCommunicationError) as e:
                    logger.error(f"[PortPool] Shutdown failed for servo #{servo.id}: {e}")

    def close_all(self):
        """Close every port and clear the index."""
        with self._lock:
            for name in list(self.ports):
                self._remove_port(name)
            self.servos = {}
            self.conflicts = []

    def get_status(self):
        with self._lock:
            return {
                "ports": {
                    name: {
                        "is_open": port.is_open,
                        "baud_rate": port.baud_rate,
                        "servos": sorted(port.servos),
                    }
                    for name, port in self.ports.items()
                },
                "servos": {
                    servo_id: servo.port_name
                    for servo_id, servo in sorted(self.servos.items())
                },
                "conflicts": [str(c) for c in self.conflicts],
            }
