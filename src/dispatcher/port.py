"""
Serial Port
Owns one serial channel and the servos reachable through it.

Opening is best-effort: a Port is always constructed, and is_open
reports whether the channel could actually be opened.
"""

import logging
import threading

import serial
import serial.tools.list_ports

from .exceptions import ChannelOpenFailure
from .servo import Servo

logger = logging.getLogger(__name__)


DEFAULT_BAUD_RATE = 115200
DEFAULT_SCAN_IDS = range(1, 33)
READ_TIMEOUT = 0.05  # seconds per response line


def list_port_names():
    """Return the names of the serial channels the system currently reports."""
    return [p.device for p in serial.tools.list_ports.comports()]


class Port:
    """
    A serial channel plus the servos found on it.
    Commands are serialized with a per-port lock (one bus, many servos).
    """

    def __init__(self, name, baud_rate=DEFAULT_BAUD_RATE, scan_ids=DEFAULT_SCAN_IDS,
                 timeout=READ_TIMEOUT):
        self.name = name
        self.baud_rate = baud_rate
        self.scan_ids = scan_ids
        self.timeout = timeout
        self.ser = None
        self.open_error = None
        self._servos = {}
        self._lock = threading.Lock()
        self.open()

    def __repr__(self):
        return f"Port(name={self.name!r}, baud_rate={self.baud_rate}, is_open={self.is_open})"

    def open(self):
        """
        Open the channel and scan for servos.
        Returns True on success. Failures are recorded in open_error.
        """
        try:
            self.ser = serial.Serial(self.name, self.baud_rate, timeout=self.timeout)
            self.ser.reset_input_buffer()
        except serial.SerialException as e:
            self.ser = None
            self.open_error = ChannelOpenFailure(self.name, e)
            logger.warning(f"[Port] {self.open_error}")
            return False

        self.open_error = None
        self._servos = self.scan()
        return True

    def close(self):
        """Close the channel. Waits for any command in flight to finish."""
        with self._lock:
            self._close_unlocked()

    def _close_unlocked(self):
        if self.ser and self.ser.is_open:
            self.ser.close()
        self.ser = None
        self._servos = {}

    @property
    def is_open(self):
        return self.ser is not None and self.ser.is_open

    @property
    def servos(self):
        """Servos found at the last scan. A closed port reaches none."""
        if not self.is_open:
            return {}
        return dict(self._servos)

    def scan(self):
        """Ping every ID in scan_ids and return {id: Servo} for those that answer."""
        found = {}
        for servo_id in self.scan_ids:
            servo = Servo(servo_id, self)
            if servo.ping():
                found[servo_id] = servo
        return found

    def transact(self, command):
        """
        Send one command line and return the response line.
        Returns None on timeout. A failing channel is closed.
        """
        with self._lock:
            if self.ser is None or not self.ser.is_open:
                return None
            try:
                self.ser.write(f"{command}\n".encode("utf-8"))
                response = self.ser.readline().decode("utf-8", errors="replace").strip()
            except serial.SerialException as e:
                logger.error(f"[Port] {self.name} failed during '{command}': {e}")
                self._close_unlocked()
                return None

        return response or None


class ClosedPort:
    """Tracks a channel whose Port could not be created at all."""

    is_open = False

    def __init__(self, name, baud_rate, open_error):
        self.name = name
        self.baud_rate = baud_rate
        self.open_error = open_error

    def __repr__(self):
        return f"ClosedPort(name={self.name!r}, error={self.open_error})"

    @property
    def servos(self):
        return {}

    def close(self):
        pass
