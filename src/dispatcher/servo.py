"""
Servo Handle
One addressable device reached through a Port.

The servo keeps the name of its port for identification and a weak
reference for I/O, so a dropped port is never kept alive by its servos.
"""

import logging
import weakref

from .exceptions import ServoCommunicationError
from .registers import Register, RegisterType

logger = logging.getLogger(__name__)


class Servo:
    """
    Protocol (line based, one response line per command):
      P <id>                 : Ping (Response: PONG)
      R <id> <register>      : Read register (Response: integer value)
      W <id> <register> <v>  : Write register (Response: OK)
    """

    def __init__(self, servo_id, port):
        self.id = servo_id
        self.port_name = port.name
        self._port = weakref.ref(port)
        # Key: RegisterType, Value: Register (last value read or written)
        self.registers = {}

    def __repr__(self):
        return f"Servo(id={self.id}, port={self.port_name!r})"

    def _send(self, command):
        port = self._port()
        if port is None or not port.is_open:
            raise ServoCommunicationError(self.id, self.port_name, "port is closed")
        response = port.transact(command)
        if response is None:
            raise ServoCommunicationError(self.id, self.port_name, f"no response to '{command}'")
        return response

    def ping(self):
        """Return True if the servo answers PONG."""
        try:
            return self._send(f"P {self.id}") == "PONG"
        except ServoCommunicationError:
            return False

    def read(self, register_type):
        """Read one register and cache its value."""
        register_type = RegisterType.parse(register_type)
        response = self._send(f"R {self.id} {register_type.value}")
        try:
            value = int(response)
        except ValueError:
            raise ServoCommunicationError(
                self.id, self.port_name,
                f"bad value for {register_type.value}: {response!r}"
            ) from None
        self.registers[register_type] = Register(register_type, value)
        return value

    def read_all(self):
        """Populate every register value."""
        for register_type in RegisterType:
            self.read(register_type)
        return dict(self.registers)

    def write(self, register):
        """Apply one register value. Raises if the servo does not ACK."""
        response = self._send(
            f"W {self.id} {register.register_type.value} {register.value}"
        )
        if response != "OK":
            raise ServoCommunicationError(
                self.id, self.port_name,
                f"write {register.register_type.value}={register.value} rejected: {response!r}"
            )
        self.registers[register.register_type] = register
        logger.debug(f"[Servo] #{self.id} {register.register_type.value} = {register.value}")

    def write_value(self, register_type, value):
        self.write(Register(RegisterType.parse(register_type), int(value)))

    def register_values(self):
        """Return {register name: value} for everything read so far."""
        return {
            register.register_type.value: register.value
            for register in self.registers.values()
        }
