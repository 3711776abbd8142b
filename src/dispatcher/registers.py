"""
Servo Register Model

RegisterType names every register the servo protocol exposes.
Register pairs a type with a value, as read from or written to a servo.
"""

from dataclasses import dataclass
from enum import Enum


class RegisterType(Enum):
    """Servo registers. Value is the name used on the wire."""
    MODEL_NUMBER = "ModelNumber"
    FIRMWARE_VERSION = "FirmwareVersion"
    ID = "ID"
    BAUD_RATE = "BaudRate"
    RETURN_DELAY_TIME = "ReturnDelayTime"
    CW_ANGLE_LIMIT = "CWAngleLimit"
    CCW_ANGLE_LIMIT = "CCWAngleLimit"
    TEMPERATURE_LIMIT = "TemperatureLimit"
    MAX_TORQUE = "MaxTorque"
    TORQUE_ENABLE = "TorqueEnable"
    LED = "LED"
    GOAL_POSITION = "GoalPosition"
    MOVING_SPEED = "MovingSpeed"
    TORQUE_LIMIT = "TorqueLimit"
    PRESENT_POSITION = "PresentPosition"
    PRESENT_SPEED = "PresentSpeed"
    PRESENT_LOAD = "PresentLoad"
    PRESENT_VOLTAGE = "PresentVoltage"
    PRESENT_TEMPERATURE = "PresentTemperature"
    MOVING = "Moving"

    @classmethod
    def parse(cls, name):
        """
        Look up a register by name, ignoring case and underscores.

        "TorqueEnable", "torque_enable" and "TORQUE_ENABLE" all resolve
        to RegisterType.TORQUE_ENABLE.
        """
        if isinstance(name, cls):
            return name
        key = str(name).replace("_", "").lower()
        for member in cls:
            if key in (member.value.lower(), member.name.replace("_", "").lower()):
                return member
        raise ValueError(f"Unknown register: {name}")


@dataclass(frozen=True)
class Register:
    register_type: RegisterType
    value: int

    @classmethod
    def from_dict(cls, data):
        """Build from a document entry such as {"register": "TorqueEnable", "value": 1}."""
        entry = {str(k).lower(): v for k, v in data.items()}
        name = entry.get("register", entry.get("registertype", entry.get("name")))
        if name is None or "value" not in entry:
            raise ValueError(f"Register entry needs a register name and a value: {data}")
        return cls(RegisterType.parse(name), int(entry["value"]))

    def to_dict(self):
        return {"register": self.register_type.value, "value": self.value}


def parse_registers(document):
    """
    Parse an initialisation document into an ordered list of Registers.

    Accepts {"registers": [...]} (key case-insensitive) or a bare list.
    """
    if isinstance(document, dict):
        entries = {str(k).lower(): v for k, v in document.items()}.get("registers", [])
    else:
        entries = document
    if not isinstance(entries, list):
        raise ValueError("'registers' must be a list")
    return [Register.from_dict(entry) for entry in entries]
