"""
Dispatcher Exceptions

Error taxonomy for the port pool and the scheduler:
- ChannelOpenFailure: a discovered serial channel could not be opened
- ServoCommunicationError: a servo did not answer or rejected a command
- DeviceConflict: two ports report the same servo ID
- DeviceNotFound: find_servo missed even after a refresh
- ConfigurationLoadFailure: a configuration document is missing or invalid
- ActionInvocationFailure: a scheduled action failed or timed out
"""


class DispatcherError(Exception):
    """Base exception for all dispatcher errors."""

    def __init__(self, message):
        self.message = message
        super().__init__(message)


class ChannelOpenFailure(DispatcherError):
    """Opening a serial channel failed."""

    def __init__(self, port_name, reason=None):
        self.port_name = port_name
        self.reason = reason
        message = f"Failed to open port {port_name}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ServoCommunicationError(DispatcherError):
    """A servo command got no valid response."""

    def __init__(self, servo_id, port_name, reason):
        self.servo_id = servo_id
        self.port_name = port_name
        super().__init__(f"Servo #{servo_id} on {port_name}: {reason}")


class DeviceConflict(DispatcherError):
    """Two ports report a servo with the same ID. The first mapping wins."""

    def __init__(self, servo_id, first_port, second_port):
        self.servo_id = servo_id
        self.first_port = first_port
        self.second_port = second_port
        super().__init__(
            f"2 servos have been found with the same ID ({servo_id}) "
            f"on ports {first_port} and {second_port}"
        )


class DeviceNotFound(DispatcherError):
    """No port reaches the requested servo."""

    def __init__(self, servo_id):
        self.servo_id = servo_id
        super().__init__(f"Servo #{servo_id} is not mapped to any serial port.")


class ConfigurationLoadFailure(DispatcherError):
    def __init__(self, path, reason):
        self.path = str(path)
        super().__init__(f"Failed to load {path}: {reason}")


class ActionInvocationFailure(DispatcherError):
    """A named action failed, was unknown, or timed out."""

    def __init__(self, action, reason):
        self.action = action
        self.reason = reason
        super().__init__(f"Action '{action}' failed: {reason}")
