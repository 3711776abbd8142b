"""
Unit Tests for Request Handlers

System actions run against a PortPool over in-memory ports.
"""

import sys
import os
import json
import logging
import unittest

# Add project src and tests to path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), 'src'))
sys.path.insert(0, os.path.dirname(__file__))

from dispatcher.port_pool import PortPool
from dispatcher.registers import Register, RegisterType
from dispatcher.requests import RequestContext, RequestRegistry, create_default_registry
from dispatcher.scheduler import Scheduler
from fake_ports import FakeEnvironment


class TestRequestRegistry(unittest.TestCase):

    def test_lookup_is_case_insensitive(self):
        registry = RequestRegistry()

        @registry.register("LogAllServoRegisters")
        def handler(context):
            return {}

        self.assertIs(registry.get("logallservoregisters"), handler)
        self.assertIs(registry.get("/LogAllServoRegisters"), handler)
        self.assertIn("LOGALLSERVOREGISTERS", registry)
        self.assertIsNone(registry.get("Other"))

    def test_default_registry_has_system_actions(self):
        registry = create_default_registry()
        for name in ("Ping", "Refresh", "InitialiseAll", "ShutdownAll", "ListServos",
                     "Status", "LogAllServoRegisters", "EnableScheduler", "DisableScheduler"):
            self.assertIn(name, registry)


class TestSystemHandlers(unittest.TestCase):

    def setUp(self):
        self.env = FakeEnvironment({"/dev/ttyUSB0": [1, 2], "/dev/ttyUSB1": [3]})
        self.pool = PortPool(
            list_ports=self.env.list_ports,
            port_factory=self.env.open_port,
            initialise_registers=lambda: [Register(RegisterType.TORQUE_ENABLE, 1)],
        )
        self.pool.refresh()
        self.registry = create_default_registry()
        self.data_logger = logging.getLogger("tests.registers")
        self.context = RequestContext(pool=self.pool, data_logger=self.data_logger)

    def perform(self, name):
        return self.registry.get(name)(self.context)

    def test_ping(self):
        self.assertTrue(self.perform("Ping")["pong"])

    def test_list_servos(self):
        result = self.perform("ListServos")
        self.assertEqual(result["servos"], {1: "/dev/ttyUSB0", 2: "/dev/ttyUSB0", 3: "/dev/ttyUSB1"})

    def test_refresh_picks_up_new_port(self):
        self.env.layout["/dev/ttyACM0"] = [9]
        self.env.available.append("/dev/ttyACM0")

        result = self.perform("Refresh")

        self.assertIn("/dev/ttyACM0", result["ports"])
        self.assertEqual(result["servos"][9], "/dev/ttyACM0")

    def test_shutdown_all(self):
        self.perform("ShutdownAll")
        for servo in self.pool.servos.values():
            self.assertEqual(servo.writes[-1], Register(RegisterType.TORQUE_ENABLE, 0))

    def test_initialise_all(self):
        result = self.perform("InitialiseAll")
        self.assertEqual(result["servos"], [1, 2, 3])
        self.assertEqual(len(self.pool.servos[1].writes), 2)

    def test_log_all_servo_registers_writes_rows(self):
        self.pool.servos[2].fail = True

        with self.assertLogs("tests.registers", level="INFO") as logs:
            result = self.perform("LogAllServoRegisters")

        self.assertEqual(sorted(result["logged"]), [1, 3])
        self.assertEqual(result["failed"], [2])
        rows = [json.loads(record.getMessage()) for record in logs.records]
        self.assertEqual(sorted(row["servo"] for row in rows), [1, 3])
        self.assertEqual(rows[0]["registers"]["PresentPosition"], 512)

    def test_status_includes_scheduler(self):
        scheduler = Scheduler(dispatcher=None)
        self.context.scheduler = scheduler

        result = self.perform("Status")

        self.assertEqual(result["port_count"], 2)
        self.assertEqual(result["scheduler"]["state"], "stopped")
        self.assertTrue(result["scheduler"]["enabled"])

    def test_enable_disable_scheduler(self):
        scheduler = Scheduler(dispatcher=None)
        self.context.scheduler = scheduler

        self.assertEqual(self.perform("DisableScheduler"), {"enabled": False})
        self.assertFalse(scheduler.enabled)
        self.assertEqual(self.perform("EnableScheduler"), {"enabled": True})
        self.assertTrue(scheduler.enabled)

    def test_scheduler_toggle_without_scheduler(self):
        result = self.perform("EnableScheduler")
        self.assertFalse(result["enabled"])
        self.assertIn("error", result)


if __name__ == '__main__':
    unittest.main()
