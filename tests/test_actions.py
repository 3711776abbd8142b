"""
Unit Tests for Action Dispatchers

The HTTP dispatcher is exercised against a real aiohttp test server.
"""

import sys
import os
import asyncio
import unittest

from aiohttp import web
from aiohttp.test_utils import TestServer

# Add project src to path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), 'src'))

from dispatcher.actions import HttpActionDispatcher, LocalActionDispatcher
from dispatcher.exceptions import ActionInvocationFailure, DeviceNotFound
from dispatcher.requests import RequestContext, RequestRegistry


async def ok(request):
    return web.json_response({"pong": True})


async def fail(request):
    return web.json_response({"error": "broken"}, status=500)


async def slow(request):
    await asyncio.sleep(2.0)
    return web.json_response({})


class TestHttpActionDispatcher(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        app = web.Application()
        app.router.add_get("/Ping", ok)
        app.router.add_get("/Fail", fail)
        app.router.add_get("/Slow", slow)
        self.server = TestServer(app)
        await self.server.start_server()
        self.dispatcher = HttpActionDispatcher(str(self.server.make_url("/")), timeout=5.0)

    async def asyncTearDown(self):
        await self.server.close()

    async def test_success_returns_json(self):
        result = await self.dispatcher.invoke_async("Ping")
        self.assertEqual(result, {"pong": True})

    async def test_error_status_raises(self):
        with self.assertRaises(ActionInvocationFailure) as ctx:
            await self.dispatcher.invoke_async("Fail")
        self.assertEqual(ctx.exception.action, "Fail")
        self.assertIn("500", str(ctx.exception))

    async def test_unknown_route_raises(self):
        with self.assertRaises(ActionInvocationFailure):
            await self.dispatcher.invoke_async("Nothing")

    async def test_timeout_raises(self):
        self.dispatcher.timeout = 0.2
        with self.assertRaises(ActionInvocationFailure) as ctx:
            await self.dispatcher.invoke_async("Slow")
        self.assertIn("timed out", str(ctx.exception))

    async def test_blocking_invoke_from_worker_thread(self):
        # The scheduler calls invoke() from its own thread, outside any event loop
        result = await asyncio.to_thread(self.dispatcher.invoke, "Ping")
        self.assertEqual(result, {"pong": True})

    async def test_connection_refused_raises(self):
        await self.server.close()
        with self.assertRaises(ActionInvocationFailure):
            await self.dispatcher.invoke_async("Ping")


class TestLocalActionDispatcher(unittest.TestCase):

    def setUp(self):
        self.registry = RequestRegistry()
        self.context = RequestContext(pool=None)
        self.dispatcher = LocalActionDispatcher(self.registry, self.context)

    def test_invokes_handler_with_context(self):
        seen = []
        self.registry.register("Echo", lambda ctx: seen.append(ctx) or {"ok": True})

        self.assertEqual(self.dispatcher.invoke("echo"), {"ok": True})
        self.assertEqual(seen, [self.context])

    def test_unknown_action_raises(self):
        with self.assertRaises(ActionInvocationFailure) as ctx:
            self.dispatcher.invoke("Missing")
        self.assertEqual(ctx.exception.reason, "unknown action")

    def test_dispatcher_errors_are_wrapped(self):
        def lookup(ctx):
            raise DeviceNotFound(42)

        self.registry.register("Lookup", lookup)
        with self.assertRaises(ActionInvocationFailure) as ctx:
            self.dispatcher.invoke("Lookup")
        self.assertIsInstance(ctx.exception.__cause__, DeviceNotFound)


if __name__ == '__main__':
    unittest.main()
