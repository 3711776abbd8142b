"""
Action Dispatchers
Invoke a named action and wait for it to finish or fail.

- HttpActionDispatcher: GET http://localhost:<port>/<action> on the action server
- LocalActionDispatcher: call the request handler in-process

Both raise ActionInvocationFailure on any failure, including timeouts.
"""

import asyncio
import logging

import aiohttp

from .exceptions import ActionInvocationFailure, DispatcherError

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT = 10.0  # seconds per action


class ActionDispatcher:
    """Interface used by the Scheduler."""

    def invoke(self, action):
        raise NotImplementedError


class HttpActionDispatcher(ActionDispatcher):
    """
    Performs actions through the local action server.
    Each invocation runs its own short-lived event loop, so it is safe to
    call from the scheduler thread.
    """

    def __init__(self, base_url="http://localhost:8080", timeout=DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def invoke(self, action):
        return asyncio.run(self.invoke_async(action))

    async def invoke_async(self, action):
        url = f"{self.base_url}/{action.lstrip('/')}"
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as resp:
                    if resp.status >= 400:
                        body = await resp.text()
                        raise ActionInvocationFailure(action, f"HTTP {resp.status}: {body}")
                    result = await resp.json(content_type=None)
        except asyncio.TimeoutError:
            raise ActionInvocationFailure(action, f"timed out after {self.timeout}s") from None
        except aiohttp.ClientError as e:
            raise ActionInvocationFailure(action, e) from e

        logger.debug(f"[HttpActionDispatcher] {action} → {result}")
        return result


class LocalActionDispatcher(ActionDispatcher):
    """Performs actions by calling the registered request handler directly."""

    def __init__(self, registry, context):
        self.registry = registry
        self.context = context

    def invoke(self, action):
        handler = self.registry.get(action)
        if handler is None:
            raise ActionInvocationFailure(action, "unknown action")
        try:
            return handler(self.context)
        except DispatcherError as e:
            raise ActionInvocationFailure(action, e) from e
