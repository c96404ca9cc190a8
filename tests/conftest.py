import asyncio
import threading
from collections import defaultdict

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer


class FakeBackend:
    """In-process stand-in for the verification backend.

    `failures` maps an address to how many 500s it gets before succeeding.
    """

    def __init__(self, reachability="safe", failures=None, delay=0.0, health_failures=0, always_fail=False):
        self.reachability = reachability
        self.failures = dict(failures or {})
        self.delay = delay
        self.health_failures = health_failures
        self.always_fail = always_fail
        self.requests = []
        self.calls = defaultdict(int)
        self.health_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/v0/check_email", self.check_email)
        app.router.add_get("/health", self.health)
        return app

    async def check_email(self, request: web.Request) -> web.Response:
        body = await request.json()
        self.requests.append(body)
        email = body["to_email"]
        self.calls[email] += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

        if self.always_fail or self.calls[email] <= self.failures.get(email, 0):
            return web.Response(status=500, text="backend exploded")
        return web.json_response({
            "input": email,
            "is_reachable": self.reachability,
            "syntax": {"is_valid_syntax": True},
        })

    async def health(self, request: web.Request) -> web.Response:
        self.health_calls += 1
        if self.health_calls <= self.health_failures:
            return web.Response(status=503, text="starting")
        return web.Response(text="ok")


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest_asyncio.fixture
async def serve():
    """Start an aiohttp app on a local port and return its base URL."""
    servers = []

    async def start(app: web.Application) -> str:
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return str(server.make_url("/")).rstrip("/")

    yield start

    for server in servers:
        await server.close()


@pytest.fixture
def serve_in_thread():
    """Run an aiohttp app on its own loop in a background thread.

    For code such as main() that calls asyncio.run() itself.
    """
    running = []

    def start(app: web.Application) -> str:
        loop = asyncio.new_event_loop()
        thread = threading.Thread(target=loop.run_forever, daemon=True)
        thread.start()

        async def _start():
            server = TestServer(app)
            await server.start_server()
            return server

        server = asyncio.run_coroutine_threadsafe(_start(), loop).result(timeout=10)
        running.append((loop, thread, server))
        return str(server.make_url("/")).rstrip("/")

    yield start

    for loop, thread, server in running:
        asyncio.run_coroutine_threadsafe(server.close(), loop).result(timeout=10)
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout=10)
        loop.close()
