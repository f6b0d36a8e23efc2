"""Pytest fixtures for pyhelki_hjm tests"""

import asyncio
import json
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable
from urllib.parse import parse_qsl

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from pyhelki_hjm import HelkiClient, HelkiConfig

TOKEN_PATH = "/client/token"

DEVICES_FIXTURE = {
    "devs": [
        {
            "dev_id": "smartbox-001",
            "name": "Living Room SmartBox",
            "product_id": "hjm_noelle",
            "fw_version": "1.0.0",
            "serial_id": "SB001",
        },
        {
            "dev_id": "smartbox-002",
            "name": "Bedroom SmartBox",
            "product_id": "hjm_noelle",
        },
    ],
    "invited_to": [],
}

NODES_FIXTURE = {
    "nodes": [
        {"addr": 1, "name": "Living Room Heater", "type": "htr", "installed": True},
        {"addr": 2, "name": "Kitchen Heater", "type": "htr", "installed": True},
        {"addr": 3, "name": "Hall Thermostat", "type": "thm", "installed": True, "lost": False},
    ]
}

STATUS_FIXTURE = {
    "stemp": "21.5",
    "mtemp": "22.0",
    "mode": "auto",
    "active": True,
    "units": "C",
    "sync_status": "ok",
    "error_code": "",
    "locked": False,
    "presence": True,
    "window_open": False,
    "boost": False,
    "true_radiant_active": False,
    "eco_temp": "18.0",
    "comf_temp": "22.0",
    "ice_temp": "7.0",
    "power": "1500",
    "duty": 50,
    "act_duty": 45,
}


# =============================================================================
# Fake HJM cloud
# =============================================================================


@dataclass
class RecordedRequest:
    method: str
    path: str
    headers: dict[str, str]
    body: bytes

    def json(self) -> Any:
        return json.loads(self.body)

    def form(self) -> dict[str, str]:
        return dict(parse_qsl(self.body.decode()))


@dataclass
class Reply:
    status: int = 200
    payload: Any = None
    delay: float = 0.0
    handler: Callable[[RecordedRequest], Awaitable[web.StreamResponse]] | None = None
    persist: bool = False


class FakeHelkiCloud:
    """
    In-process stand-in for api-hjm.helki.com.

    Replies are queued per (method, path) and consumed in order, like
    one-shot HTTP mocks; a reply added with persist=True is reused.
    """

    def __init__(self):
        self.base_url = ""
        self.requests: list[RecordedRequest] = []
        self._replies: dict[tuple[str, str], list[Reply]] = defaultdict(list)

    def add(
        self,
        method: str,
        path: str,
        status: int = 200,
        payload: Any = None,
        *,
        delay: float = 0.0,
        handler=None,
        persist: bool = False,
    ) -> None:
        self._replies[(method, path)].append(
            Reply(status, payload, delay, handler, persist)
        )

    def token(self, access_token: str = "test-token", expires_in: int = 14400, **kwargs) -> None:
        self.add(
            "POST",
            TOKEN_PATH,
            payload={
                "access_token": access_token,
                "refresh_token": "test-refresh",
                "expires_in": expires_in,
                "token_type": "Bearer",
            },
            **kwargs,
        )

    def calls(self, method: str, path: str) -> list[RecordedRequest]:
        return [r for r in self.requests if r.method == method and r.path == path]

    def count(self, method: str, path: str) -> int:
        return len(self.calls(method, path))

    async def handle(self, request: web.Request) -> web.StreamResponse:
        recorded = RecordedRequest(
            method=request.method,
            path=request.rel_url.raw_path,
            headers=dict(request.headers),
            body=await request.read(),
        )
        self.requests.append(recorded)

        queue = self._replies.get((recorded.method, recorded.path))
        if not queue:
            return web.Response(status=404, text=f"no fake reply for {recorded.method} {recorded.path}")
        reply = queue[0] if queue[0].persist else queue.pop(0)

        if reply.delay:
            await asyncio.sleep(reply.delay)
        if reply.handler is not None:
            return await reply.handler(recorded)
        if reply.payload is None:
            return web.Response(status=reply.status)
        return web.json_response(reply.payload, status=reply.status)


@pytest_asyncio.fixture
async def cloud():
    fake = FakeHelkiCloud()
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", fake.handle)
    server = TestServer(app)
    await server.start_server()
    fake.base_url = f"http://{server.host}:{server.port}"
    yield fake
    await server.close()


@pytest_asyncio.fixture
async def http_session():
    async with aiohttp.ClientSession() as session:
        yield session


@pytest.fixture
def config(cloud) -> HelkiConfig:
    return HelkiConfig(api_base=cloud.base_url)


@pytest_asyncio.fixture
async def client(cloud, http_session, config) -> HelkiClient:
    """Client already authenticated with token 'test-token'"""
    cloud.token("test-token")
    helki = HelkiClient(http_session, config)
    await helki.authenticate("user@test.com", "password")
    return helki
