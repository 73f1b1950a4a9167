# tests/conftest.py
import os
import sys
import asyncio
import json
from datetime import datetime, timezone
from urllib.parse import urlencode

import mongomock
import pytest

os.environ.setdefault("REDIS_URL", "redis://127.0.0.1:1")
os.environ.setdefault("RATE_LIMIT_TIMES", "10000")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.pop("STRIPE_SECRET_KEY", None)

sys.path.append(os.path.abspath("."))

from realestate.auth import create_access_token
from realestate.database import Store, get_store
from realestate.payments import get_payment_gateway
from main import app


@pytest.fixture()
def store():
    return Store.from_client(mongomock.MongoClient(), "realStateDB_test")


# One event loop for the WHOLE pytest session
@pytest.fixture(scope="session")
def session_loop():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()


# Run the app lifespan once per session (same loop) so FastAPILimiter.init()
# is called. A placeholder store keeps startup away from a real MongoDB.
@pytest.fixture(scope="session", autouse=True)
def app_lifespan(session_loop):
    app.state.store = Store.from_client(mongomock.MongoClient(), "lifespan")
    lifespan = app.router.lifespan_context(app)
    session_loop.run_until_complete(lifespan.__aenter__())
    yield
    session_loop.run_until_complete(lifespan.__aexit__(None, None, None))


# Simple ASGI response/client
class SimpleResponse:
    def __init__(
        self, status_code: int, body: bytes, headers: list[tuple[bytes, bytes]]
    ):
        self.status_code = status_code
        self._body = body
        self.headers = {k.decode(): v.decode() for k, v in headers}

    @property
    def text(self):
        return self._body.decode()

    def json(self):
        return json.loads(self._body.decode())


class SimpleClient:
    """
    Important:
    - uses ONE shared session loop (passed from fixture)
    - does NOT call asyncio.run()
    - does NOT close the loop
    """

    def __init__(self, app, loop):
        self.app = app
        self.loop = loop

    def request(
        self,
        method: str,
        path: str,
        json_body=None,
        params=None,
        headers=None,
    ):
        headers = dict(headers or {})
        body_bytes = b""

        if json_body is not None:
            body_bytes = json.dumps(json_body).encode()
            headers.setdefault("content-type", "application/json")

        path, _, query = path.partition("?")
        if params:
            query = "&".join(filter(None, [query, urlencode(params, doseq=True)]))

        raw_headers = [(k.lower().encode(), v.encode()) for k, v in headers.items()]
        scope = {
            "type": "http",
            "method": method.upper(),
            "path": path,
            "raw_path": path.encode(),
            "root_path": "",
            "scheme": "http",
            "server": ("testserver", 80),
            "headers": raw_headers,
            "query_string": query.encode(),
            "client": ("testclient", 5000),
        }

        async def receive():
            nonlocal body_bytes
            chunk, body_bytes = body_bytes, b""
            return {"type": "http.request", "body": chunk, "more_body": False}

        response_body = bytearray()
        response_status = 500
        response_headers: list[tuple[bytes, bytes]] = []

        async def send(message):
            nonlocal response_status, response_headers
            if message["type"] == "http.response.start":
                response_status = message["status"]
                response_headers = message.get("headers", [])
            elif message["type"] == "http.response.body":
                response_body.extend(message.get("body", b""))

        # ensure the loop is the current one
        asyncio.set_event_loop(self.loop)
        self.loop.run_until_complete(self.app(scope, receive, send))
        return SimpleResponse(response_status, bytes(response_body), response_headers)

    def get(self, path: str, params=None, headers=None):
        return self.request("GET", path, params=params, headers=headers)

    def post(self, path: str, json=None, headers=None):
        return self.request("POST", path, json_body=json, headers=headers)

    def patch(self, path: str, json=None, headers=None):
        return self.request("PATCH", path, json_body=json, headers=headers)

    def delete(self, path: str, headers=None):
        return self.request("DELETE", path, headers=headers)


class FakeGateway:
    """Payment gateway double returning a predictable client secret."""

    def __init__(self):
        self.amounts = []

    def create_intent(self, amount: float) -> str:
        self.amounts.append(amount)
        return f"pi_test_secret_{int(round(amount * 100))}"


@pytest.fixture()
def gateway():
    return FakeGateway()


# Client fixture: override store and gateway dependencies per test
@pytest.fixture()
def client(store, gateway, session_loop):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    try:
        yield SimpleClient(app, loop=session_loop)
    finally:
        app.dependency_overrides.clear()


def auth_headers(email: str) -> dict:
    token = create_access_token({"email": email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_user(store):
    def _make_user(email: str, role: str = "user", name: str | None = None) -> dict:
        user = {
            "email": email,
            "name": name or email.split("@")[0],
            "role": role,
            "isFirstLogin": False,
            "createdAt": datetime.now(timezone.utc),
        }
        user["_id"] = store.users.insert_one(user).inserted_id
        return user

    return _make_user


@pytest.fixture()
def headers():
    return auth_headers
