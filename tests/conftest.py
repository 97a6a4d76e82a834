from typing import Any, Dict, List

import httpx
import pytest
from starlette.requests import Request

from httpin.config import Settings
from httpin.http.request import NativeRequest
from httpin.runtime import FlowRuntime, MessageCatalog, Node, NodeRegistry


@NodeRegistry.register
class CaptureNode(Node):
    """Collects every message it receives."""

    type = "test-capture"

    def __init__(self, config: Dict[str, Any], runtime):
        super().__init__(config, runtime)
        self.messages: List[Dict[str, Any]] = []
        self.on_input(self.messages.append)


class RecordingNode:
    """Stand-in for a node where only warn/i18n are needed."""

    def __init__(self):
        self.catalog = MessageCatalog.load()
        self.warnings: List[Any] = []

    def warn(self, message):
        self.warnings.append(message)

    def i18n(self, key, **params):
        return self.catalog.translate(key, **params)


def make_settings(**overrides) -> Settings:
    """Settings that ignore any .env file in the working directory."""
    values = {"HTTP_NODE_HOST": "127.0.0.1"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_request(body: bytes = b"", headers=None, method: str = "POST", path: str = "/", query: bytes = b""):
    """
    Build a NativeRequest over an in-memory ASGI receive channel.

    Returns the request and a dict counting receive() calls.
    """
    calls = {"receive": 0}

    async def receive():
        calls["receive"] += 1
        return {"type": "http.request", "body": body, "more_body": False}

    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": query,
        "root_path": "",
        "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()],
        "server": ("testserver", 80),
        "client": ("127.0.0.1", 50000),
    }
    return NativeRequest(Request(scope, receive)), calls


def asgi_client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def runtime(settings) -> FlowRuntime:
    return FlowRuntime(settings)


@pytest.fixture
def recording_node() -> RecordingNode:
    return RecordingNode()
