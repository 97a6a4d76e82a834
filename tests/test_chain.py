"""
Tests for middleware chain assembly and the per-request stages
"""

import gzip
import zlib

import pytest

from httpin.config import CorsPolicy
from httpin.http.chain import ChainOptions, resolve_middleware
from httpin.runtime import FlowRuntime

from conftest import asgi_client, make_settings

COMMON = ["cookie_parser", "http_middleware", "cors", "metrics"]


def _http_in(runtime, **config):
    config.setdefault("id", "in")
    config.setdefault("url", "/hook")
    config.setdefault("port", 0)
    config.setdefault("wires", ["capture", "reply"])
    node = runtime.add_node({"type": "http-in-custom-port", **config})
    runtime.add_node({"id": "capture", "type": "test-capture"})
    runtime.add_node({"id": "reply", "type": "http-response"})
    return node


@pytest.mark.parametrize(
    "method,raw_json,expected",
    [
        ("get", False, COMMON + ["callback"]),
        ("get", True, COMMON + ["callback"]),
        (
            "post",
            False,
            COMMON + ["json_parser", "urlencoded_parser", "multipart_parser", "raw_body_parser", "callback"],
        ),
        ("put", False, COMMON + ["json_parser", "urlencoded_parser", "raw_body_parser", "callback"]),
        ("patch", False, COMMON + ["json_parser", "urlencoded_parser", "raw_body_parser", "callback"]),
        ("delete", False, COMMON + ["json_parser", "urlencoded_parser", "raw_body_parser", "callback"]),
        ("options", False, COMMON + ["json_parser", "urlencoded_parser", "raw_body_parser", "callback"]),
        ("post", True, ["text_parser", "callback"]),
        ("put", True, ["text_parser", "callback"]),
        ("patch", True, COMMON + ["json_parser", "urlencoded_parser", "raw_body_parser", "callback"]),
    ],
)
def test_stage_order(runtime, method, raw_json, expected):
    node = _http_in(runtime, method=method, rawJson=raw_json)
    assert node.chain.names == expected
    assert node.chain.error_handler.name == "error_handler"


def test_options_from_settings():
    options = ChainOptions.from_settings(make_settings(API_MAX_LENGTH="1mb", METRICS_ENABLED=True))
    assert options.max_length == 1_048_576
    assert options.metrics is True
    assert options.cors is None
    assert options.middleware == []


def _hook(req, res):
    req.body = "from hook"


def test_resolve_middleware():
    assert resolve_middleware(None) == []
    assert resolve_middleware(_hook) == [_hook]
    assert resolve_middleware("test_chain:_hook") == [_hook]
    assert resolve_middleware(["test_chain._hook", _hook]) == [_hook, _hook]
    assert resolve_middleware(42) == []


@pytest.mark.asyncio
async def test_middleware_hook_can_answer():
    calls = []

    async def deny(req, res):
        calls.append(req.path)
        res.status(401).send("denied")

    runtime = FlowRuntime(make_settings(HTTP_NODE_MIDDLEWARE=[deny]))
    node = _http_in(runtime, method="post")

    async with asgi_client(node.app) as client:
        response = await client.post("/hook", json={"x": 1})

    assert response.status_code == 401
    assert response.text == "denied"
    assert calls == ["/hook"]
    assert runtime.nodes["capture"].messages == []


@pytest.mark.asyncio
async def test_cors_preflight_answered_by_cors_stage():
    policy = CorsPolicy(origin="https://app.example.com", methods="GET,POST")
    runtime = FlowRuntime(make_settings(HTTP_NODE_CORS=policy))
    node = _http_in(runtime, method="post")

    async with asgi_client(node.app) as client:
        response = await client.options(
            "/hook",
            headers={
                "origin": "https://app.example.com",
                "access-control-request-method": "POST",
            },
        )

    assert response.status_code == 204
    assert response.content == b""
    assert response.headers["access-control-allow-origin"] == "https://app.example.com"
    assert "POST" in response.headers["access-control-allow-methods"]
    assert runtime.nodes["capture"].messages == []


@pytest.mark.asyncio
async def test_cors_preflight_on_options_route():
    runtime = FlowRuntime(make_settings(HTTP_NODE_CORS=CorsPolicy()))
    node = _http_in(runtime, method="options")

    async with asgi_client(node.app) as client:
        response = await client.options(
            "/hook",
            headers={"origin": "https://a.example", "access-control-request-method": "PUT"},
        )

    assert response.status_code == 204
    assert response.headers["access-control-allow-origin"] == "*"
    assert runtime.nodes["capture"].messages == []


@pytest.mark.asyncio
async def test_cors_preflight_from_disallowed_origin():
    policy = CorsPolicy(origin="https://app.example.com", allowedHeaders="x-token")
    runtime = FlowRuntime(make_settings(HTTP_NODE_CORS=policy))
    node = _http_in(runtime, method="post")

    async with asgi_client(node.app) as client:
        response = await client.options(
            "/hook",
            headers={"origin": "https://evil.example", "access-control-request-method": "POST"},
        )

    assert response.status_code == 204
    assert "access-control-allow-origin" not in response.headers
    assert runtime.nodes["capture"].messages == []


@pytest.mark.asyncio
async def test_cors_preflight_reflects_requested_headers():
    runtime = FlowRuntime(make_settings(HTTP_NODE_CORS=CorsPolicy()))
    node = _http_in(runtime, method="post")

    async with asgi_client(node.app) as client:
        response = await client.options(
            "/hook",
            headers={
                "origin": "https://a.example",
                "access-control-request-method": "POST",
                "access-control-request-headers": "x-token, content-type",
            },
        )

    assert response.status_code == 204
    assert response.headers["access-control-allow-headers"] == "x-token, content-type"
    assert response.headers["access-control-max-age"] == "600"


@pytest.mark.asyncio
async def test_cors_headers_on_simple_request():
    runtime = FlowRuntime(make_settings(HTTP_NODE_CORS={"origin": "*", "exposedHeaders": "x-trace"}))
    node = _http_in(runtime, method="get")

    async with asgi_client(node.app) as client:
        response = await client.get("/hook", headers={"origin": "https://a.example"})

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers["access-control-expose-headers"] == "x-trace"
    assert len(runtime.nodes["capture"].messages) == 1


@pytest.mark.asyncio
async def test_cors_disabled_by_default(runtime):
    node = _http_in(runtime, method="post")

    async with asgi_client(node.app) as client:
        response = await client.options(
            "/hook",
            headers={"origin": "https://a.example", "access-control-request-method": "POST"},
        )

    assert response.status_code == 405
    assert "access-control-allow-origin" not in response.headers


@pytest.mark.asyncio
async def test_body_over_limit_fails_request():
    runtime = FlowRuntime(make_settings(API_MAX_LENGTH=16))
    node = _http_in(runtime, method="post")

    async with asgi_client(node.app) as client:
        response = await client.post("/hook", json={"text": "x" * 64})

    assert response.status_code == 500
    assert response.text == "Internal Server Error"
    assert runtime.nodes["capture"].messages == []


@pytest.mark.asyncio
async def test_default_limit_is_five_mebibytes(runtime):
    """A JSON body between 5 MB and 5 MiB is still accepted."""
    node = _http_in(runtime, method="post")
    body = b'{"a":"' + b"x" * 5_100_001 + b'"}'
    assert len(body) == 5_100_009

    async with asgi_client(node.app) as client:
        response = await client.post("/hook", content=body, headers={"content-type": "application/json"})

    assert response.status_code == 200
    assert len(runtime.nodes["capture"].messages[0]["payload"]["a"]) == 5_100_001


@pytest.mark.asyncio
async def test_gzip_json_inflated(runtime):
    node = _http_in(runtime, method="post")

    async with asgi_client(node.app) as client:
        response = await client.post(
            "/hook",
            content=gzip.compress(b'{"x": 1}'),
            headers={"content-type": "application/json", "content-encoding": "gzip"},
        )

    assert response.status_code == 200
    assert runtime.nodes["capture"].messages[0]["payload"] == {"x": 1}


@pytest.mark.asyncio
async def test_deflate_urlencoded_inflated(runtime):
    node = _http_in(runtime, method="put")

    async with asgi_client(node.app) as client:
        response = await client.put(
            "/hook",
            content=zlib.compress(b"a[b]=1&a[c]=2"),
            headers={"content-type": "application/x-www-form-urlencoded", "content-encoding": "deflate"},
        )

    assert response.status_code == 200
    assert runtime.nodes["capture"].messages[0]["payload"] == {"a": {"b": "1", "c": "2"}}


@pytest.mark.asyncio
async def test_unknown_content_encoding_fails_request(runtime):
    node = _http_in(runtime, method="post")

    async with asgi_client(node.app) as client:
        response = await client.post(
            "/hook",
            content=b'{"x": 1}',
            headers={"content-type": "application/json", "content-encoding": "br"},
        )

    assert response.status_code == 500
    assert runtime.nodes["capture"].messages == []


@pytest.mark.asyncio
async def test_nested_urlencoded_body(runtime):
    node = _http_in(runtime, method="post")

    async with asgi_client(node.app) as client:
        await client.post(
            "/hook",
            content=b"user[name]=ada&user[tags][]=x&user[tags][]=y&n=1",
            headers={"content-type": "application/x-www-form-urlencoded"},
        )

    assert runtime.nodes["capture"].messages[0]["payload"] == {
        "user": {"name": "ada", "tags": ["x", "y"]},
        "n": "1",
    }


@pytest.mark.asyncio
async def test_nested_query_string(runtime):
    node = _http_in(runtime, method="get")

    async with asgi_client(node.app) as client:
        await client.get("/hook?filter[status]=open&ids[]=1&ids[]=2")

    assert runtime.nodes["capture"].messages[0]["payload"] == {"filter": {"status": "open"}, "ids": ["1", "2"]}


@pytest.mark.asyncio
async def test_malformed_json_fails_request(runtime):
    node = _http_in(runtime, method="post")

    async with asgi_client(node.app) as client:
        response = await client.post("/hook", content=b"{not json", headers={"content-type": "application/json"})

    assert response.status_code == 500
    assert runtime.nodes["capture"].messages == []


@pytest.mark.asyncio
async def test_json_scalar_rejected(runtime):
    node = _http_in(runtime, method="put")

    async with asgi_client(node.app) as client:
        response = await client.put("/hook", content=b'"hi"', headers={"content-type": "application/json"})

    assert response.status_code == 500


@pytest.mark.asyncio
async def test_unsupported_charset_fails_request(runtime):
    node = _http_in(runtime, method="post")

    async with asgi_client(node.app) as client:
        response = await client.post(
            "/hook", content=b"a=1", headers={"content-type": "application/x-www-form-urlencoded; charset=latin-1"}
        )

    assert response.status_code == 500


@pytest.mark.asyncio
async def test_cookies_parsed(runtime):
    node = _http_in(runtime, method="get")

    async with asgi_client(node.app) as client:
        await client.get("/hook", headers={"cookie": 'sid=abc; prefs=j:{"dark":true}'})

    req = runtime.nodes["capture"].messages[0]["req"]
    assert req.cookies == {"sid": "abc", "prefs": {"dark": True}}


@pytest.mark.asyncio
async def test_metrics_reported_once(caplog):
    runtime = FlowRuntime(make_settings(METRICS_ENABLED=True))
    node = _http_in(runtime, method="get")

    with caplog.at_level("INFO", logger="httpin.metrics"):
        async with asgi_client(node.app) as client:
            response = await client.get("/hook?a=1")

    assert response.status_code == 200
    events = [r.getMessage() for r in caplog.records if r.name == "httpin.metrics"]
    assert len(events) == 2
    assert '"event": "node.http-in-custom-port.response.time.millis"' in events[0]
    assert '"event": "node.http-in-custom-port.response.content-length.bytes"' in events[1]
    msgid = runtime.nodes["capture"].messages[0]["_msgid"]
    assert all(f'"msgid": "{msgid}"' in event for event in events)
