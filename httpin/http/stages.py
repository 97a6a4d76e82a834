"""
Request-processing stages for the http-in chain.

Every stage is an awaitable ``stage(req, res)`` with a ``name``. A stage that
does not apply to a request returns without touching it; a stage that
commits the response ends the chain; a stage that raises hands the request to
the error handler.
"""

import inspect
import json
import logging
import time
from typing import Any, Callable, List, Optional

from starlette.formparsers import FormParser, MultiPartException
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import cookie_parser
from starlette.responses import Response

from httpin.config import CorsPolicy
from httpin.errors import ParseError
from httpin.http.body import read_bytes, read_raw_body
from httpin.http.content import charset_of, type_is
from httpin.http.qs import parse_nested
from httpin.http.request import NativeRequest, UploadedFile
from httpin.http.response import NativeResponse

logger = logging.getLogger(__name__)

# body-parser's default limit for the text parser used in raw JSON mode
RAW_TEXT_LIMIT = 100 * 1024

# body-parser's urlencoded parameterLimit
PARAMETER_LIMIT = 1000


class Stage:
    name = "stage"

    async def __call__(self, req: NativeRequest, res: NativeResponse) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class CookieParser(Stage):
    name = "cookie_parser"

    async def __call__(self, req, res):
        if req.cookies:
            return
        header = req.headers.get("cookie")
        if not header:
            return
        req.cookies = {key: _json_cookie(value) for key, value in cookie_parser(header).items()}
        req.signed_cookies = {}


def _json_cookie(value: str) -> Any:
    if not value.startswith("j:"):
        return value
    try:
        return json.loads(value[2:])
    except ValueError:
        return value


class HttpMiddleware(Stage):
    """Host supplied hooks, run in order; no hooks means pass-through."""
    name = "http_middleware"

    def __init__(self, hooks: Optional[List[Callable]] = None):
        self.hooks = list(hooks or [])

    async def __call__(self, req, res):
        for hook in self.hooks:
            result = hook(req, res)
            if inspect.isawaitable(result):
                await result
            if res.headers_sent:
                return


class Cors(Stage):
    name = "cors"

    def __init__(self, policy: Optional[CorsPolicy] = None):
        self.policy = policy
        self.middleware = CORSMiddleware(None, **policy.to_middleware_kwargs()) if policy else None

    async def __call__(self, req, res):
        if self.middleware is None:
            return
        origin = req.headers.get("origin")
        if origin is None:
            return

        if req.method == "OPTIONS" and "access-control-request-method" in req.headers:
            res.commit(self.preflight(req))
            return

        res.headers.update(self.middleware.simple_headers)
        if self.middleware.allow_all_origins and "cookie" in req.headers:
            CORSMiddleware.allow_explicit_origin(res.headers, origin)
        elif not self.middleware.allow_all_origins and self.middleware.is_allowed_origin(origin=origin):
            CORSMiddleware.allow_explicit_origin(res.headers, origin)

    def preflight(self, req: NativeRequest) -> Response:
        """
        Answer a preflight with 204 No Content.

        A disallowed origin gets the same answer without
        Access-Control-Allow-Origin, and the browser blocks the request.
        """
        middleware = self.middleware
        headers = dict(middleware.preflight_headers)
        origin = req.headers["origin"]
        if not middleware.is_allowed_origin(origin=origin):
            headers.pop("Access-Control-Allow-Origin", None)
        elif middleware.preflight_explicit_allow_origin:
            headers["Access-Control-Allow-Origin"] = origin

        requested = req.headers.get("access-control-request-headers")
        if middleware.allow_all_headers and requested is not None:
            headers["Access-Control-Allow-Headers"] = requested
        return Response(status_code=204, headers=headers)


class Metrics(Stage):
    name = "metrics"

    def __init__(self, node=None, enabled: bool = False):
        self.node = node
        self.enabled = enabled

    async def __call__(self, req, res):
        if not self.enabled:
            return
        started = time.perf_counter()

        def report():
            if not res.msgid:
                return
            elapsed = f"{(time.perf_counter() - started) * 1000:.3f}"
            self.node.metric("response.time.millis", {"_msgid": res.msgid}, elapsed)
            self.node.metric("response.content-length.bytes", {"_msgid": res.msgid}, res.get("content-length"))

        res.on_headers(report)


class _BodyParser(Stage):
    types: tuple = ()

    def __init__(self, limit: int, timeout: float):
        self.limit = limit
        self.timeout = timeout

    def matches(self, req: NativeRequest) -> bool:
        return type_is(req.headers.get("content-type"), *self.types) is not None

    async def __call__(self, req, res):
        if req.body_consumed:
            return
        if req.body is None:
            req.body = {}
        if not req.has_body or not self.matches(req):
            return
        req.body_consumed = True
        await self.parse(req)

    async def parse(self, req: NativeRequest) -> None:
        raise NotImplementedError


def _charset(req: NativeRequest) -> str:
    charset = (charset_of(req.headers.get("content-type")) or "utf-8").lower()
    if not charset.startswith("utf-"):
        raise ParseError(f'unsupported charset "{charset.upper()}"', status_code=415)
    return charset


class JsonParser(_BodyParser):
    name = "json_parser"
    types = ("application/json",)

    async def parse(self, req):
        charset = _charset(req)
        data = await read_bytes(req, timeout=self.timeout, limit=self.limit, decompress=True)
        try:
            text = data.decode(charset)
        except (UnicodeDecodeError, LookupError) as e:
            raise ParseError(f"invalid {charset} body: {e}")

        if not text.strip():
            req.body = {}
            return
        # Only objects and arrays are accepted at the top level
        if text.lstrip()[0] not in "{[":
            raise ParseError("JSON body must be an object or an array")
        try:
            req.body = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"Unexpected token in JSON: {e.msg} at position {e.pos}")


class UrlencodedParser(_BodyParser):
    name = "urlencoded_parser"
    types = ("application/x-www-form-urlencoded",)

    async def parse(self, req):
        _charset(req)
        data = await read_bytes(req, timeout=self.timeout, limit=self.limit, decompress=True)

        async def chunks():
            yield data
            yield b""

        try:
            form = await FormParser(req.headers, chunks(), max_fields=PARAMETER_LIMIT).parse()
        except MultiPartException as e:
            raise ParseError(e.message, status_code=413)
        items = form.multi_items()
        req.body = parse_nested(items, array_limit=max(100, len(items)))


class MultipartParser(Stage):
    """Collects multipart fields into ``body`` and uploads into ``files``."""
    name = "multipart_parser"

    def __init__(self, enabled: bool = False):
        self.enabled = enabled

    async def __call__(self, req, res):
        if not self.enabled:
            return
        try:
            if not req.body_consumed and type_is(req.headers.get("content-type"), "multipart/form-data"):
                await self._parse(req)
        finally:
            req.body_consumed = True

    async def _parse(self, req: NativeRequest) -> None:
        fields = {}
        files = []
        form = await req.raw.form()
        try:
            for key, value in form.multi_items():
                if isinstance(value, str):
                    fields.setdefault(key, []).append(value)
                    continue
                buffer = await value.read()
                files.append(
                    UploadedFile(
                        fieldname=key,
                        originalname=value.filename,
                        encoding="7bit",
                        mimetype=value.content_type,
                        buffer=buffer,
                        size=len(buffer),
                    )
                )
        finally:
            await form.close()
        req.body = {key: values[0] if len(values) == 1 else values for key, values in fields.items()}
        req.files = files
        logger.debug(f"Multipart body: {len(fields)} fields, {len(files)} files")


class RawBodyParser(Stage):
    name = "raw_body_parser"

    def __init__(self, timeout: float):
        self.timeout = timeout

    async def __call__(self, req, res):
        await read_raw_body(req, timeout=self.timeout)


class TextParser(_BodyParser):
    """Reads any body as text, whatever its declared type."""
    name = "text_parser"
    types = ("*/*",)

    async def parse(self, req):
        content_type = req.headers.get("content-type")
        charset = charset_of(content_type) or "utf-8"
        data = await read_bytes(req, timeout=self.timeout, limit=self.limit, decompress=True)
        try:
            req.body = data.decode(charset)
        except (UnicodeDecodeError, LookupError) as e:
            raise ParseError(f"invalid {charset} body: {e}", status_code=415)


class Callback(Stage):
    """Hands the request to the node; the response is sent later."""
    name = "callback"

    def __init__(self, callback: Callable[[NativeRequest, NativeResponse], Any]):
        self.callback = callback

    async def __call__(self, req, res):
        result = self.callback(req, res)
        if inspect.isawaitable(result):
            await result


class ErrorHandler:
    name = "error_handler"

    def __init__(self, node):
        self.node = node

    async def __call__(self, error: Exception, req: NativeRequest, res: NativeResponse) -> None:
        self.node.warn(error)
        if res.headers_sent:
            logger.error(f"Error after response was sent for {req.method} {req.path}: {error}")
            return
        res.send_status(500)
