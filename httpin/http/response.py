"""
Express-style response object.

A NativeResponse collects status, headers and cookies until one of the
sending operations (send, json, end, redirect, send_file, ...) commits it to
a starlette Response. The endpoint that owns the request awaits ``wait()``
and hands the committed response back to uvicorn. Hooks registered with
``on_headers`` run exactly once, right before the response is released.
"""

import asyncio
import functools
import json
import logging
import mimetypes
import os
import re
from http import HTTPStatus
from typing import Any, Callable, Dict, List, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape
from starlette.datastructures import MutableHeaders
from starlette.responses import FileResponse, Response

from httpin.errors import HeadersSentError

logger = logging.getLogger(__name__)

_JSONP_CALLBACK_RE = re.compile(r"[^\[\]\w$.]")


def _mime_for(value: str) -> str:
    if "/" in value:
        return value
    return mimetypes.guess_type(f"x.{value.lstrip('.')}")[0] or "application/octet-stream"


def _with_charset(content_type: str) -> str:
    if "charset" in content_type.lower():
        return content_type
    if content_type.startswith("text/") or content_type in ("application/json", "application/javascript"):
        return f"{content_type}; charset=utf-8"
    return content_type


@functools.lru_cache(maxsize=8)
def _template_env(views_dir: str) -> Environment:
    return Environment(
        loader=FileSystemLoader(views_dir),
        autoescape=select_autoescape(["html", "htm", "xml"]),
    )


class NativeResponse:
    """The response handed (wrapped) to flow nodes."""

    def __init__(self, req=None, *, views_dir: str = "views"):
        self.req = req
        if req is not None:
            req.res = self
        self.views_dir = views_dir

        self.status_code = 200
        self.headers = MutableHeaders()
        self.locals: Dict[str, Any] = {}
        self.msgid: Optional[str] = None

        self._cookies: List[Tuple[str, Dict[str, Any]]] = []
        self._on_headers: List[Callable[[], None]] = []
        self._committed: Optional[Response] = None
        self._sent = asyncio.Event()

    # -- state ----------------------------------------------------------

    @property
    def headers_sent(self) -> bool:
        return self._committed is not None

    @property
    def committed(self) -> Optional[Response]:
        return self._committed

    def on_headers(self, callback: Callable[[], None]) -> None:
        """Register a callback to run once when the response is committed."""
        self._on_headers.append(callback)

    async def wait(self) -> Response:
        await self._sent.wait()
        return self._committed

    # -- header operations ----------------------------------------------

    def status(self, code: int) -> "NativeResponse":
        self.status_code = int(code)
        return self

    def set(self, field, value: Any = None) -> "NativeResponse":
        if isinstance(field, dict):
            for key, item in field.items():
                self.set(key, item)
            return self
        if field.lower() == "content-type":
            value = _with_charset(_mime_for(str(value)))
        if isinstance(value, (list, tuple)):
            if field in self.headers:
                del self.headers[field]
            for item in value:
                self.headers.append(field, str(item))
        else:
            self.headers[field] = str(value)
        return self

    header = set

    def get(self, field: str) -> Optional[str]:
        return self.headers.get(field)

    def append(self, field: str, value: Any) -> "NativeResponse":
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            self.headers.append(field, str(item))
        return self

    def type(self, value: str) -> "NativeResponse":
        self.headers["content-type"] = _with_charset(_mime_for(value))
        return self

    content_type = type

    def vary(self, field: str) -> "NativeResponse":
        self.headers.add_vary_header(field)
        return self

    def location(self, url: str) -> "NativeResponse":
        if url == "back":
            url = (self.req.get("referrer") if self.req is not None else None) or "/"
        self.headers["location"] = url
        return self

    def links(self, links: Dict[str, str]) -> "NativeResponse":
        rendered = ", ".join(f'<{url}>; rel="{rel}"' for rel, url in links.items())
        existing = self.headers.get("link")
        self.headers["link"] = f"{existing}, {rendered}" if existing else rendered
        return self

    def attachment(self, filename: Optional[str] = None) -> "NativeResponse":
        if filename:
            self.type(os.path.splitext(filename)[1] or "application/octet-stream")
            self.headers["content-disposition"] = f'attachment; filename="{os.path.basename(filename)}"'
        else:
            self.headers["content-disposition"] = "attachment"
        return self

    def cookie(self, name: str, value: Any, **options: Any) -> "NativeResponse":
        if not isinstance(value, str):
            value = "j:" + json.dumps(value, separators=(",", ":"))
        options.setdefault("path", "/")
        self._cookies.append(("set", {"key": name, "value": value, **options}))
        return self

    def clear_cookie(self, name: str, **options: Any) -> "NativeResponse":
        options.setdefault("path", "/")
        options = {k: v for k, v in options.items() if k not in ("expires", "max_age")}
        self._cookies.append(("delete", {"key": name, **options}))
        return self

    # -- sending operations ---------------------------------------------

    def send(self, body: Any = None) -> "NativeResponse":
        if body is not None and not isinstance(body, (str, bytes, bytearray)):
            return self.json(body)

        if isinstance(body, str) and "content-type" not in self.headers:
            self.type("html")
        elif isinstance(body, (bytes, bytearray)) and "content-type" not in self.headers:
            self.type("bin")

        if self.status_code in (204, 304):
            body = None
            for field in ("content-type", "transfer-encoding"):
                if field in self.headers:
                    del self.headers[field]

        if self.req is not None and self.req.method == "HEAD":
            body = None

        self.commit(Response(content=body, status_code=self.status_code))
        return self

    def json(self, obj: Any) -> "NativeResponse":
        body = json.dumps(obj, separators=(",", ":"), ensure_ascii=False, default=str)
        if "content-type" not in self.headers:
            self.type("application/json")
        return self.send(body)

    def jsonp(self, obj: Any) -> "NativeResponse":
        callback = self.req.query.get("callback") if self.req is not None else None
        if isinstance(callback, list):
            callback = callback[0]
        if not isinstance(callback, str) or not callback:
            return self.json(obj)

        callback = _JSONP_CALLBACK_RE.sub("", callback)
        body = json.dumps(obj, separators=(",", ":"), ensure_ascii=False, default=str)
        body = body.replace("\u2028", "\\u2028").replace("\u2029", "\\u2029")
        self.headers["x-content-type-options"] = "nosniff"
        self.type("text/javascript")
        return self.send(f"/**/ typeof {callback} === 'function' && {callback}({body});")

    def send_status(self, code: int) -> "NativeResponse":
        self.status_code = int(code)
        try:
            phrase = HTTPStatus(self.status_code).phrase
        except ValueError:
            phrase = str(self.status_code)
        self.type("txt")
        return self.send(phrase)

    def end(self, data: Any = None) -> "NativeResponse":
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.commit(Response(content=data, status_code=self.status_code))
        return self

    def redirect(self, *args: Any) -> None:
        if len(args) == 2:
            status, url = args
        elif len(args) == 1:
            status, url = 302, args[0]
        else:
            raise TypeError("redirect() takes a url and an optional status")

        self.location(url)
        self.status_code = int(status)
        target = self.headers["location"]
        try:
            phrase = HTTPStatus(self.status_code).phrase
        except ValueError:
            phrase = "Redirecting"
        self.type("txt")
        self.send(f"{phrase}. Redirecting to {target}")

    def send_file(self, path: str, root: Optional[str] = None, headers: Optional[Dict[str, str]] = None) -> None:
        if root is not None:
            path = os.path.join(root, path)
        elif not os.path.isabs(path):
            raise TypeError("path must be absolute or specify root to send_file")
        if not os.path.isfile(path):
            raise FileNotFoundError(path)

        if headers:
            self.set(headers)
        if "content-type" not in self.headers:
            self.type(os.path.splitext(path)[1] or "bin")
        self.commit(FileResponse(path, status_code=self.status_code, stat_result=os.stat(path)))

    sendfile = send_file

    def download(self, path: str, filename: Optional[str] = None, root: Optional[str] = None) -> None:
        self.attachment(filename or os.path.basename(path))
        self.send_file(path, root=root)

    def render(self, view: str, context: Optional[Dict[str, Any]] = None) -> None:
        if not os.path.splitext(view)[1]:
            view = f"{view}.html"
        template = _template_env(self.views_dir).get_template(view)
        html = template.render({**self.locals, **(context or {})})
        if "content-type" not in self.headers:
            self.type("html")
        self.send(html)

    def format(self, handlers: Dict[str, Callable[[], Any]]) -> "NativeResponse":
        default = handlers.get("default")
        offers = tuple(key for key in handlers if key != "default")
        chosen = self.req.accepts(*offers) if self.req is not None and offers else (offers[0] if offers else False)

        self.vary("Accept")
        if chosen:
            self.type(_mime_for(chosen))
            handlers[chosen]()
        elif default is not None:
            default()
        else:
            self.send_status(406)
        return self

    # -- commit ---------------------------------------------------------

    def commit(self, response: Response) -> None:
        """Release ``response`` as the reply to this request."""
        if self._committed is not None:
            raise HeadersSentError()

        for field in dict.fromkeys(self.headers.keys()):
            if field == "content-length":
                continue
            values = self.headers.getlist(field)
            response.headers[field] = values[0]
            for extra in values[1:]:
                response.headers.append(field, extra)

        for action, options in self._cookies:
            if action == "set":
                response.set_cookie(**options)
            else:
                response.delete_cookie(**options)

        self._committed = response
        self.headers = response.headers
        try:
            for callback in self._on_headers:
                callback()
        finally:
            self._sent.set()

    def __repr__(self) -> str:
        return f"<NativeResponse {self.status_code} sent={self.headers_sent}>"
