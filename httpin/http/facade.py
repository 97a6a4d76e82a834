"""
Capability-restricted wrappers placed in runtime messages.

Flow nodes used to reach into ``msg.req`` / ``msg.res`` directly. The
facades keep those calls working but report each one as deprecated through
the owning node's warning channel. A wrapped call that returns the native
object (for chaining) returns the facade instead, so a chain such as
``msg["res"].status(201).set("x", "1").send("ok")`` never leaks the native
object. Runtime nodes that are allowed full access use ``.native``.
"""

from typing import Any, Callable, Tuple


def _deprecated_call(role: str, operation: str, attribute: str) -> Callable:
    def call(self, *args: Any, **kwargs: Any) -> Any:
        self._node.warn(
            self._node.i18n("httpin.errors.deprecated-call", method=f"msg.{role}.{operation}")
        )
        native = self.native
        result = getattr(native, attribute)(*args, **kwargs)
        if result is native:
            return self
        return result

    call.__name__ = operation
    call.__qualname__ = f"{role}.{operation}"
    return call


class RequestFacade:
    """Wrapper around a NativeRequest; fields are copied when wrapped."""

    OPERATIONS: Tuple[str, ...] = (
        "param",
        "get",
        "is_",
        "accepts_charsets",
        "accepts_languages",
    )
    FIELDS: Tuple[str, ...] = (
        "app",
        "base_url",
        "body",
        "cookies",
        "fresh",
        "hostname",
        "ip",
        "ips",
        "original_url",
        "params",
        "path",
        "protocol",
        "query",
        "route",
        "secure",
        "signed_cookies",
        "stale",
        "subdomains",
        "xhr",
        "socket",
    )

    param = _deprecated_call("req", "param", "param")
    get = _deprecated_call("req", "get", "get")
    is_ = _deprecated_call("req", "is", "is_")
    accepts_charsets = _deprecated_call("req", "acceptsCharsets", "accepts_charsets")
    accepts_languages = _deprecated_call("req", "acceptsLanguages", "accepts_languages")

    def __init__(self, node, req):
        self._node = node
        self.native = req
        for field in self.FIELDS:
            setattr(self, field, getattr(req, field))


class ResponseFacade:
    """Wrapper around a NativeResponse; every operation is intercepted."""

    OPERATIONS: Tuple[str, ...] = (
        "append",
        "attachment",
        "cookie",
        "clear_cookie",
        "download",
        "end",
        "format",
        "get",
        "json",
        "jsonp",
        "links",
        "location",
        "redirect",
        "render",
        "send",
        "sendfile",
        "send_file",
        "send_status",
        "set",
        "status",
        "type",
        "vary",
    )

    append = _deprecated_call("res", "append", "append")
    attachment = _deprecated_call("res", "attachment", "attachment")
    cookie = _deprecated_call("res", "cookie", "cookie")
    clear_cookie = _deprecated_call("res", "clearCookie", "clear_cookie")
    download = _deprecated_call("res", "download", "download")
    end = _deprecated_call("res", "end", "end")
    format = _deprecated_call("res", "format", "format")
    get = _deprecated_call("res", "get", "get")
    json = _deprecated_call("res", "json", "json")
    jsonp = _deprecated_call("res", "jsonp", "jsonp")
    links = _deprecated_call("res", "links", "links")
    location = _deprecated_call("res", "location", "location")
    redirect = _deprecated_call("res", "redirect", "redirect")
    render = _deprecated_call("res", "render", "render")
    send = _deprecated_call("res", "send", "send")
    sendfile = _deprecated_call("res", "sendfile", "sendfile")
    send_file = _deprecated_call("res", "sendFile", "send_file")
    send_status = _deprecated_call("res", "sendStatus", "send_status")
    set = _deprecated_call("res", "set", "set")
    status = _deprecated_call("res", "status", "status")
    type = _deprecated_call("res", "type", "type")
    vary = _deprecated_call("res", "vary", "vary")

    def __init__(self, node, res):
        self._node = node
        self.native = res


def wrap_request(node, req) -> RequestFacade:
    return RequestFacade(node, req)


def wrap_response(node, res) -> ResponseFacade:
    return ResponseFacade(node, res)
