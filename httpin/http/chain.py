"""
Middleware chain assembly for an http-in route.

The stages a request passes through depend only on the route's method and
flags plus the global settings, so the chain is assembled once per node and
reused for every request.
"""

import importlib
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from httpin.config import CorsPolicy, Settings
from httpin.errors import categorize
from httpin.http.request import NativeRequest
from httpin.http.response import NativeResponse
from httpin.http.stages import (
    RAW_TEXT_LIMIT,
    Callback,
    CookieParser,
    Cors,
    ErrorHandler,
    HttpMiddleware,
    JsonParser,
    Metrics,
    MultipartParser,
    RawBodyParser,
    Stage,
    TextParser,
    UrlencodedParser,
)

logger = logging.getLogger(__name__)


def _import_hook(path: str) -> Callable:
    module_name, sep, attr = path.partition(":")
    if not sep:
        module_name, _, attr = path.rpartition(".")
    if not module_name or not attr:
        raise ValueError(f"Invalid middleware import path: {path!r}")
    module = importlib.import_module(module_name)
    return getattr(module, attr)


def resolve_middleware(value: Any) -> List[Callable]:
    """
    Turn the HTTP_NODE_MIDDLEWARE setting into a list of hooks.

    Accepts a callable, a "module:attr" string, or a list of either. Anything
    else is ignored and the hook stage stays a pass-through.
    """
    if value is None:
        return []
    if callable(value):
        return [value]
    if isinstance(value, str):
        return [_import_hook(value)]
    if isinstance(value, (list, tuple)):
        hooks = []
        for item in value:
            hooks.extend(resolve_middleware(item))
        return hooks
    logger.warning(f"Ignoring HTTP_NODE_MIDDLEWARE of type {type(value).__name__}")
    return []


@dataclass
class ChainOptions:
    cors: Optional[CorsPolicy] = None
    middleware: List[Callable] = field(default_factory=list)
    max_length: int = 5 * 1000 * 1000
    metrics: bool = False
    body_timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChainOptions":
        return cls(
            cors=settings.HTTP_NODE_CORS,
            middleware=resolve_middleware(settings.HTTP_NODE_MIDDLEWARE),
            max_length=int(settings.API_MAX_LENGTH),
            metrics=settings.METRICS_ENABLED,
            body_timeout=settings.BODY_READ_TIMEOUT,
        )


class Chain:
    """An ordered list of stages followed by an error handler."""

    def __init__(self, stages: List[Stage], error_handler: ErrorHandler):
        self.stages = stages
        self.error_handler = error_handler

    @property
    def names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    async def run(self, req: NativeRequest, res: NativeResponse) -> None:
        try:
            for stage in self.stages:
                await stage(req, res)
                if res.headers_sent:
                    return
        except Exception as error:
            logger.debug(f"{categorize(error).value} for {req.method} {req.path}: {error!r}")
            await self.error_handler(error, req, res)


def assemble_chain(node, route, options: ChainOptions) -> Chain:
    """
    Build the stage list for ``route.method``.

    ``node`` provides ``callback`` (the dispatcher), ``warn`` for the error
    handler and ``metric`` for the metrics finalizer.
    """
    method = route.method
    error_handler = ErrorHandler(node)
    callback = Callback(node.callback)

    if method in ("post", "put") and route.raw_json:
        return Chain([TextParser(RAW_TEXT_LIMIT, options.body_timeout), callback], error_handler)

    common: List[Stage] = [
        CookieParser(),
        HttpMiddleware(options.middleware),
        Cors(options.cors),
        Metrics(node, options.metrics),
    ]
    if method == "get":
        return Chain(common + [callback], error_handler)

    body: List[Stage] = [
        JsonParser(options.max_length, options.body_timeout),
        UrlencodedParser(options.max_length, options.body_timeout),
    ]
    if method == "post":
        body.append(MultipartParser(route.upload))
    body.append(RawBodyParser(options.body_timeout))

    return Chain(common + body + [callback], error_handler)
