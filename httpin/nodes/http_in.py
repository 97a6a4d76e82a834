"""
HTTP In node with its own listener.

Unlike a webhook route on the runtime's main server, every instance of this
node starts a dedicated HTTP server on the configured port, runs incoming
requests through the middleware chain and emits one message per request.
The response is sent later by a downstream node through ``msg["res"]``.
"""

import asyncio
import logging
import re
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import Response

from httpin.errors import BindError, ConfigurationError, RuntimeListenerError
from httpin.http.chain import ChainOptions, assemble_chain
from httpin.http.facade import wrap_response
from httpin.http.request import NativeRequest
from httpin.http.response import NativeResponse
from httpin.http.server import EmbeddedServer
from httpin.http.stages import Cors
from httpin.runtime.i18n import MessageCatalog
from httpin.runtime.node import Node
from httpin.runtime.registry import NodeRegistry
from httpin.runtime.schema import NodeCategory, NodeInput, NodeManifest, NodeOutput, SelectOption

logger = logging.getLogger(__name__)

HttpMethod = Literal["get", "post", "put", "patch", "delete", "options"]

# Methods whose message payload is the request body
BODY_METHODS = frozenset({"post", "delete", "put", "options", "patch"})

_PARAM_SEGMENT = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)")

_catalog = MessageCatalog.load()


async def _client_gone(request: Request) -> None:
    """Return once the server reports the client connection closed."""
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


class RouteConfig(BaseModel):
    """The single route served by one http-in node."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    url: str
    method: HttpMethod = "get"
    port: int = Field(default=1880, ge=0, le=65535)
    upload: bool = False
    raw_json: bool = Field(default=False, alias="rawJson")

    @field_validator("url")
    def normalize_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("url must not be empty")
        return v if v.startswith("/") else f"/{v}"

    @field_validator("method", mode="before")
    def lower_method(cls, v):
        return v.lower() if isinstance(v, str) else v

    @property
    def starlette_path(self) -> str:
        """``/users/:id`` and ``/files/*`` in starlette's path syntax."""
        path = _PARAM_SEGMENT.sub(r"{\1}", self.url)
        if path.endswith("*"):
            path = path[:-1] + "{wildcard:path}"
        return path


@NodeRegistry.register
class HttpInNode(Node):
    type = "http-in-custom-port"
    manifest = NodeManifest(
        id="http-in-custom-port",
        name="http in (custom port)",
        description="Creates an HTTP endpoint on its own port and emits a message per request.",
        category=NodeCategory.NETWORK,
        inputs=[
            NodeInput(
                name="method",
                type="select",
                label=_catalog.translate("httpin.label.method"),
                default="get",
                options=[
                    SelectOption(label=m.upper(), value=m)
                    for m in ("get", "post", "put", "delete", "patch", "options")
                ],
            ),
            NodeInput(name="url", type="string", label=_catalog.translate("httpin.label.url"), required=True, placeholder="/url"),
            NodeInput(name="port", type="number", label=_catalog.translate("httpin.label.port"), default=1880, required=True),
            NodeInput(name="upload", type="boolean", label=_catalog.translate("httpin.label.upload"), default=False),
            NodeInput(name="rawJson", type="boolean", label=_catalog.translate("httpin.label.rawJson"), default=False),
        ],
        outputs=[
            NodeOutput(name="payload", type="json", label="Body or query"),
            NodeOutput(name="req", type="object", label="Request"),
            NodeOutput(name="res", type="object", label="Response"),
        ],
        tags=["http", "trigger"],
    )

    def __init__(self, config: Dict[str, Any], runtime):
        super().__init__(config, runtime)
        self.route: Optional[RouteConfig] = None
        self.app: Optional[FastAPI] = None
        self.server: Optional[EmbeddedServer] = None
        self.chain = None

        if not config.get("url"):
            self.warn(self.i18n("httpin.errors.missing-path"))
            return

        try:
            self.route = RouteConfig.model_validate(config)
        except ValidationError as e:
            raise ConfigurationError(self.i18n("httpin.errors.invalid-config", error=e)) from e

        options = ChainOptions.from_settings(self.settings)
        self.chain = assemble_chain(self, self.route, options)
        self._cors = Cors(options.cors)
        self.app = self._build_app(cors_enabled=options.cors is not None)
        self.server = EmbeddedServer(
            self.app,
            self.route.port,
            self.settings.HTTP_NODE_HOST,
            on_error=self._on_listener_error,
            shutdown_timeout=self.settings.SHUTDOWN_TIMEOUT,
            access_log=self.settings.ACCESS_LOG,
        )
        self.on_close(self._close_server)

    def _build_app(self, cors_enabled: bool) -> FastAPI:
        app = FastAPI(title=self.label, openapi_url=None, docs_url=None, redoc_url=None)
        # Plain request/response routes; the chain does its own body handling
        app.add_route(self.route.starlette_path, self._endpoint, methods=[self.route.method.upper()])
        if cors_enabled:
            app.add_route("/{path:path}", self._preflight, methods=["OPTIONS"])
        return app

    def _new_exchange(self, request: Request):
        route = {"path": self.route.url, "method": self.route.method}
        req = NativeRequest(request, app=self.app, route=route)
        res = NativeResponse(req, views_dir=self.settings.VIEWS_DIR)
        return req, res

    async def _endpoint(self, request: Request) -> Response:
        req, res = self._new_exchange(request)
        await self.chain.run(req, res)
        if res.headers_sent:
            return res.committed

        # Wait for a downstream node to answer, unless the client goes away
        # or the listener is closing and the grace period runs out
        answered = asyncio.create_task(res.wait())
        gone = asyncio.create_task(_client_gone(request))
        released = asyncio.create_task(self._close_grace())
        try:
            await asyncio.wait({answered, gone, released}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (answered, gone, released):
                task.cancel()

        if not res.headers_sent:
            reason = "client disconnected" if gone.done() and not gone.cancelled() else "listener closing"
            logger.debug(f"Releasing unanswered {req.method} {req.path}: {reason}")
            res.send_status(503)
        return res.committed

    async def _close_grace(self) -> None:
        await self.server.closing.wait()
        await asyncio.sleep(self.settings.CLOSE_PENDING_TIMEOUT)

    async def _preflight(self, request: Request) -> Response:
        req, res = self._new_exchange(request)
        await self._cors(req, res)
        if not res.headers_sent:
            res.status(204).end()
        return res.committed

    def callback(self, req: NativeRequest, res: NativeResponse) -> None:
        """Emit the message for a request that made it through the chain."""
        msgid = self.runtime.generate_id()
        res.msgid = msgid
        msg: Dict[str, Any] = {
            "_msgid": msgid,
            "req": req,
            "res": wrap_response(self, res),
        }
        if self.route.method in BODY_METHODS:
            msg["payload"] = req.body
        elif self.route.method == "get":
            msg["payload"] = req.query
        self.send(msg)

    # -- lifecycle ------------------------------------------------------

    async def start(self) -> None:
        if self.server is None:
            return
        try:
            await self.server.start()
        except BindError as e:
            self.status(self.i18n("httpin.status.cannot-create"))
            self.error(e)
            return
        if self.server.listening:
            listening = self.i18n("httpin.status.listening", port=self.server.port)
            self.status(listening)
            logger.info(f"{self.label} {listening}")

    def _on_listener_error(self, error: RuntimeListenerError) -> None:
        self.status(self.i18n("httpin.status.listener-failed"))
        self.error(error)

    async def _close_server(self, removed: bool) -> None:
        if self.server is not None:
            await self.server.close()
