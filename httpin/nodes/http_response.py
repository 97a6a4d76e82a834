import logging
from typing import Any, Dict

from httpin.runtime.node import Node
from httpin.runtime.registry import NodeRegistry
from httpin.runtime.schema import NodeCategory, NodeInput, NodeManifest

logger = logging.getLogger(__name__)


@NodeRegistry.register
class HttpResponseNode(Node):
    """
    Sends the HTTP reply for a message that came from an http-in node.

    Status and headers configured on the node win over ``msg["statusCode"]``
    and ``msg["headers"]``. Objects are sent as JSON (JSONP when the request
    asked for it), everything else as the body.
    """

    type = "http-response"
    manifest = NodeManifest(
        id="http-response",
        name="http response",
        description="Sends responses back to requests received from an http-in node.",
        category=NodeCategory.NETWORK,
        inputs=[
            NodeInput(name="statusCode", type="number", label="Status code"),
            NodeInput(name="headers", type="json", label="Headers", default={}),
        ],
        tags=["http"],
    )

    def __init__(self, config: Dict[str, Any], runtime):
        super().__init__(config, runtime)
        self.status_code = config.get("statusCode")
        self.headers: Dict[str, Any] = dict(config.get("headers") or {})
        self.on_input(self.handle)

    def handle(self, msg: Dict[str, Any]) -> None:
        res = msg.get("res")
        if res is None:
            self.warn(self.i18n("httpin.errors.no-response"))
            return

        native = getattr(res, "native", res)
        if native.headers_sent:
            self.warn(self.i18n("httpin.errors.response-sent", msgid=msg.get("_msgid")))
            return

        headers = dict(self.headers)
        for name, value in (msg.get("headers") or {}).items():
            headers.setdefault(name, value)
        if headers:
            native.set(headers)

        for name, value in (msg.get("cookies") or {}).items():
            self._apply_cookie(native, name, value)

        status = int(self.status_code or msg.get("statusCode") or 200)
        payload = msg.get("payload")
        native.status(status)
        if isinstance(payload, (dict, list)):
            native.jsonp(payload)
        elif isinstance(payload, (int, float)) and not isinstance(payload, bool):
            native.send(str(payload))
        elif isinstance(payload, bool):
            native.send(str(payload).lower())
        else:
            native.send(payload)

    @staticmethod
    def _apply_cookie(native, name: str, value: Any) -> None:
        if value is None:
            native.clear_cookie(name)
        elif isinstance(value, dict):
            options = dict(value)
            cookie_value = options.pop("value", None)
            if cookie_value is None:
                native.clear_cookie(name, **options)
            else:
                native.cookie(name, cookie_value, **options)
        else:
            native.cookie(name, value)
