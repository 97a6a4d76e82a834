"""
Base class for flow nodes.

A node receives messages through handlers registered with ``on_input``,
passes messages on with ``send`` and reports through ``warn``, ``error``,
``status`` and ``metric``. The runtime calls ``start()`` after deployment and
``close()`` on removal or redeploy.
"""

import inspect
import json
import logging
import time
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from httpin.runtime.schema import NodeManifest

if TYPE_CHECKING:
    from httpin.runtime.flow import FlowRuntime

logger = logging.getLogger(__name__)
metrics_logger = logging.getLogger("httpin.metrics")


class Node:
    type: str = "node"
    manifest: Optional[NodeManifest] = None

    def __init__(self, config: Dict[str, Any], runtime: "FlowRuntime"):
        self.runtime = runtime
        self.config = config
        self.id: str = config.get("id") or runtime.generate_id()
        self.name: str = config.get("name") or ""
        self.status_text: Optional[str] = None

        self._input_handlers: List[Callable] = []
        self._close_handlers: List[Callable] = []

    @property
    def settings(self):
        return self.runtime.settings

    @property
    def label(self) -> str:
        return f"{self.type}:{self.name or self.id}"

    def i18n(self, key: str, **params: Any) -> str:
        return self.runtime.i18n(key, **params)

    # -- messaging ------------------------------------------------------

    def send(self, msg: Dict[str, Any]) -> None:
        self.runtime.deliver(self, msg)

    def on_input(self, handler: Callable[[Dict[str, Any]], Any]) -> None:
        self._input_handlers.append(handler)

    async def receive(self, msg: Dict[str, Any]) -> None:
        for handler in self._input_handlers:
            result = handler(msg)
            if inspect.isawaitable(result):
                await result

    # -- reporting ------------------------------------------------------

    def warn(self, message: Any) -> None:
        logger.warning(f"[{self.label}] {message}")

    def error(self, message: Any, msg: Optional[Dict[str, Any]] = None) -> None:
        suffix = f" (msgid {msg['_msgid']})" if msg and "_msgid" in msg else ""
        logger.error(f"[{self.label}] {message}{suffix}")

    def status(self, text: Optional[str]) -> None:
        """Set the persistent status shown for this node; None clears it."""
        self.status_text = text
        if text:
            logger.info(f"[{self.label}] status: {text}")

    def metric(self, event: Optional[str] = None, msg: Optional[Dict[str, Any]] = None, value: Any = None):
        """
        Without arguments, report whether metrics are enabled. Otherwise log
        one metric event for ``msg``.
        """
        if event is None:
            return bool(self.settings.METRICS_ENABLED)
        metrics_logger.info(
            json.dumps(
                {
                    "level": "metric",
                    "nodeid": self.id,
                    "event": f"node.{self.type}.{event}",
                    "msgid": (msg or {}).get("_msgid"),
                    "value": value,
                    "timestamp": int(time.time() * 1000),
                }
            )
        )
        return True

    # -- lifecycle ------------------------------------------------------

    def on_close(self, handler: Callable[[bool], Any]) -> None:
        """Register ``handler(removed)``; it may be a coroutine function."""
        self._close_handlers.append(handler)

    async def start(self) -> None:
        pass

    async def close(self, removed: bool = False) -> None:
        """Run close handlers in order; returns once they have all finished."""
        for handler in self._close_handlers:
            result = handler(removed)
            if inspect.isawaitable(result):
                await result

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.label}>"
