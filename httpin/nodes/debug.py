import logging
from typing import Any, Dict

from httpin.runtime.node import Node
from httpin.runtime.registry import NodeRegistry
from httpin.runtime.schema import NodeCategory, NodeInput, NodeManifest

logger = logging.getLogger(__name__)


def _preview(value: Any, limit: int = 200) -> str:
    if isinstance(value, (bytes, bytearray)):
        text = f"<{len(value)} bytes> {bytes(value[:32])!r}"
    else:
        text = repr(value)
    return text if len(text) <= limit else text[:limit] + "..."


@NodeRegistry.register
class DebugNode(Node):
    """Logs one property of every message it receives."""

    type = "debug"
    manifest = NodeManifest(
        id="debug",
        name="debug",
        description="Logs message properties.",
        category=NodeCategory.COMMON,
        inputs=[NodeInput(name="property", type="string", label="Property", default="payload")],
    )

    def __init__(self, config: Dict[str, Any], runtime):
        super().__init__(config, runtime)
        self.property = config.get("property") or "payload"
        self.on_input(self.handle)

    def handle(self, msg: Dict[str, Any]) -> None:
        logger.info(f"[{self.label}] {msg.get('_msgid')} {self.property}={_preview(msg.get(self.property))}")
