import asyncio
import logging
import secrets
from typing import Any, Dict, List, Optional, Set

from httpin.config import Settings
from httpin.config import settings as default_settings
from httpin.runtime.i18n import MessageCatalog
from httpin.runtime.node import Node
from httpin.runtime.registry import NodeRegistry

logger = logging.getLogger(__name__)


class FlowRuntime:
    """
    In-process flow runtime hosting nodes.

    Nodes are created from config dicts (``type``, ``id``, ``wires`` plus
    node specific keys). Messages sent by a node are delivered to the
    nodes it is wired to as separate tasks on the running loop.
    """

    def __init__(self, settings: Optional[Settings] = None, catalog: Optional[MessageCatalog] = None):
        self.settings = settings or default_settings
        self.catalog = catalog or MessageCatalog.load()
        self.nodes: Dict[str, Node] = {}
        self.wires: Dict[str, List[str]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def generate_id(self) -> str:
        return secrets.token_hex(8)

    def i18n(self, key: str, **params: Any) -> str:
        return self.catalog.translate(key, **params)

    # -- deployment -----------------------------------------------------

    def add_node(self, config: Dict[str, Any]) -> Node:
        node = NodeRegistry.create(config["type"], config, self)
        if node.id in self.nodes:
            raise ValueError(f"Duplicate node id '{node.id}'")
        self.nodes[node.id] = node
        self.wires[node.id] = list(config.get("wires", []))
        logger.debug(f"Added node {node.label}")
        return node

    def wire(self, source: Node, target: Node) -> None:
        self.wires.setdefault(source.id, []).append(target.id)

    async def deploy(self, configs: List[Dict[str, Any]]) -> List[Node]:
        """Create every node, then start them in order."""
        nodes = [self.add_node(config) for config in configs]
        for node in nodes:
            await node.start()
        logger.info(f"Deployed {len(nodes)} nodes")
        return nodes

    async def stop(self, removed: bool = True) -> None:
        """Close every node and wait for in-flight deliveries."""
        for node in list(self.nodes.values()):
            await node.close(removed)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if removed:
            self.nodes.clear()
            self.wires.clear()

    # -- delivery -------------------------------------------------------

    def deliver(self, source: Node, msg: Dict[str, Any]) -> None:
        for target_id in self.wires.get(source.id, []):
            target = self.nodes.get(target_id)
            if target is None:
                logger.warning(f"[{source.label}] wired to unknown node '{target_id}'")
                continue
            task = asyncio.get_running_loop().create_task(target.receive(msg))
            self._tasks.add(task)
            task.add_done_callback(self._delivery_done(target))

    def _delivery_done(self, target: Node):
        def done(task: asyncio.Task) -> None:
            self._tasks.discard(task)
            if task.cancelled():
                return
            error = task.exception()
            if error is not None:
                target.error(f"Input handler failed: {error!r}")

        return done
