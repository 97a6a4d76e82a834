"""
Node Registry

Maps node type names to node classes. Built-in nodes register themselves
with the ``register`` decorator when ``httpin.nodes`` is imported.
"""

import importlib
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

if TYPE_CHECKING:
    from httpin.runtime.flow import FlowRuntime
    from httpin.runtime.node import Node

logger = logging.getLogger(__name__)


class NodeRegistry:
    """
    Central registry for node types.

    Usage:
        @NodeRegistry.register
        class MyNode(Node):
            type = "my-node"
    """

    _types: Dict[str, Type["Node"]] = {}
    _initialized: bool = False

    BUILTIN_MODULES = ("httpin.nodes",)

    @classmethod
    def initialize(cls):
        """Import the built-in node modules so they register themselves."""
        if cls._initialized:
            return
        cls._initialized = True
        for module in cls.BUILTIN_MODULES:
            importlib.import_module(module)
        logger.debug(f"NodeRegistry initialized with {len(cls._types)} node types")

    @classmethod
    def register(cls, node_cls):
        """Class decorator registering ``node_cls`` under ``node_cls.type``."""
        existing = cls._types.get(node_cls.type)
        if existing is not None and existing is not node_cls:
            logger.warning(f"Node type '{node_cls.type}' re-registered by {node_cls.__name__}")
        cls._types[node_cls.type] = node_cls
        return node_cls

    @classmethod
    def get_node(cls, node_type: str) -> Optional[Type["Node"]]:
        cls._ensure_initialized()
        return cls._types.get(node_type)

    @classmethod
    def create(cls, node_type: str, config: Dict[str, Any], runtime: "FlowRuntime") -> "Node":
        """
        Instantiate a node of ``node_type``.

        Raises:
            ValueError: if the type is not registered
        """
        node_cls = cls.get_node(node_type)
        if node_cls is None:
            raise ValueError(f"Unknown node type '{node_type}'. Available: {sorted(cls._types)}")
        return node_cls(config, runtime)

    @classmethod
    def list_nodes(cls) -> List[Dict[str, Any]]:
        """Manifests of all registered node types."""
        cls._ensure_initialized()
        nodes = []
        for node_type, node_cls in sorted(cls._types.items()):
            if node_cls.manifest is not None:
                nodes.append(node_cls.manifest.model_dump())
            else:
                nodes.append({"id": node_type, "name": node_type})
        return nodes

    @classmethod
    def _ensure_initialized(cls):
        if not cls._initialized:
            cls.initialize()
