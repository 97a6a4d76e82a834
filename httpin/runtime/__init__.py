"""
Minimal flow runtime: node base class, registry, message delivery.
"""

from .flow import FlowRuntime
from .i18n import MessageCatalog
from .node import Node
from .registry import NodeRegistry

__all__ = [
    "FlowRuntime",
    "MessageCatalog",
    "Node",
    "NodeRegistry",
]
