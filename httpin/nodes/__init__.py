"""
Built-in node types. Importing this package registers them.
"""

from .debug import DebugNode
from .http_in import HttpInNode, RouteConfig
from .http_response import HttpResponseNode

__all__ = [
    "DebugNode",
    "HttpInNode",
    "HttpResponseNode",
    "RouteConfig",
]
