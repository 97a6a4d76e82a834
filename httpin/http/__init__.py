"""
Request pipeline, request/response objects and the embedded listener.
"""

from .chain import Chain, ChainOptions, assemble_chain
from .content import ContentVerdict, classify
from .facade import RequestFacade, ResponseFacade, wrap_request, wrap_response
from .request import NativeRequest
from .response import NativeResponse
from .server import EmbeddedServer, ServerState

__all__ = [
    "Chain",
    "ChainOptions",
    "ContentVerdict",
    "EmbeddedServer",
    "NativeRequest",
    "NativeResponse",
    "RequestFacade",
    "ResponseFacade",
    "ServerState",
    "assemble_chain",
    "classify",
    "wrap_request",
    "wrap_response",
]
