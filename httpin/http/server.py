"""
Embedded listener for a single http-in node.

Each node owns one uvicorn server bound to its own port, running as a task on
the host's event loop. The socket is bound here rather than by uvicorn so a
busy port surfaces as a BindError instead of uvicorn exiting the process.
"""

import asyncio
import contextlib
import logging
import socket
from enum import Enum
from typing import Callable, Optional

import uvicorn

from httpin.errors import BindError, RuntimeListenerError

logger = logging.getLogger(__name__)


class ServerState(str, Enum):
    UNBOUND = "unbound"
    BINDING = "binding"
    LISTENING = "listening"
    CLOSED = "closed"
    ERROR = "error"


class _HostedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the host runtime."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class EmbeddedServer:
    """
    Owns the listening socket and serving task for one node.

    States: UNBOUND -> BINDING -> LISTENING -> CLOSED, and ERROR when the bind
    fails or the serving task dies. There is no automatic restart.
    """

    def __init__(
        self,
        app,
        port: int,
        host: str = "0.0.0.0",
        *,
        on_error: Optional[Callable[[Exception], None]] = None,
        shutdown_timeout: Optional[float] = None,
        access_log: bool = False,
    ):
        self.app = app
        self.host = host
        self.requested_port = port
        self.on_error = on_error
        self.state = ServerState.UNBOUND

        self._config = uvicorn.Config(
            app,
            host=host,
            port=port,
            lifespan="off",
            log_config=None,
            access_log=access_log,
            timeout_graceful_shutdown=shutdown_timeout,
        )
        self._server: Optional[_HostedServer] = None
        self._socket: Optional[socket.socket] = None
        self._task: Optional[asyncio.Task] = None
        self._bound_port: Optional[int] = None
        # Set once close() begins; pending requests watch it
        self.closing = asyncio.Event()

    @property
    def port(self) -> Optional[int]:
        """The bound port, which differs from the requested one for port 0."""
        return self._bound_port

    @property
    def listening(self) -> bool:
        return self.state is ServerState.LISTENING

    def _bind(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.requested_port))
        except OSError as e:
            sock.close()
            raise BindError(f"Cannot bind {self.host}:{self.requested_port}: {e}", port=self.requested_port) from e
        self._bound_port = sock.getsockname()[1]
        return sock

    async def start(self) -> None:
        """
        Bind the port and start serving.

        Raises:
            BindError: if the port cannot be bound; the server stays in ERROR
        """
        if self.state is not ServerState.UNBOUND:
            raise RuntimeError(f"Server already started (state={self.state.value})")

        self.state = ServerState.BINDING
        try:
            self._socket = self._bind()
        except BindError:
            self.state = ServerState.ERROR
            raise

        self._server = _HostedServer(self._config)
        self._task = asyncio.create_task(self._serve(), name=f"httpin-server-{self.port}")

        while not self._server.started and not self._task.done():
            await asyncio.sleep(0.01)

        if self._server.started and self.state is ServerState.BINDING:
            self.state = ServerState.LISTENING
            logger.debug(f"uvicorn serving on {self.host}:{self.port}")

    async def _serve(self) -> None:
        try:
            await self._server.serve(sockets=[self._socket])
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._fail(RuntimeListenerError(f"Listener on port {self.port} failed: {e}"))
            return

        if self.state is not ServerState.CLOSED and not self._server.should_exit:
            self._fail(RuntimeListenerError(f"Listener on port {self.port} stopped unexpectedly"))

    def _fail(self, error: RuntimeListenerError) -> None:
        self.state = ServerState.ERROR
        logger.error(str(error))
        if self.on_error is not None:
            self.on_error(error)

    async def close(self) -> None:
        """
        Stop accepting connections and wait for in-flight requests to finish.
        """
        self.closing.set()
        if self._server is None or self._task is None:
            if self._socket is not None:
                self._socket.close()
            self.state = ServerState.CLOSED
            return

        self._server.should_exit = True
        try:
            await self._task
        finally:
            if self.state is ServerState.ERROR:
                # uvicorn skips its own shutdown when the serving task failed
                for listener in self._server.servers:
                    listener.close()
            else:
                self.state = ServerState.CLOSED
            self._socket.close()
        logger.info(f"http-in server on port {self.port} shut down")
