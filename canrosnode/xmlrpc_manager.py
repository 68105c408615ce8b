"""XML-RPC server for a node, plus cached clients for talking to the master."""

from __future__ import annotations

import abc
import logging
import os
import socket
import threading
import time
import xmlrpc.client
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set
from urllib.parse import urlsplit
from xmlrpc.server import SimpleXMLRPCServer

from canrosnode.responses import XmlRpcResponseError, get_pid, validate_xmlrpc_response

logger = logging.getLogger(__name__)

XMLRPCFunc = Callable[[List[Any]], Any]
ClientFactory = Callable[[str, int, str], Any]

_RETRY_SLEEP = 0.05
_SHUTDOWN_WAIT_STEP = 0.01
_SHUTDOWN_WAIT_COUNT = 10
_SERVER_POLL_TIMEOUT = 0.1

_CALL_FAILURES = (OSError, xmlrpc.client.ProtocolError, xmlrpc.client.Fault)


class MasterUnreachableError(ConnectionError):
    """Raised when the master cannot be contacted."""


class ASyncXMLRPCConnection(abc.ABC):
    """A connection serviced by the XML-RPC server thread."""

    @abc.abstractmethod
    def add_to_dispatch(self, dispatch: Any) -> None:
        """Register with the server's dispatcher."""

    @abc.abstractmethod
    def remove_from_dispatch(self, dispatch: Any) -> None:
        """Unregister from the server's dispatcher."""

    @abc.abstractmethod
    def check(self) -> bool:
        """Return True when the connection is finished and should be removed."""


@dataclass
class CachedXmlRpcClient:
    """An XML-RPC client kept for reuse, with its destination."""

    client: Any
    host: str
    port: int
    uri: str
    in_use: bool = False
    last_use_time: float = 0.0

    ZOMBIE_TIME = 30.0
    """Seconds an idle client may linger before it is discarded."""


@dataclass(frozen=True)
class TopicInfo:
    """A topic known to the master."""

    name: str = ""
    datatype: str = ""


def _default_client_factory(host: str, port: int, uri: str) -> Any:
    return xmlrpc.client.ServerProxy(f"http://{host}:{port}{uri}", allow_none=True)


def _close_client(client: Any) -> None:
    if isinstance(client, xmlrpc.client.ServerProxy):
        client("close")()
        return
    close = getattr(type(client), "close", None)
    if callable(close):
        close(client)


def _split_uri(uri: str) -> tuple:
    text = uri if "://" in uri else f"http://{uri}"
    try:
        parts = urlsplit(text)
        port = parts.port
    except ValueError as exc:
        raise ValueError(f"couldn't parse the master URI [{uri}] into a host:port pair") from exc
    if not parts.hostname or port is None:
        raise ValueError(f"couldn't parse the master URI [{uri}] into a host:port pair")
    return parts.hostname, port


class _Dispatcher:
    def __init__(self, manager: "XMLRPCManager") -> None:
        self._manager = manager

    def _dispatch(self, method: str, params: Sequence[Any]) -> Any:
        with self._manager._functions_lock:
            func = self._manager._functions.get(method)
        if func is None:
            raise Exception(f'method "{method}" is not supported')
        return func(list(params))


@dataclass
class _State:
    clients: List[CachedXmlRpcClient] = field(default_factory=list)
    added: Set[ASyncXMLRPCConnection] = field(default_factory=set)
    removed: Set[ASyncXMLRPCConnection] = field(default_factory=set)
    connections: Set[ASyncXMLRPCConnection] = field(default_factory=set)


class XMLRPCManager:
    """Runs this node's XML-RPC server and makes calls to the master.

    The master URI is taken from ``master_uri`` or, when that is not given,
    from the ``ROS_MASTER_URI`` environment variable.
    """

    def __init__(
        self,
        master_uri: Optional[str] = None,
        *,
        hostname: Optional[str] = None,
        bind_address: str = "",
        client_factory: Optional[ClientFactory] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._master_uri = master_uri or ""
        self._master_host = ""
        self._master_port = 0
        self._hostname = hostname or socket.gethostname()
        self._bind_address = bind_address
        self._client_factory = client_factory or _default_client_factory
        self._clock = clock
        self._sleep = sleep
        self._retry_timeout = 0.0

        self.server_uri = ""
        self.server_port = 0
        self._server: Optional[SimpleXMLRPCServer] = None
        self._server_thread: Optional[threading.Thread] = None
        self._shutting_down = False

        self._state = _State()
        self._clients_lock = threading.Lock()
        self._added_lock = threading.Lock()
        self._removed_lock = threading.Lock()
        self._functions_lock = threading.Lock()
        self._functions: Dict[str, XMLRPCFunc] = {}

    def __enter__(self) -> "XMLRPCManager":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    # ----- master address -------------------------------------------------

    def _resolve_master(self) -> None:
        if not self._master_uri:
            env_uri = os.environ.get("ROS_MASTER_URI")
            if not env_uri:
                raise RuntimeError(
                    "ROS_MASTER_URI is not defined in the environment; "
                    "set it, e.g. export ROS_MASTER_URI=http://localhost:11311"
                )
            self._master_uri = env_uri
        self._master_host, self._master_port = _split_uri(self._master_uri)

    def get_master_host(self) -> str:
        """Host name of the master."""
        return self._master_host

    def get_master_port(self) -> int:
        """Port of the master."""
        return self._master_port

    def get_master_uri(self) -> str:
        """Full URI of the master."""
        return self._master_uri

    def set_master_retry_timeout(self, timeout: float) -> None:
        """Limit how long calls keep retrying the master; zero means forever."""
        if timeout < 0:
            raise ValueError("retry timeout must not be negative")
        self._retry_timeout = float(timeout)

    # ----- server lifecycle ------------------------------------------------

    def start(self) -> None:
        """Resolve the master address and start serving on a free port."""
        self._resolve_master()
        self._shutting_down = False
        self.server_port = 0
        self.bind("getPid", get_pid)

        server = SimpleXMLRPCServer(
            (self._bind_address, 0), logRequests=False, allow_none=True
        )
        server.timeout = _SERVER_POLL_TIMEOUT
        server.register_instance(_Dispatcher(self))
        self._server = server
        self.server_port = server.server_address[1]
        self.server_uri = f"http://{self._hostname}:{self.server_port}/"

        self._server_thread = threading.Thread(
            target=self._server_thread_func, name="xmlrpc-server", daemon=True
        )
        self._server_thread.start()

    def _server_thread_func(self) -> None:
        server = self._server
        assert server is not None
        state = self._state
        while not self._shutting_down:
            with self._added_lock:
                for conn in state.added:
                    conn.add_to_dispatch(server)
                    state.connections.add(conn)
                state.added.clear()

            server.handle_request()

            if self._shutting_down:
                return

            for conn in list(state.connections):
                if conn.check():
                    self.remove_async_connection(conn)

            with self._removed_lock:
                for conn in state.removed:
                    conn.remove_from_dispatch(server)
                    state.connections.discard(conn)
                state.removed.clear()

    def shutdown(self) -> None:
        """Stop the server and discard idle clients and connections."""
        if self._shutting_down:
            return
        self._shutting_down = True

        if self._server_thread is not None and self._server_thread.is_alive():
            self._server_thread.join()
        self._server_thread = None

        if self._server is not None:
            self._server.server_close()

        with self._clients_lock:
            idle = [c for c in self._state.clients if not c.in_use]
            self._state.clients = [c for c in self._state.clients if c.in_use]
        for cached in idle:
            _close_client(cached.client)

        for _ in range(_SHUTDOWN_WAIT_COUNT):
            if not self._state.clients:
                break
            self._sleep(_SHUTDOWN_WAIT_STEP)

        with self._functions_lock:
            self._functions.clear()

        for conn in self._state.connections:
            conn.remove_from_dispatch(self._server)
        self._state.connections.clear()
        with self._added_lock:
            self._state.added.clear()
        with self._removed_lock:
            self._state.removed.clear()

    def is_shutting_down(self) -> bool:
        """Whether shutdown has begun."""
        return self._shutting_down

    # ----- bound functions -------------------------------------------------

    def bind(self, function_name: str, cb: XMLRPCFunc) -> bool:
        """Serve ``cb`` under ``function_name``; False if the name is taken."""
        with self._functions_lock:
            if function_name in self._functions:
                return False
            self._functions[function_name] = cb
            return True

    def unbind(self, function_name: str) -> None:
        """Stop serving ``function_name``."""
        with self._functions_lock:
            self._functions.pop(function_name, None)

    # ----- async connections -----------------------------------------------

    def add_async_connection(self, conn: ASyncXMLRPCConnection) -> None:
        """Hand a connection to the server thread."""
        with self._added_lock:
            self._state.added.add(conn)

    def remove_async_connection(self, conn: ASyncXMLRPCConnection) -> None:
        """Ask the server thread to drop a connection."""
        with self._removed_lock:
            self._state.removed.add(conn)

    # ----- client cache ----------------------------------------------------

    def get_xmlrpc_client(self, host: str, port: int, uri: str) -> Any:
        """Return an idle cached client for the destination, or a new one.

        The caller must hand it back with :meth:`release_xmlrpc_client`.
        """
        now = self._clock()
        with self._clients_lock:
            kept: List[CachedXmlRpcClient] = []
            found: Optional[CachedXmlRpcClient] = None
            reaped: List[CachedXmlRpcClient] = []
            for cached in self._state.clients:
                if found is None and not cached.in_use:
                    if (cached.host, cached.port, cached.uri) == (host, port, uri):
                        found = cached
                    elif cached.last_use_time + CachedXmlRpcClient.ZOMBIE_TIME < now:
                        reaped.append(cached)
                        continue
                kept.append(cached)
            self._state.clients = kept

            if found is None:
                found = CachedXmlRpcClient(
                    client=self._client_factory(host, port, uri), host=host, port=port, uri=uri
                )
                self._state.clients.append(found)
            found.in_use = True
            found.last_use_time = now
        for cached in reaped:
            _close_client(cached.client)
        return found.client

    def release_xmlrpc_client(self, client: Any) -> None:
        """Mark a client idle, or discard it when shutting down."""
        with self._clients_lock:
            cached = next((c for c in self._state.clients if c.client is client), None)
            if cached is None:
                raise ValueError("client was not obtained from this manager")
            if self._shutting_down:
                self._state.clients.remove(cached)
            else:
                cached.in_use = False
                return
        _close_client(cached.client)

    # ----- master calls ----------------------------------------------------

    def validate_xmlrpc_response(self, method: str, response: Any) -> Any:
        """Check a master response to ``method`` and return its payload."""
        try:
            return validate_xmlrpc_response(response)
        except XmlRpcResponseError as exc:
            raise XmlRpcResponseError(f"[{method}] {exc}") from exc

    def call_master(self, method: str, request: Sequence[Any], wait_for_master: bool) -> Any:
        """Call ``method`` on the master and return the response payload.

        With ``wait_for_master`` the call is retried until it gets through,
        the retry timeout runs out, or shutdown begins.
        """
        if not self._master_host:
            self._resolve_master()
        host, port = self._master_host, self._master_port
        start_time = self._clock()
        client = self.get_xmlrpc_client(host, port, "/")
        printed = False
        slept = False
        try:
            while True:
                try:
                    response = getattr(client, method)(*request)
                except _CALL_FAILURES as exc:
                    failure: Optional[BaseException] = exc
                else:
                    failure = None

                if failure is None:
                    payload = self.validate_xmlrpc_response(method, response)
                    if slept:
                        logger.info("Connected to master at [%s:%d]", host, port)
                    return payload

                if self.is_shutting_down():
                    raise MasterUnreachableError(f"[{method}] shutting down") from failure
                if not wait_for_master:
                    raise MasterUnreachableError(
                        f"[{method}] failed to contact master at [{host}:{port}]"
                    ) from failure
                if not printed:
                    logger.error(
                        "[%s] Failed to contact master at [%s:%d].  Retrying...", method, host, port
                    )
                    printed = True
                if self._retry_timeout > 0 and self._clock() - start_time >= self._retry_timeout:
                    logger.error(
                        "[%s] Timed out trying to connect to the master after [%f] seconds",
                        method,
                        self._retry_timeout,
                    )
                    raise MasterUnreachableError(
                        f"[{method}] timed out contacting master at [{host}:{port}]"
                    ) from failure
                self._sleep(_RETRY_SLEEP)
                slept = True
                if self.is_shutting_down():
                    raise MasterUnreachableError(f"[{method}] shutting down") from failure
        finally:
            self.release_xmlrpc_client(client)

    def check_master(self) -> bool:
        """Whether the master answers."""
        try:
            self.call_master("getPid", [""], False)
        except (MasterUnreachableError, XmlRpcResponseError):
            return False
        return True

    def get_all_topics(self, subgraph: str) -> List[TopicInfo]:
        """Topics currently published by any node, as reported by the master."""
        payload = self.call_master("getPublishedTopics", ["", subgraph], True)
        return [TopicInfo(str(entry[0]), str(entry[1])) for entry in payload]

    def get_all_nodes(self) -> List[str]:
        """Sorted names of every node the master knows of."""
        payload = self.call_master("getSystemState", [""], True)
        nodes = {
            str(node)
            for category in payload
            for entry in category
            for node in entry[1]
        }
        return sorted(nodes)