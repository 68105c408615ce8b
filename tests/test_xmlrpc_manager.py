import os
import threading
import time
import xmlrpc.client

import pytest

from canrosnode.responses import XmlRpcResponseError
from canrosnode.xmlrpc_manager import (
    ASyncXMLRPCConnection,
    CachedXmlRpcClient,
    MasterUnreachableError,
    TopicInfo,
    XMLRPCManager,
)


class FakeClient:
    def __init__(self, host, port, uri, replies):
        self.host = host
        self.port = port
        self.uri = uri
        self.replies = replies
        self.calls = []
        self.closed = False

    def close(self):
        self.closed = True

    def __getattr__(self, name):
        if name.startswith("__"):
            raise AttributeError(name)

        def method(*args):
            self.calls.append((name, args))
            queue = self.replies.get(name, [])
            reply = queue.pop(0) if len(queue) > 1 else (queue[0] if queue else None)
            if isinstance(reply, BaseException):
                raise reply
            return reply

        return method


def make_manager(replies=None, **kwargs):
    replies = {} if replies is None else replies
    created = []

    def factory(host, port, uri):
        client = FakeClient(host, port, uri, replies)
        created.append(client)
        return client

    manager = XMLRPCManager("http://masterhost:11311/", client_factory=factory, **kwargs)
    return manager, created


def test_validate_returns_payload():
    manager, _ = make_manager()
    assert manager.validate_xmlrpc_response("m", [1, "ok", [1, 2]]) == [1, 2]
    assert manager.validate_xmlrpc_response("m", [1, "ok"]) == []


def test_validate_rejects_failure():
    manager, _ = make_manager()
    with pytest.raises(XmlRpcResponseError):
        manager.validate_xmlrpc_response("m", [0, "bad", 0])


def test_client_reused_after_release():
    manager, created = make_manager()
    first = manager.get_xmlrpc_client("h", 1, "/")
    second = manager.get_xmlrpc_client("h", 1, "/")
    assert first is not second
    manager.release_xmlrpc_client(first)
    third = manager.get_xmlrpc_client("h", 1, "/")
    assert third is first
    assert len(created) == 2


def test_zombie_clients_reaped():
    now = [100.0]
    manager, created = make_manager(clock=lambda: now[0])
    old = manager.get_xmlrpc_client("a", 1, "/")
    manager.release_xmlrpc_client(old)
    now[0] += CachedXmlRpcClient.ZOMBIE_TIME + 1
    manager.get_xmlrpc_client("b", 2, "/")
    assert old.closed is True
    fresh = manager.get_xmlrpc_client("a", 1, "/")
    assert fresh is not old


def test_release_unknown_client_raises():
    manager, _ = make_manager()
    with pytest.raises(ValueError):
        manager.release_xmlrpc_client(object())


def test_bind_and_unbind():
    manager, _ = make_manager()
    handler = lambda params: [1, "", 0]
    assert manager.bind("f", handler) is True
    assert manager.bind("f", handler) is False
    manager.unbind("f")
    assert manager.bind("f", handler) is True


def test_call_master_success():
    manager, created = make_manager({"registerPublisher": [[1, "ok", ["http://x:1/"]]]})
    payload = manager.call_master("registerPublisher", ["/node", "/t"], True)
    assert payload == ["http://x:1/"]
    client = created[0]
    assert (client.host, client.port, client.uri) == ("masterhost", 11311, "/")
    assert client.calls == [("registerPublisher", ("/node", "/t"))]
    assert manager.get_xmlrpc_client("masterhost", 11311, "/") is client


def test_call_master_without_wait_fails_fast():
    manager, _ = make_manager({"getPid": [ConnectionRefusedError()]})
    with pytest.raises(MasterUnreachableError):
        manager.call_master("getPid", [""], False)
    assert manager.check_master() is False


def test_call_master_retries_until_reachable():
    sleeps = []
    manager, created = make_manager(
        {"getPid": [ConnectionRefusedError(), [1, "", 42]]}, sleep=sleeps.append
    )
    assert manager.call_master("getPid", [""], True) == 42
    assert len(created[0].calls) == 2
    assert len(sleeps) == 1


def test_call_master_times_out():
    now = [0.0]

    def fake_sleep(seconds):
        now[0] += seconds

    manager, _ = make_manager(
        {"getPid": [ConnectionRefusedError()]}, clock=lambda: now[0], sleep=fake_sleep
    )
    manager.set_master_retry_timeout(0.2)
    with pytest.raises(MasterUnreachableError):
        manager.call_master("getPid", [""], True)
    assert now[0] >= 0.2


def test_invalid_master_response_raises():
    manager, _ = make_manager({"getPid": [[0, "error", 0]]})
    with pytest.raises(XmlRpcResponseError):
        manager.call_master("getPid", [""], True)


def test_negative_retry_timeout_rejected():
    manager, _ = make_manager()
    with pytest.raises(ValueError):
        manager.set_master_retry_timeout(-1)


def test_check_master_ok():
    manager, _ = make_manager({"getPid": [[1, "", 7]]})
    assert manager.check_master() is True


def test_get_all_topics():
    manager, _ = make_manager(
        {"getPublishedTopics": [[1, "", [["/a", "std_msgs/String"], ["/b", "std_msgs/Int32"]]]]}
    )
    topics = manager.get_all_topics("")
    assert topics == [TopicInfo("/a", "std_msgs/String"), TopicInfo("/b", "std_msgs/Int32")]


def test_get_all_nodes_deduplicated_and_sorted():
    state = [
        [["/t1", ["/n2", "/n1"]]],
        [["/t1", ["/n1"]], ["/t2", ["/n3"]]],
        [],
    ]
    manager, _ = make_manager({"getSystemState": [[1, "", state]]})
    assert manager.get_all_nodes() == ["/n1", "/n2", "/n3"]


def test_start_without_master_uri_raises(monkeypatch):
    monkeypatch.delenv("ROS_MASTER_URI", raising=False)
    manager = XMLRPCManager()
    with pytest.raises(RuntimeError):
        manager.start()


def test_start_with_bad_uri_raises():
    manager = XMLRPCManager("http://nohostport")
    with pytest.raises(ValueError):
        manager.start()


@pytest.fixture
def running_manager():
    manager = XMLRPCManager(
        "http://localhost:11311/", hostname="127.0.0.1", bind_address="127.0.0.1"
    )
    manager.start()
    yield manager
    manager.shutdown()


def test_server_serves_get_pid(running_manager):
    assert running_manager.get_master_host() == "localhost"
    assert running_manager.get_master_port() == 11311
    assert running_manager.get_master_uri() == "http://localhost:11311/"
    assert running_manager.server_uri == f"http://127.0.0.1:{running_manager.server_port}/"
    with xmlrpc.client.ServerProxy(running_manager.server_uri) as proxy:
        assert proxy.getPid("caller") == [1, "", os.getpid()]


def test_server_bound_function_and_unknown(running_manager):
    running_manager.bind("echo", lambda params: [1, "echo", params])
    with xmlrpc.client.ServerProxy(running_manager.server_uri) as proxy:
        assert proxy.echo("a", 3) == [1, "echo", ["a", 3]]
        with pytest.raises(xmlrpc.client.Fault):
            proxy.missing()


class RecordingConnection(ASyncXMLRPCConnection):
    def __init__(self):
        self.events = []
        self.done = threading.Event()

    def add_to_dispatch(self, dispatch):
        self.events.append("add")

    def remove_from_dispatch(self, dispatch):
        self.events.append("remove")
        self.done.set()

    def check(self):
        return True


def test_async_connection_added_then_removed(running_manager):
    conn = RecordingConnection()
    running_manager.add_async_connection(conn)
    assert conn.done.wait(5.0) is True
    assert conn.events == ["add", "remove"]


def test_shutdown_closes_idle_clients():
    manager, created = make_manager()
    client = manager.get_xmlrpc_client("h", 1, "/")
    manager.release_xmlrpc_client(client)
    manager.shutdown()
    assert manager.is_shutting_down() is True
    assert client.closed is True


def test_release_during_shutdown_discards_client():
    manager, _ = make_manager(sleep=lambda s: None)
    client = manager.get_xmlrpc_client("h", 1, "/")
    manager.shutdown()
    manager.release_xmlrpc_client(client)
    assert client.closed is True
    with pytest.raises(ValueError):
        manager.release_xmlrpc_client(client)


def test_context_manager_starts_and_stops():
    with XMLRPCManager(
        "http://localhost:11311/", hostname="127.0.0.1", bind_address="127.0.0.1"
    ) as manager:
        assert manager.is_shutting_down() is False
        assert manager.server_port > 0
    assert manager.is_shutting_down() is True