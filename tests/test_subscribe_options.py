from canrosnode.callbacks import CallbackQueueInterface
from canrosnode.subscribe_options import SubscribeOptions


class _Queue(CallbackQueueInterface):
    def __init__(self):
        self.items = []

    def add_callback(self, callback, owner_id=0):
        self.items.append((callback, owner_id))

    def remove_by_id(self, owner_id):
        self.items = [i for i in self.items if i[1] != owner_id]


def test_defaults():
    ops = SubscribeOptions()
    assert ops.queue_size == 1
    assert ops.allow_concurrent_callbacks is False
    assert ops.callback_queue is None
    assert ops.topic == ""
    assert ops.md5sum == ""
    assert ops.datatype == ""


def test_create_fills_fields():
    queue = _Queue()
    helper = object()
    tracked = object()
    ops = SubscribeOptions.create("/chatter", 10, "abc", "std_msgs/String", helper, tracked, queue)
    assert ops.topic == "/chatter"
    assert ops.queue_size == 10
    assert ops.md5sum == "abc"
    assert ops.datatype == "std_msgs/String"
    assert ops.helper is helper
    assert ops.tracked_object is tracked
    assert ops.callback_queue is queue
    assert ops.allow_concurrent_callbacks is False


def test_create_optional_arguments_default_to_none():
    ops = SubscribeOptions.create("/t", 5, "*", "x/Y", None)
    assert ops.tracked_object is None
    assert ops.callback_queue is None
    assert ops.queue_size == 5


def test_equality_of_equal_options():
    a = SubscribeOptions(topic="/a", queue_size=3, md5sum="m", datatype="d")
    b = SubscribeOptions(topic="/a", queue_size=3, md5sum="m", datatype="d")
    assert a == b
    b.topic = "/b"
    assert not (a == b)