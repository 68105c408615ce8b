# canrosnode

Building blocks for a node that joins a ROS graph on behalf of devices on a
CAN bus. The package queues incoming messages for subscriber callbacks and
describes publishers and subscribers. It runs the node's XML-RPC server and
makes calls to the ROS master.

## Installing

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Modules

### `canrosnode.callbacks`

- `CallResult` is an enum with the members `SUCCESS`, `TRY_AGAIN` and `INVALID`.
- `CallbackInterface` is the abstract base for a queued callback. Subclasses
  implement `call()`, which returns a `CallResult`. `ready()` returns `True`
  by default.
- `CallbackQueueInterface` is the abstract base for a queue that runs
  callbacks. It declares `add_callback(callback, owner_id=0)` and
  `remove_by_id(owner_id)`.

### `canrosnode.subscription_queue`

`SubscriptionQueue(topic, queue_size, allow_concurrent_callbacks=False)` holds
the received messages for one subscription.

- `push(helper, deserializer, has_tracked_object, tracked_object,
  nonconst_need_copy, receipt_time=0.0)` adds a message to the queue. If
  `queue_size` is above zero and the queue is full, the oldest message is
  dropped first, and `push` returns `True` to report that.
- `call()` takes the oldest message and deserialises it. If deserialisation
  gives a message (not `None`), `call()` passes a `MessageEvent` to the
  helper's `call`. It returns `INVALID` if the queue is empty, or if the item
  has a tracked object that no longer exists. It returns `TRY_AGAIN` if
  another call is already running and concurrent callbacks are not allowed.
- `clear()` empties the queue. `full()` reports whether the bound has been
  reached. `len()` gives the number of queued messages.

### `canrosnode.advertise_options` and `canrosnode.subscribe_options`

- `AdvertiseOptions` is a dataclass with the settings for a publisher: topic,
  queue size, md5sum, datatype, message definition, connect and disconnect
  callbacks, callback queue, tracked object, latch and header flag.
- `SubscribeOptions` is a dataclass with the settings for a subscriber: topic,
  queue size (default 1), md5sum, datatype, helper, callback queue, concurrent
  callbacks, tracked object and transport hints.
- Each class has a static `create(...)` constructor that also fills in the
  tracked object and the callback queue.

### `canrosnode.responses`

Replies have the form `[code, message, value]`, and code 1 means success.

- `response_str`, `response_int` and `response_bool` build a reply.
- `validate_xmlrpc_response(response)` returns the payload of a reply. A reply
  with two elements gives an empty list. A malformed or failed reply raises
  `XmlRpcResponseError`.
- `get_pid(params)` is the handler for `getPid`. It replies with the process id.

### `canrosnode.xmlrpc_manager`

`XMLRPCManager(master_uri=None, *, hostname=None, bind_address="",
client_factory=None, clock=time.monotonic, sleep=time.sleep)`:

- `start()` works out the master address from `master_uri`, or from the
  `ROS_MASTER_URI` environment variable if `master_uri` is not given. It binds
  `getPid`, serves XML-RPC on a free port in a background thread, and sets
  `server_port` and `server_uri`. `shutdown()` stops the server. The manager
  can also be used as a context manager.
- `bind(name, cb)` serves `cb(params)` under `name` and returns `False` if the
  name is already taken. `unbind(name)` removes it.
- `call_master(method, request, wait_for_master)` returns the validated
  payload of the reply. If the master cannot be reached, it raises
  `MasterUnreachableError`. With `wait_for_master` set, it first keeps
  retrying until the call succeeds, the timeout given by
  `set_master_retry_timeout` runs out (zero means no limit), or shutdown
  begins.
- `check_master()` returns whether the master answers. `get_all_topics(subgraph)`
  returns a list of `TopicInfo`. `get_all_nodes()` returns the sorted node names.
- `get_master_host()`, `get_master_port()` and `get_master_uri()` report the
  master address.
- `get_xmlrpc_client(host, port, uri)` and `release_xmlrpc_client(client)`
  manage a cache of clients. An idle client left unused for more than 30
  seconds is discarded.
- `add_async_connection` and `remove_async_connection` hand
  `ASyncXMLRPCConnection` objects to the server thread, which also removes a
  connection once its `check()` returns `True`.

## Example

```python
from canrosnode.responses import response_int, validate_xmlrpc_response

reply = response_int(1, "", 42)
assert validate_xmlrpc_response(reply) == 42
```

## What it does not do

The package does not keep a list of the topics a node advertises or
subscribes to. It does not register publishers or subscribers with the master
and does not publish messages. It has no handlers for the `publisherUpdate`,
`requestTopic`, `getBusStats`, `getBusInfo`, `getSubscriptions` or
`getPublications` calls. It opens no TCP or UDP data connections to other
nodes, does not read or write the CAN bus, and has no command-line program.