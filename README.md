# kadnet

Components for building a Kademlia distributed hash table on top of UDP and
`asyncio`. The package has no runtime dependencies beyond the standard library.

## What is inside

- `kadnet.result` – `Result`, a value-or-error holder (`Result.ok`,
  `Result.failure`, truth test, `unwrap`), the `ErrorCode` enumeration and the
  `KademliaError` exception raised by `unwrap` when the error is an `ErrorCode`.
- `kadnet.value_store` – `ValueStore`, an in-memory map from byte keys to byte
  data (`save`, `load`, `in`, `len`).
- `kadnet.timer` – `Timer`, which runs many callbacks on a single event-loop
  timer, soonest first (`expires_from_now`, `pending_count`).
- `kadnet.routing_table` – `RoutingTable`, made of k-buckets keyed by the
  number of leading bits an id has in common with the node's own id
  (`push`, `remove`, `find`, `len`, `str`).
- `kadnet.lookup_task` – `Peer`, `distance` (XOR of two ids) and `LookupTask`,
  which keeps the candidates of an iterative lookup ordered by distance to the
  key.
- `kadnet.message_socket` – `IpEndpoint` and `MessageSocket`, a non-blocking
  UDP datagram socket driven by the running `asyncio` loop
  (`resolve_endpoint`, `ipv4`, `ipv6`, `async_receive`, `async_send`,
  `local_endpoint`, `close`).
- `kadnet.network` – `Network`, one IPv4 and one IPv6 socket behind a single
  interface: it keeps receiving on both and sends through the socket matching
  the target address.
- `kadnet.response_router` – `ResponseRouter`, which hands each response to
  the callback registered for its id and reports a `TimeoutError` when none
  arrives within the ttl.
- `kadnet.tracker` – message types (`MessageType`, `Header`,
  `FindPeerRequest`, `FindValueRequest`, `StoreValueRequest`,
  `FindPeerResponse`, `FindValueResponse`) and `Tracker`, which sends requests
  and matches responses to them.
- `kadnet.find_value_task`, `kadnet.store_value_task`,
  `kadnet.notify_peer_task` – `FindValueTask`, `StoreValueTask`,
  `NotifyPeerTask` and their `start_*` functions: the iterative lookups behind
  loading a value, storing a value and announcing a node to its neighbours.

## Installation

```
pip install .
```

## Example: routing and lookup

```python
from kadnet.routing_table import RoutingTable
from kadnet.lookup_task import LookupTask

table = RoutingTable(my_id=0x80, k_bucket_size=20, bit_size=8)
table.push(0x40, ("10.0.0.2", 27980))
table.push(0xC0, ("10.0.0.3", 27980))
print(len(table))            # 2

task = LookupTask(key=0x41, peers=table.find(0x41))
for peer in task.select_new_closest_candidates(3):
    print(peer)              # closest to the key first
```

## Example: timers

```python
import asyncio
from kadnet.timer import Timer

async def main():
    timer = Timer()
    timer.expires_from_now(0.1, lambda: print("fired"))
    print(timer.pending_count())   # 1
    await asyncio.sleep(0.2)

asyncio.run(main())
```

## Example: loading a value

A `Tracker` is built from a `ResponseRouter`, a serializer, a `Network` and
optionally a function producing request ids:

```python
from kadnet.find_value_task import start_find_value_task

def on_load(result):
    if result:
        print("found", result.unwrap())
    else:
        print("lookup failed:", result.error)

start_find_value_task(key, tracker, routing_table, on_load, 3, 0.2)
```

The handler is called once with a `Result`: holding the data if a peer
returns it, or failing with `ErrorCode.VALUE_NOT_FOUND` once every candidate
has been tried.

`start_store_value_task` calls its handler once with `None` when store
requests were sent, or with `ErrorCode.MISSING_PEERS` when no peer answered
the lookup. `start_notify_peer_task` calls `on_finish` each time its last
outstanding request completes.

## What the package does not do

- It has no wire format. `Tracker` takes a serializer object with
  `serialize(message, response_id)` and `deserialize(body, message_class)`
  methods; you supply it, and you turn received datagrams into a `Header` and
  a body before passing them to `Tracker.handle_new_response`.
- It has no node or session object tying the parts together, no handling of
  incoming requests (answering pings, find peer, find value or store
  requests), and no command-line program.
- Stored values live only in memory in `ValueStore`; nothing is written to
  disk.

## Running the tests

```
pip install ".[test]"
pytest
```