"""Building blocks of a Kademlia distributed hash table over UDP."""

__version__ = "0.1.0"

__all__ = [
    "result",
    "value_store",
    "timer",
    "routing_table",
    "lookup_task",
    "message_socket",
    "network",
    "response_router",
    "tracker",
    "find_value_task",
    "store_value_task",
    "notify_peer_task",
]