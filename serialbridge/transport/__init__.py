"""Transport layer: port discovery, handshake and the link worker."""

from .handshake import DeviceLink, HandshakeValidator, open_port
from .ports import PortDescriptor, PortEnumerator, prefix_predicate, system_port_names
from .worker import LinkWorker, WorkerState

__all__ = [
    "DeviceLink",
    "HandshakeValidator",
    "LinkWorker",
    "PortDescriptor",
    "PortEnumerator",
    "WorkerState",
    "open_port",
    "prefix_predicate",
    "system_port_names",
]
