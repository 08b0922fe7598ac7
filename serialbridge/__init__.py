"""serialbridge: non-blocking bridge between a serial line device and a poll loop."""

from __future__ import annotations

from .config import BridgeConfig, load_config, save_config
from .controller import ConnectionState, SerialController
from .errors import (
    BridgeError,
    HandshakeMismatch,
    HandshakeTimeout,
    LinkIOFailure,
    NoDeviceFound,
    ProbeError,
)
from .mailbox import EntryKind, Mailbox, MailboxEntry

__all__ = [
    "BridgeConfig",
    "BridgeError",
    "ConnectionState",
    "EntryKind",
    "HandshakeMismatch",
    "HandshakeTimeout",
    "LinkIOFailure",
    "Mailbox",
    "MailboxEntry",
    "NoDeviceFound",
    "ProbeError",
    "SerialController",
    "load_config",
    "main",
    "save_config",
]


def main() -> None:
    """Run the console monitor."""

    import sys

    from .monitor import main as _monitor_main

    sys.exit(_monitor_main())
