"""Consumer-facing façade over the link worker and its mailbox."""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, List, Optional

from .config import BridgeConfig
from .errors import NoDeviceFound
from .mailbox import EntryKind, Mailbox, MailboxEntry
from .transport import HandshakeValidator, LinkWorker, PortEnumerator

ConnectionCallback = Callable[[], None]
MessageCallback = Callable[[str], None]
TeardownHook = Callable[[], None]

_LOGGER = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class SerialController:
    """Bridge a line-oriented serial device into a non-blocking poll loop.

    All notifications are delivered synchronously from :meth:`poll`, on the
    thread that calls it. The background worker only ever talks to the
    mailbox, so callbacks never run on the worker thread.

    Typical use from a per-frame update function::

        controller = SerialController(config)
        controller.on_message(handle_line)
        controller.connect()
        ...
        controller.poll()   # once per frame
        ...
        controller.disconnect()
    """

    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        *,
        enumerator: Optional[PortEnumerator] = None,
        validator: Optional[HandshakeValidator] = None,
    ) -> None:
        self.config = config or BridgeConfig()
        self._enumerator = enumerator or PortEnumerator(self.config)
        self._validator = validator or HandshakeValidator(self.config)
        self._state = ConnectionState.DISCONNECTED
        self._worker: Optional[LinkWorker] = None
        self._thread: Optional[threading.Thread] = None
        self._mailbox: Optional[Mailbox] = None
        self._teardown_hook: Optional[TeardownHook] = None
        self._connected_callbacks: List[ConnectionCallback] = []
        self._disconnected_callbacks: List[ConnectionCallback] = []
        self._message_callbacks: List[MessageCallback] = []

    # -- State -------------------------------------------------------------------
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def port(self) -> Optional[str]:
        worker = self._worker
        return worker.port if worker else None

    # -- Subscriptions -------------------------------------------------------------
    def on_connected(self, callback: ConnectionCallback) -> None:
        if callback:
            self._connected_callbacks.append(callback)

    def on_disconnected(self, callback: ConnectionCallback) -> None:
        if callback:
            self._disconnected_callbacks.append(callback)

    def on_message(self, callback: MessageCallback) -> None:
        if callback:
            self._message_callbacks.append(callback)

    def unsubscribe(self, callback: Callable) -> None:
        for registry in (
            self._connected_callbacks,
            self._disconnected_callbacks,
            self._message_callbacks,
        ):
            try:
                registry.remove(callback)
            except ValueError:
                pass

    def set_teardown_hook(self, hook: Optional[TeardownHook]) -> None:
        """Run *hook* right before the port closes on :meth:`disconnect`.

        The hook may call :meth:`send`; those commands are flushed to the device
        before the port closes. Like any :meth:`send`, they are ignored unless
        the Connected notification has already been polled, so a hook that
        runs while the controller is still connecting cannot reach the device.
        """

        self._teardown_hook = hook

    # -- Lifecycle -----------------------------------------------------------------
    def connect(self) -> None:
        """Find the device and start streaming from it.

        Blocks while candidates are probed. Does nothing when a session is
        already active.

        Raises:
            NoDeviceFound: No candidate answered the handshake.
        """

        if self._worker is not None:
            return

        _LOGGER.info("Looking for %s...", self.config.device_name)
        try:
            link = self._validator.find_device(self._enumerator.list_candidates())
        except NoDeviceFound:
            _LOGGER.warning("Failed to connect %s!", self.config.device_name)
            raise

        mailbox = Mailbox(self.config.max_unread_messages)
        worker = LinkWorker(
            mailbox,
            self._validator,
            self._enumerator,
            reconnection_delay=self.config.reconnection_delay,
            link=link,
        )
        thread = threading.Thread(
            target=worker.run_forever,
            name=f"LinkWorker[{link.descriptor.path}]",
            daemon=True,
        )
        self._mailbox = mailbox
        self._worker = worker
        self._thread = thread
        self._state = ConnectionState.CONNECTING
        thread.start()
        _LOGGER.info(
            "Connected to %s:%s:%s",
            link.descriptor.path,
            link.descriptor.baudrate,
            self.config.device_name,
        )

    def disconnect(self) -> None:
        """Run the teardown hook, stop the worker and wait for it to exit.

        The hook runs whenever a worker session exists, including while still
        connecting or while reconnecting, but its commands only go out if the
        controller is connected at that moment.
        """

        worker = self._worker
        if worker is None:
            return

        hook = self._teardown_hook
        if hook is not None:
            try:
                hook()
            except Exception:
                _LOGGER.warning("Teardown hook failed", exc_info=True)

        worker.request_stop()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

        if self._mailbox is not None:
            self._mailbox.clear()
        self._mailbox = None
        self._worker = None
        self._thread = None
        self._state = ConnectionState.DISCONNECTED
        _LOGGER.info("Serial disconnected:%s", self.config.device_name)

    close = disconnect

    def __enter__(self) -> "SerialController":
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.disconnect()

    # -- Traffic -------------------------------------------------------------------
    def send(self, message: str) -> None:
        """Queue *message* for the device; ignored unless connected."""

        if not self.is_connected or self._mailbox is None:
            return
        self._mailbox.push_outbound(message)

    def poll(self) -> Optional[MailboxEntry]:
        """Handle at most one pending entry and return it.

        Call once per consumer cycle. Payloads that arrive while not connected
        are returned but not dispatched.
        """

        mailbox = self._mailbox
        if mailbox is None:
            return None
        entry = mailbox.pop()
        if entry is None:
            return None

        if entry.kind is EntryKind.CONNECTED:
            self._state = ConnectionState.CONNECTED
            self._notify(self._connected_callbacks)
        elif entry.kind is EntryKind.DISCONNECTED:
            self._state = ConnectionState.DISCONNECTED
            self._notify(self._disconnected_callbacks)
        elif self.is_connected:
            self._notify(self._message_callbacks, entry.payload)
        return entry

    def _notify(self, callbacks: List[Callable], *args) -> None:
        for callback in list(callbacks):
            try:
                callback(*args)
            except Exception:
                _LOGGER.debug("Serial callback failed", exc_info=True)
