"""Console monitor: a fixed-rate consumer loop around :class:`SerialController`."""

from __future__ import annotations

import argparse
import logging
import time
from typing import List, Optional

from .config import CONFIG_FILE, load_config
from .controller import SerialController
from .errors import NoDeviceFound

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(verbose: bool = False) -> None:
    """Send log records to stderr unless the host already configured logging."""

    if logging.getLogger().handlers:
        return
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="serialbridge-monitor",
        description="Find the serial device and print every line it sends.",
    )
    parser.add_argument("--config", default=CONFIG_FILE, help="JSON config file")
    parser.add_argument(
        "--rate", type=float, default=60.0, help="poll cycles per second (default: 60)"
    )
    parser.add_argument(
        "--send",
        action="append",
        default=[],
        metavar="TEXT",
        help="command to send once connected (repeatable)",
    )
    parser.add_argument(
        "--teardown", metavar="TEXT", help="command sent right before disconnecting"
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


class Monitor:
    """Consumer that logs notifications and replays startup commands."""

    def __init__(self, controller: SerialController, commands: List[str]) -> None:
        self.controller = controller
        self.commands = list(commands)
        self.lines = 0
        controller.on_connected(self.handle_connected)
        controller.on_disconnected(self.handle_disconnected)
        controller.on_message(self.handle_message)

    def handle_connected(self) -> None:
        logger.info("Device connected on %s", self.controller.port)
        for command in self.commands:
            self.controller.send(command)

    def handle_disconnected(self) -> None:
        logger.warning("Device disconnected; waiting for it to come back")

    def handle_message(self, line: str) -> None:
        self.lines += 1
        print(line, flush=True)

    def run(self, rate: float, cycles: Optional[int] = None) -> None:
        period = 1.0 / rate if rate > 0 else 0.0
        done = 0
        while cycles is None or done < cycles:
            started = time.monotonic()
            self.controller.poll()
            done += 1
            remaining = period - (time.monotonic() - started)
            if remaining > 0:
                time.sleep(remaining)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    config = load_config(args.config)
    controller = SerialController(config)
    monitor = Monitor(controller, args.send)
    if args.teardown:
        teardown = args.teardown
        controller.set_teardown_hook(lambda: controller.send(teardown))

    try:
        controller.connect()
    except NoDeviceFound as exc:
        logger.error("%s", exc)
        return 1

    try:
        monitor.run(args.rate)
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    finally:
        controller.disconnect()
    logger.info("Received %d line(s)", monitor.lines)
    return 0
