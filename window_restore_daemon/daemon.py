"""Main daemon entry point with systemd integration.

Wires the Sway adapters, the file-backed store and the IPC server around a
WindowRestoreEngine and runs until SIGINT/SIGTERM.
"""

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional

try:
    from systemd import journal, daemon as sd_daemon
    SYSTEMD_AVAILABLE = True
except ImportError:
    SYSTEMD_AVAILABLE = False

from i3ipc.aio import Connection

from .clock import AsyncioClock
from .config import ConfigWatcher, TimingConfig, load_config
from .constants import CONFIG_PATH, SOCKET_PATH, STATE_DIR
from .engine import WindowRestoreEngine
from .ipc_server import IPCServer
from .models import ConfigChanged
from .notifier import DesktopNotifier
from .storage import FileKeyValueStore
from .sway import (
    SwayDisplayProvider,
    SwayTopologyWatcher,
    SwayWindowController,
    SwayWindowEnumerator,
)

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    """Setup logging to systemd journal or stderr."""
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    if SYSTEMD_AVAILABLE:
        handler = journal.JournalHandler(SYSLOG_IDENTIFIER="window-restore-daemon")
    else:
        handler = logging.StreamHandler(sys.stderr)

    formatter = logging.Formatter(
        "%(levelname)s [%(name)s] %(message)s"
    )
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logger.info(f"Logging configured: level={log_level}")


def _sd_notify(state: str) -> None:
    if SYSTEMD_AVAILABLE:
        sd_daemon.notify(state)
        logger.debug(f"Sent {state} to systemd")


class WindowRestoreDaemon:
    """Owns the Sway connection, engine, IPC server and config watcher."""

    def __init__(self, config_path: Path = CONFIG_PATH, socket_path: Path = SOCKET_PATH,
                 state_dir: Path = STATE_DIR):
        self.config_path = config_path
        self.socket_path = socket_path
        self.state_dir = state_dir
        self.conn: Optional[Connection] = None
        self.engine: Optional[WindowRestoreEngine] = None
        self.ipc_server: Optional[IPCServer] = None
        self.config_watcher: Optional[ConfigWatcher] = None
        self.shutdown_event = asyncio.Event()

    async def start(self) -> None:
        config: TimingConfig = load_config(self.config_path)

        self.conn = await Connection(auto_reconnect=True).connect()
        logger.info("Connected to Sway IPC")

        displays = SwayDisplayProvider(self.conn)
        self.engine = WindowRestoreEngine(
            config=config,
            enumerator=SwayWindowEnumerator(self.conn),
            controller=SwayWindowController(self.conn, displays),
            display_provider=displays,
            kv_store=FileKeyValueStore(self.state_dir),
            clock=AsyncioClock(),
            notifier=DesktopNotifier(),
            topology_watcher=SwayTopologyWatcher(),
            config_path=self.config_path,
        )
        await self.engine.start()

        self.ipc_server = IPCServer(self.engine, self.socket_path)
        await self.ipc_server.start()

        self.config_watcher = ConfigWatcher(self.config_path, self._on_config_change)
        self.config_watcher.set_event_loop(asyncio.get_running_loop())
        self.config_watcher.start()

    def _on_config_change(self, config: TimingConfig) -> None:
        logger.info(f"Configuration reloaded from {self.config_path}")
        self.engine.post(ConfigChanged(config))

    def setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()

        def signal_handler():
            logger.info("Received shutdown signal")
            self.shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

    async def stop(self) -> None:
        _sd_notify("STOPPING=1")
        if self.config_watcher is not None:
            self.config_watcher.stop()
        if self.ipc_server is not None:
            await self.ipc_server.stop()
        if self.engine is not None:
            await self.engine.stop()
        if self.conn is not None:
            self.conn.main_quit()
        logger.info("Daemon stopped")


async def main_async() -> int:
    """Async main function.

    Returns:
        Exit code (0 = success, non-zero = error)
    """
    daemon = WindowRestoreDaemon()
    daemon.setup_signal_handlers()

    try:
        await daemon.start()
        _sd_notify("READY=1")
        logger.info("Window restore daemon ready")
        await daemon.shutdown_event.wait()
        return 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        await daemon.stop()


def main() -> int:
    """Entry point for the window-restore-daemon console script."""
    setup_logging()
    try:
        return asyncio.run(main_async())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
