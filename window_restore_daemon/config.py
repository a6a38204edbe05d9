"""Configuration loading, atomic saving and file watching.

Timing values and tolerances live in one validated model so the engine never
reads global settings directly. The file is optional; a missing or invalid
file gives defaults at startup, while an invalid edit during a reload is
rejected and the running configuration stays in place.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .constants import CONFIG_PATH, DEFAULT_USER_SLOT_COUNT
from .errors import ConfigError

logger = logging.getLogger(__name__)


class TimingConfig(BaseModel):
    """Timings, tolerances and feature switches for the engine."""

    model_config = ConfigDict(extra="forbid")

    # Stabilization and restoration
    stabilization_delay: float = Field(default=6.0, ge=0.1, le=15.0)
    restore_delay: float = Field(default=6.0, ge=0.1, le=15.0)
    poll_interval: float = Field(default=0.5, gt=0)
    fallback_wait: float = Field(default=3.0, gt=0)
    cooldown: float = Field(default=5.0, ge=0)
    retry_delay: float = Field(default=3.0, gt=0)
    max_restore_attempts: int = Field(default=2, ge=0)
    restore_on_launch: bool = False

    # Capture
    display_memory_interval: float = Field(default=5.0, ge=1.0, le=30.0)
    initial_snapshot_delay_minutes: float = Field(default=15.0, ge=0.5, le=60.0)
    enable_periodic_snapshot: bool = False
    periodic_snapshot_interval_minutes: float = Field(default=30.0, ge=5.0, le=360.0)
    protect_existing_snapshot: bool = True
    minimum_window_count: int = Field(default=3, ge=1, le=10)
    user_slot_count: int = Field(default=DEFAULT_USER_SLOT_COUNT, ge=1, le=9)

    # Tolerances (pixels)
    size_tolerance: float = Field(default=20.0, ge=0)
    position_tolerance: float = Field(default=50.0, ge=0)
    manual_position_tolerance: float = Field(default=10.0, ge=0)
    in_place_tolerance: float = Field(default=5.0, ge=0)

    # Privacy, sleep and diagnostics
    disable_persistence: bool = False
    disable_monitoring_during_sleep: bool = True
    enable_notification: bool = False
    verbose_logging: bool = False
    mask_app_names_in_log: bool = True

    @property
    def initial_snapshot_delay(self) -> float:
        return self.initial_snapshot_delay_minutes * 60.0

    @property
    def periodic_snapshot_interval(self) -> float:
        return self.periodic_snapshot_interval_minutes * 60.0


def load_config(path: Path = CONFIG_PATH, strict: bool = False) -> TimingConfig:
    """Load configuration from a JSON file.

    Args:
        path: Path to config.json
        strict: Raise ConfigError instead of falling back to defaults

    Returns:
        Validated configuration (defaults when the file is missing)
    """
    if not path.exists():
        logger.debug(f"No configuration at {path}, using defaults")
        return TimingConfig()

    try:
        with open(path, "r") as f:
            data = json.load(f)
        config = TimingConfig.model_validate(data)
        logger.info(f"Loaded configuration from {path}")
        return config
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        error = ConfigError(str(path), str(e), invalid=isinstance(e, ValidationError))
        if strict:
            raise error from e
        logger.error(f"{error.message}; using defaults")
        return TimingConfig()


def save_config(config: TimingConfig, path: Path = CONFIG_PATH) -> None:
    """Save configuration atomically (temp file + rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".config-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(config.model_dump(mode="json"), f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.rename(temp_path, path)
        logger.debug(f"Saved configuration to {path}")
    except Exception:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise


class DebouncedReloadHandler(FileSystemEventHandler):
    """Watchdog handler that collapses editor save bursts into one reload.

    Watchdog delivers events on its observer thread; the debounce task is
    created on the asyncio loop through ``call_soon_threadsafe``.
    """

    def __init__(self, callback: Callable[[], None], target_filename: str, debounce_ms: int = 250):
        super().__init__()
        self.callback = callback
        self.target_filename = target_filename
        self.debounce_seconds = debounce_ms / 1000
        self._debounce_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def set_event_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def _should_trigger(self, event) -> bool:
        if event.is_directory:
            return False
        event_path = getattr(event, "dest_path", None) or event.src_path
        return Path(event_path).name == self.target_filename

    def _schedule_callback(self) -> None:
        if self._debounce_task and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = self._loop.create_task(self._debounced_callback())

    async def _debounced_callback(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        try:
            self.callback()
        except Exception as e:
            logger.error(f"Configuration reload failed: {e}")

    def _dispatch_from_thread(self, event) -> None:
        if not self._should_trigger(event):
            return
        if self._loop is None:
            logger.warning("No event loop set for config watcher, ignoring change")
            return
        self._loop.call_soon_threadsafe(self._schedule_callback)

    def on_modified(self, event) -> None:
        self._dispatch_from_thread(event)

    def on_created(self, event) -> None:
        self._dispatch_from_thread(event)

    def on_moved(self, event) -> None:
        self._dispatch_from_thread(event)


class ConfigWatcher:
    """Watches config.json and hands reloaded configuration to a callback."""

    def __init__(self, config_file: Path, on_change: Callable[[TimingConfig], None],
                 debounce_ms: int = 250):
        """
        Args:
            config_file: Path to config.json
            on_change: Called with the reloaded TimingConfig
            debounce_ms: Debounce timeout in milliseconds
        """
        self.config_file = config_file
        self.on_change = on_change
        self.observer = Observer()
        self.handler = DebouncedReloadHandler(self._reload, config_file.name, debounce_ms)
        self._started = False

    def _reload(self) -> None:
        try:
            config = load_config(self.config_file, strict=True)
        except ConfigError as e:
            logger.error(f"{e.message}; keeping current configuration")
            return
        self.on_change(config)

    def set_event_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self.handler.set_event_loop(loop)

    def start(self) -> None:
        """Start watching.

        Watches the parent directory since editors often save via
        create-temp-then-rename.
        """
        if self._started:
            logger.warning("Config watcher already started")
            return

        watch_dir = self.config_file.parent
        watch_dir.mkdir(parents=True, exist_ok=True)
        self.observer.schedule(self.handler, str(watch_dir), recursive=False)
        self.observer.start()
        self._started = True
        logger.info(f"Started watching {self.config_file}")

    def stop(self) -> None:
        if not self._started:
            return
        self.observer.stop()
        self.observer.join(timeout=5.0)
        self._started = False
        logger.info(f"Stopped watching {self.config_file}")
