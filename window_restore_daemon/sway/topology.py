"""Output event watcher.

Sway sends a bare ``output`` event for every change. The watcher caches the
previous output state and diffs it, turning each event into typed engine
events: a layout change becomes TopologyChanged, every powered output going
dark becomes ScreensDidSleep, and any coming back becomes ScreensDidWake.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from i3ipc import Event
from i3ipc.aio import Connection

from ..models import ScreensDidSleep, ScreensDidWake, TopologyChanged

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputState:
    """Snapshot of a single output's state."""
    name: str
    active: bool
    powered: bool
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    @classmethod
    def from_i3_output(cls, output: Any) -> "OutputState":
        # sway >= 1.9 reports "power", older releases "dpms"
        powered = getattr(output, "power", None)
        if powered is None:
            powered = getattr(output, "dpms", True)
        rect = output.rect
        return cls(
            name=output.name,
            active=bool(output.active),
            powered=bool(powered),
            x=rect.x,
            y=rect.y,
            width=rect.width,
            height=rect.height,
        )


def diff_outputs(old: Dict[str, OutputState], new: Dict[str, OutputState]) -> List[Any]:
    """Events implied by moving from ``old`` to ``new`` output state."""
    events: List[Any] = []

    old_active = {name: s for name, s in old.items() if s.active}
    new_active = {name: s for name, s in new.items() if s.active}
    was_lit = any(s.powered for s in old_active.values())
    is_lit = any(s.powered for s in new_active.values())

    if was_lit and new_active and not is_lit:
        events.append(ScreensDidSleep())
    elif old_active and not was_lit and is_lit:
        events.append(ScreensDidWake())

    def layout(states: Dict[str, OutputState]):
        return {name: (s.x, s.y, s.width, s.height) for name, s in states.items()}

    if layout(old_active) != layout(new_active):
        events.append(TopologyChanged(screen_count=len(new_active)))

    return events


class SwayTopologyWatcher:
    """Subscribes to Sway output events on a dedicated connection."""

    def __init__(self, socket_path: Optional[str] = None):
        self.socket_path = socket_path
        self.conn: Optional[Connection] = None
        self._callback: Optional[Callable[[Any], None]] = None
        self._states: Dict[str, OutputState] = {}
        self._task: Optional[asyncio.Task] = None

    async def _snapshot(self) -> Dict[str, OutputState]:
        outputs = await self.conn.get_outputs()
        return {o.name: OutputState.from_i3_output(o) for o in outputs}

    async def start(self, callback: Callable[[Any], None]) -> None:
        self._callback = callback
        self.conn = await Connection(socket_path=self.socket_path, auto_reconnect=True).connect()
        self._states = await self._snapshot()
        self.conn.on(Event.OUTPUT, self._on_output)
        self._task = asyncio.create_task(self.conn.main())
        logger.info(f"Watching {len(self._states)} outputs for changes")

    async def _on_output(self, conn: Connection, event: Any) -> None:
        try:
            new_states = await self._snapshot()
        except (ConnectionError, OSError) as e:
            logger.error(f"Failed to read outputs after output event: {e}")
            return

        events = diff_outputs(self._states, new_states)
        self._states = new_states
        for engine_event in events:
            logger.debug(f"Output change: {engine_event}")
            self._callback(engine_event)

    async def stop(self) -> None:
        if self.conn is not None:
            self.conn.main_quit()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Stopped watching outputs")
