"""Sway implementations of the enumerator, controller and display provider.

All three share one i3ipc.aio connection. Window numbers are Sway container
IDs, which stay stable for a window's lifetime.
"""

import logging
from typing import Any, List, Optional

from i3ipc.aio import Connection

from ..errors import CollaboratorUnavailable, WindowNotFound
from ..models import Display, Frame, LiveWindow, WindowLayer

logger = logging.getLogger(__name__)

SCRATCHPAD_WORKSPACE = "__i3_scratch"
BUILTIN_PREFIXES = ("eDP", "LVDS", "DSI")

IPC_ERRORS = (ConnectionError, OSError, EOFError)


def frame_from_rect(rect: Any) -> Frame:
    return Frame(x=rect.x, y=rect.y, width=rect.width, height=rect.height)


def pick_main_output(outputs: List[Any]) -> Optional[Any]:
    """Built-in panel if present, else the output at the layout origin, else the first."""
    for output in outputs:
        if output.name.startswith(BUILTIN_PREFIXES):
            return output
    for output in outputs:
        if output.rect.x == 0 and output.rect.y == 0:
            return output
    return outputs[0] if outputs else None


class SwayDisplayProvider:
    """Active outputs as Displays."""

    def __init__(self, conn: Connection):
        self.conn = conn

    async def active_outputs(self) -> List[Any]:
        try:
            outputs = await self.conn.get_outputs()
        except IPC_ERRORS as e:
            raise CollaboratorUnavailable("display provider", str(e)) from e
        return [o for o in outputs if o.active]

    async def displays(self) -> List[Display]:
        outputs = await self.active_outputs()
        main = pick_main_output(outputs)
        return [
            Display(id=output.name, frame=frame_from_rect(output.rect), is_main=output is main)
            for output in outputs
        ]


class SwayWindowEnumerator:
    """Lists application windows from the Sway tree."""

    def __init__(self, conn: Connection):
        self.conn = conn

    async def enumerate(self) -> List[LiveWindow]:
        try:
            tree = await self.conn.get_tree()
        except IPC_ERRORS as e:
            raise CollaboratorUnavailable("window enumerator", str(e)) from e

        windows = []
        for con in tree.descendants():
            if con.type not in ("con", "floating_con") or con.nodes:
                continue
            owner = con.app_id or con.window_class
            if not owner:
                continue
            windows.append(LiveWindow(
                owner_name=owner,
                owner_process_id=getattr(con, "pid", None),
                window_number=con.id,
                frame=frame_from_rect(con.rect),
                layer=self._layer(con),
                title=con.name or None,
            ))
        return windows

    @staticmethod
    def _layer(con: Any) -> WindowLayer:
        if getattr(con, "fullscreen_mode", 0):
            return WindowLayer.FULLSCREEN
        workspace = con.workspace()
        if workspace is None or workspace.name == SCRATCHPAD_WORKSPACE:
            return WindowLayer.HIDDEN
        if not con.ipc_data.get("visible", True):
            return WindowLayer.HIDDEN
        return WindowLayer.NORMAL


class SwayWindowController:
    """Reads and applies container geometry.

    Floating windows are placed at absolute coordinates and resized. Tiled
    windows cannot be positioned freely, so they are moved to the output that
    contains the saved origin and the tiling layout decides the rest.
    """

    def __init__(self, conn: Connection, displays: SwayDisplayProvider):
        self.conn = conn
        self.displays = displays

    async def _find(self, window_number: Optional[int]) -> Any:
        if window_number is None:
            raise WindowNotFound(window_number)
        try:
            tree = await self.conn.get_tree()
        except IPC_ERRORS as e:
            raise CollaboratorUnavailable("window controller", str(e)) from e
        con = tree.find_by_id(window_number)
        if con is None:
            raise WindowNotFound(window_number)
        return con

    async def get_frame(self, process_id: Optional[int], window_number: Optional[int]) -> Frame:
        con = await self._find(window_number)
        return frame_from_rect(con.rect)

    async def set_frame(self, process_id: Optional[int], window_number: Optional[int], frame: Frame) -> None:
        con = await self._find(window_number)
        selector = f"[con_id={window_number}]"

        if con.type == "floating_con" or getattr(con, "floating", None) in ("user_on", "auto_on"):
            await self._command(
                window_number,
                f"{selector} move absolute position {int(frame.x)} px {int(frame.y)} px",
            )
            await self._command(
                window_number,
                f"{selector} resize set {int(frame.width)} px {int(frame.height)} px",
            )
            return

        target = await self._output_at(frame.x, frame.y)
        if target is None:
            raise CollaboratorUnavailable(
                "window controller",
                f"no active output contains ({frame.x:.0f}, {frame.y:.0f})",
            )
        await self._command(window_number, f"{selector} move container to output {target}")

    async def _output_at(self, x: float, y: float) -> Optional[str]:
        for output in await self.displays.active_outputs():
            if frame_from_rect(output.rect).contains_point(x, y):
                return output.name
        return None

    async def _command(self, window_number: int, command: str) -> None:
        try:
            replies = await self.conn.command(command)
        except IPC_ERRORS as e:
            raise CollaboratorUnavailable("window controller", str(e)) from e
        for reply in replies:
            if reply.success:
                continue
            error = reply.error or "unknown error"
            if "No matching node" in error:
                raise WindowNotFound(window_number)
            raise CollaboratorUnavailable("window controller", error)
