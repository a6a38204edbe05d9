"""Collaborator protocols the engine depends on.

The engine never talks to the compositor directly. Every desktop-facing call
goes through one of these seams, which the Sway adapters implement for real
use and the test fakes implement for deterministic runs.
"""

from typing import Any, Awaitable, Callable, List, Optional, Protocol

from .models import Display, Frame, LiveWindow


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    """Monotonic time source and single scheduling timeline."""

    def now(self) -> float: ...

    def schedule(self, delay: float, callback: Callable[[], Awaitable[None]]) -> TimerHandle: ...


class PauseState(Protocol):
    def is_paused(self) -> bool: ...


class WindowEnumerator(Protocol):
    """Lists on-screen windows. Side-effect free; may raise CollaboratorUnavailable."""

    async def enumerate(self) -> List[LiveWindow]: ...


class WindowController(Protocol):
    """Reads and sets window frames.

    Raises WindowNotFound when the window is gone and CollaboratorUnavailable
    when the compositor cannot be reached.
    """

    async def get_frame(self, process_id: Optional[int], window_number: Optional[int]) -> Frame: ...

    async def set_frame(self, process_id: Optional[int], window_number: Optional[int], frame: Frame) -> None: ...


class DisplayProvider(Protocol):
    async def displays(self) -> List[Display]: ...


class TopologyWatcher(Protocol):
    """Emits typed topology and sleep/wake events to a callback."""

    async def start(self, callback: Callable[[Any], None]) -> None: ...

    async def stop(self) -> None: ...


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[bytes]: ...

    def set(self, key: str, value: bytes) -> None: ...

    def remove(self, key: str) -> None: ...


class Notifier(Protocol):
    async def notify(self, title: str, body: str) -> None: ...
