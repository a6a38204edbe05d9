"""Shared fakes and fixtures for window restore daemon tests."""

import dataclasses
from typing import Awaitable, Callable, List, Optional

import pytest

from window_restore_daemon.config import TimingConfig
from window_restore_daemon.diagnostics import AppNameMasker, VerboseLog
from window_restore_daemon.engine import WindowRestoreEngine
from window_restore_daemon.errors import CollaboratorUnavailable, WindowNotFound
from window_restore_daemon.identity import IdentityHasher
from window_restore_daemon.models import Display, Frame, LiveWindow, WindowLayer
from window_restore_daemon.storage import MemoryKeyValueStore


MAIN = Display(id="eDP-1", frame=Frame(x=2560, y=0, width=1920, height=1080), is_main=True)
EXTERNAL = Display(id="DP-1", frame=Frame(x=0, y=0, width=2560, height=1440))

TEST_SALT = bytes(range(32))


def frame(x, y, width=800, height=600) -> Frame:
    return Frame(x=x, y=y, width=width, height=height)


def window(owner, number, x, y, width=800, height=600, title=None, pid=None,
           layer=WindowLayer.NORMAL) -> LiveWindow:
    return LiveWindow(
        owner_name=owner,
        owner_process_id=pid if pid is not None else 1000 + (number or 0),
        window_number=number,
        frame=frame(x, y, width, height),
        layer=layer,
        title=title,
    )


class ManualTimer:
    def __init__(self, due: float, seq: int, callback: Callable[[], Awaitable[None]]):
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """Deterministic clock; ``advance`` runs due callbacks in (due, scheduling) order."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._seq = 0
        self.pending: List[ManualTimer] = []

    def now(self) -> float:
        return self._now

    def schedule(self, delay: float, callback: Callable[[], Awaitable[None]]) -> ManualTimer:
        timer = ManualTimer(self._now + max(0.0, delay), self._seq, callback)
        self._seq += 1
        self.pending.append(timer)
        return timer

    async def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while True:
            self.pending = [t for t in self.pending if not t.cancelled]
            due = [t for t in self.pending if t.due <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self.pending.remove(timer)
            self._now = max(self._now, timer.due)
            await timer.callback()
        self._now = target


class FakeDesktop:
    """Window enumerator, window controller and display provider in one.

    ``set_frame`` moves the live window so later enumerations see the change.
    """

    def __init__(self, displays: Optional[List[Display]] = None,
                 windows: Optional[List[LiveWindow]] = None):
        self.display_list: List[Display] = list(displays or [])
        self.windows: List[LiveWindow] = list(windows or [])
        self.enumerate_error: Optional[Exception] = None
        self.set_frame_error: Optional[Exception] = None
        self.moves: List[tuple] = []

    async def displays(self) -> List[Display]:
        return list(self.display_list)

    async def enumerate(self) -> List[LiveWindow]:
        if self.enumerate_error is not None:
            raise self.enumerate_error
        return list(self.windows)

    def _index(self, window_number: Optional[int]) -> int:
        for index, live in enumerate(self.windows):
            if live.window_number == window_number:
                return index
        raise WindowNotFound(window_number)

    async def get_frame(self, process_id, window_number) -> Frame:
        return self.windows[self._index(window_number)].frame

    async def set_frame(self, process_id, window_number, target: Frame) -> None:
        if self.set_frame_error is not None:
            raise self.set_frame_error
        index = self._index(window_number)
        self.windows[index] = dataclasses.replace(self.windows[index], frame=target)
        self.moves.append((window_number, target))

    def move(self, window_number: int, x: float, y: float) -> None:
        """Simulate the user or the compositor moving a window."""
        index = self._index(window_number)
        current = self.windows[index].frame
        self.windows[index] = dataclasses.replace(
            self.windows[index],
            frame=Frame(x=x, y=y, width=current.width, height=current.height),
        )

    def frame_of(self, window_number: int) -> Frame:
        return self.windows[self._index(window_number)].frame


class RecordingNotifier:
    def __init__(self):
        self.sent: List[tuple] = []

    async def notify(self, title: str, body: str) -> None:
        self.sent.append((title, body))


def controller_unavailable() -> CollaboratorUnavailable:
    return CollaboratorUnavailable("window controller", "accessibility permission revoked")


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def desktop() -> FakeDesktop:
    """Main display plus one external; App1 on the external, App2/App3 on main."""
    return FakeDesktop(
        displays=[MAIN, EXTERNAL],
        windows=[
            window("App1", 11, 100, 100),
            window("App2", 12, 2600, 40, title="notes"),
            window("App3", 13, 3000, 200, width=1200, height=700),
        ],
    )


@pytest.fixture
def kv_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def hasher() -> IdentityHasher:
    return IdentityHasher(TEST_SALT)


@pytest.fixture
def verbose() -> VerboseLog:
    return VerboseLog(enabled=True)


@pytest.fixture
def masker() -> AppNameMasker:
    return AppNameMasker()


@pytest.fixture
def make_engine(clock, desktop, kv_store):
    """Factory building an engine wired to the fakes."""

    def factory(config: Optional[TimingConfig] = None, store=None,
                notifier=None, config_path=None, **overrides) -> WindowRestoreEngine:
        config = config or TimingConfig(**overrides)
        return WindowRestoreEngine(
            config=config,
            enumerator=desktop,
            controller=desktop,
            display_provider=desktop,
            kv_store=store if store is not None else kv_store,
            clock=clock,
            notifier=notifier,
            config_path=config_path,
        )

    return factory
