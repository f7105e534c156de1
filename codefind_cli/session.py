"""Interactive search session: input buffer, debounce, mode switching.

The session is UI-agnostic. A front end feeds it :class:`Key` events and
re-renders on ``on_change``; the session decides when searches run and
which completions are allowed to reach the visible state.

Two rules keep the visible results coherent:

- Buffer edits are debounced. Each edit reschedules a single timer and
  only the last scheduled search runs.
- Every dispatched search takes a ticket from an increasing counter. A
  completion is applied only when it holds the newest ticket, so a slow
  AI answer for an old query can never overwrite a newer result.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Set

from .context import MODE_AI, MODE_NORMAL
from .models import SearchResult

logger = logging.getLogger(__name__)

Searcher = Callable[[str, str, int], Awaitable[List[SearchResult]]]
Opener = Callable[[SearchResult], Awaitable[None]]


@dataclass(frozen=True)
class Key:
    """One keyboard event: a printable ``char`` or a named key."""

    char: str = ""
    name: str = ""


KEY_TAB = Key(name="tab")
KEY_BACKSPACE = Key(name="backspace")
KEY_ESCAPE = Key(name="escape")
KEY_CTRL_C = Key(name="ctrl-c")
KEY_ENTER = Key(name="enter")
KEY_UP = Key(name="up")
KEY_DOWN = Key(name="down")


@dataclass
class SessionState:
    input: str = ""
    mode: str = MODE_NORMAL
    results: List[SearchResult] = field(default_factory=list)
    loading: bool = False
    selected: int = 0

    @property
    def current(self) -> Optional[SearchResult]:
        if 0 <= self.selected < len(self.results):
            return self.results[self.selected]
        return None


class Debouncer:
    """A single cancellable timer; scheduling again replaces the pending call."""

    def __init__(self) -> None:
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._fire, callback)

    def _fire(self, callback: Callable[[], None]) -> None:
        self._handle = None
        callback()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class SearchSession:
    """State machine behind the interactive search UI.

    Must be driven from inside a running event loop.
    """

    def __init__(
        self,
        searcher: Searcher,
        limit: int = 10,
        normal_delay: float = 0.5,
        ai_delay: float = 1.0,
        on_change: Optional[Callable[[SessionState], None]] = None,
        opener: Optional[Opener] = None,
    ) -> None:
        self.searcher = searcher
        self.limit = limit
        self.delays = {MODE_NORMAL: normal_delay, MODE_AI: ai_delay}
        self.on_change = on_change
        self.opener = opener
        self.state = SessionState()
        self.closed = asyncio.Event()

        self._debouncer = Debouncer()
        self._ticket = 0
        self._tasks: Set["asyncio.Task[None]"] = set()
        self._prev_input = self.state.input
        self._prev_mode = self.state.mode

    @property
    def latest_ticket(self) -> int:
        return self._ticket

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def handle_key(self, key: Key) -> None:
        if self.closed.is_set():
            return
        if key.name in ("escape", "ctrl-c"):
            self.close()
            return
        if key.name == "tab":
            self.state.mode = MODE_AI if self.state.mode == MODE_NORMAL else MODE_NORMAL
        elif key.name in ("backspace", "delete"):
            self.state.input = self.state.input[:-1]
        elif key.name in ("up", "down"):
            self._move(-1 if key.name == "up" else 1)
            return
        elif key.name == "enter":
            self.open_selected()
            return
        elif len(key.char) == 1 and key.char.isprintable():
            self.state.input += key.char
        else:
            return
        self._reconcile()

    def type_text(self, text: str) -> None:
        for ch in text:
            self.handle_key(Key(char=ch))

    def _reconcile(self) -> None:
        mode_changed = self._prev_mode != self.state.mode
        input_changed = self._prev_input != self.state.input

        if mode_changed and not input_changed:
            self._debouncer.cancel()
            self.dispatch(self.state.input, self.state.mode)
        elif input_changed:
            self._debouncer.schedule(self.delays[self.state.mode], self._fire_debounced)

        self._prev_mode = self.state.mode
        self._prev_input = self.state.input
        self._notify()

    def _fire_debounced(self) -> None:
        self.dispatch(self.state.input, self.state.mode)

    def _move(self, step: int) -> None:
        if not self.state.results:
            return
        self.state.selected = max(0, min(len(self.state.results) - 1, self.state.selected + step))
        self._notify()

    # ------------------------------------------------------------------
    # Search dispatch
    # ------------------------------------------------------------------

    def dispatch(self, query: str, mode: str) -> int:
        """Start a search now and return its ticket."""
        self._ticket += 1
        ticket = self._ticket

        if not query.strip():
            self.state.results = []
            self.state.selected = 0
            self.state.loading = False
            self._notify()
            return ticket

        self.state.loading = True
        self._notify()
        self._spawn(self._run(ticket, query, mode))
        return ticket

    async def _run(self, ticket: int, query: str, mode: str) -> None:
        try:
            results = await self.searcher(query, mode, self.limit)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Search for %r (%s) failed: %s", query, mode, exc)
            results = []

        if ticket != self._ticket:
            logger.debug("Discarding stale results for %r (ticket %d, latest %d)", query, ticket, self._ticket)
            return
        self.state.results = results
        self.state.selected = 0
        self.state.loading = False
        self._notify()

    # ------------------------------------------------------------------
    # Selection / lifecycle
    # ------------------------------------------------------------------

    def open_selected(self) -> None:
        result = self.state.current
        if result is None or self.opener is None:
            return
        self._spawn(self.opener(result))

    def close(self) -> None:
        self._debouncer.cancel()
        for task in list(self._tasks):
            task.cancel()
        self.closed.set()
        self._notify()

    async def drain(self) -> None:
        """Wait until no search or open dispatch is in flight."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.state)
