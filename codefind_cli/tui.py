"""Live interactive search view on top of :class:`SearchSession`.

Keys: type to search, Tab toggles normal/AI mode, Up/Down select,
Enter opens the selection in the editor, Esc or Ctrl-C quits.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import sys
import termios
import tty
from typing import List, Optional, Set, Tuple

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from .context import MODE_AI, MODE_NORMAL, ContextSearcher, SearchContext
from .editor import open_in_editor, read_preview
from .models import SearchResult
from .session import (
    KEY_BACKSPACE,
    KEY_CTRL_C,
    KEY_DOWN,
    KEY_ENTER,
    KEY_ESCAPE,
    KEY_TAB,
    KEY_UP,
    Key,
    SearchSession,
    SessionState,
)

logger = logging.getLogger(__name__)

ICONS = {
    "file": "📄",
    "class": "🧱",
    "interface": "📐",
    "function": "⚙️",
    "method": "🔹",
}

_CONTROL_KEYS = {
    "\t": KEY_TAB,
    "\x7f": KEY_BACKSPACE,
    "\x08": KEY_BACKSPACE,
    "\r": KEY_ENTER,
    "\n": KEY_ENTER,
    "\x03": KEY_CTRL_C,
}

_ESCAPE_SEQUENCES = {
    "\x1b[A": KEY_UP,
    "\x1b[B": KEY_DOWN,
    "\x1bOA": KEY_UP,
    "\x1bOB": KEY_DOWN,
    "\x1b[3~": Key(name="delete"),
}


# Proper prefixes of the sequences above, e.g. "\x1b[" of "\x1b[A"
_ESCAPE_PREFIXES = {
    seq[:i] for seq in _ESCAPE_SEQUENCES for i in range(1, len(seq))
}

# How long a lone trailing ESC waits for the rest of a sequence
ESCAPE_TIMEOUT = 0.05


def icon_for(element_type: str) -> str:
    return ICONS.get(element_type, "📄")


def split_pending(data: str) -> Tuple[str, str]:
    """Split *data* into decodable text and a trailing unfinished escape sequence."""
    start = data.rfind("\x1b")
    if start >= 0 and data[start:] in _ESCAPE_PREFIXES:
        return data[:start], data[start:]
    return data, ""


def decode_keys(data: str) -> List[Key]:
    """Split one terminal read into key events."""
    keys: List[Key] = []
    i = 0
    while i < len(data):
        if data[i] == "\x1b":
            for seq, key in _ESCAPE_SEQUENCES.items():
                if data.startswith(seq, i):
                    keys.append(key)
                    i += len(seq)
                    break
            else:
                keys.append(KEY_ESCAPE)
                i += 1
            continue
        ch = data[i]
        keys.append(_CONTROL_KEYS.get(ch, Key(char=ch)))
        i += 1
    return keys


class LiveSearchApp:
    """Wires a :class:`SearchSession` to the terminal."""

    def __init__(self, ctx: SearchContext, console: Optional[Console] = None) -> None:
        self.ctx = ctx
        self.console = console or Console()
        settings = ctx.settings
        self.session = SearchSession(
            ContextSearcher(ctx),
            limit=settings.max_results,
            normal_delay=settings.normal_debounce_ms / 1000,
            ai_delay=settings.ai_debounce_ms / 1000,
            on_change=self._on_change,
            opener=self._open,
        )
        self._live: Optional[Live] = None
        self._preview: List[Tuple[int, str]] = []
        self._preview_key: Optional[Tuple[str, int]] = None
        self._preview_tasks: Set["asyncio.Task[None]"] = set()
        # Terminal reads can split UTF-8 characters and escape sequences
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self._flush_handle: Optional[asyncio.TimerHandle] = None

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self) -> RenderableType:
        state = self.session.state
        parts: List[RenderableType] = [self._header(state), Text("")]

        if state.loading:
            label = "AI search in progress..." if state.mode == MODE_AI else "Searching..."
            parts.append(Text.assemble("🔄 ", (label, "yellow")))
        elif not state.results and state.input.strip():
            parts.append(Text("❌ No results found"))
        else:
            for i, result in enumerate(state.results):
                parts.extend(self._result_lines(i, result, i == state.selected))

        parts.append(Text(""))
        parts.append(Text(f"🔍 > {state.input}"))
        return Group(*parts)

    def _header(self, state: SessionState) -> Text:
        normal_style = "bold blue" if state.mode == MODE_NORMAL else "grey50"
        ai_style = "bold blue" if state.mode == MODE_AI else "grey50"
        return Text.assemble(
            f"📊 Index loaded: {len(self.ctx.elements)} elements   ",
            ("🔍 Normal" if state.mode == MODE_NORMAL else "Normal", normal_style),
            " | ",
            ("🤖 AI" if state.mode == MODE_AI else "AI", ai_style),
            ("   (Tab: mode, ↑/↓: select, Enter: open, Esc: quit)", "dim"),
        )

    def _result_lines(self, i: int, result: SearchResult, selected: bool) -> List[RenderableType]:
        el = result.element
        label = f"{i + 1}. {icon_for(el.type)} {el.name} ({result.score:.3f})"
        if not selected:
            return [Text(f"  {label}")]

        lines: List[RenderableType] = [
            Text(f"❯ {label}", style="bold cyan"),
            Text(f"    📁 {el.file_path}:{el.line_number}"),
        ]
        if el.description:
            lines.append(Text(f"    📝 {el.description}"))
        if self._preview:
            code = Text()
            for number, line in self._preview:
                style = "green" if number == el.line_number else "grey50"
                code.append(f"{number:>3}: ", style="grey50")
                code.append(f"{line}\n", style=style)
            code.rstrip()
            lines.append(Panel(code, border_style="blue"))
        return lines

    def _redraw(self) -> None:
        if self._live is not None:
            self._live.update(self.render(), refresh=True)

    # ------------------------------------------------------------------
    # Session callbacks
    # ------------------------------------------------------------------

    def _on_change(self, state: SessionState) -> None:
        current = state.current
        key = (current.file_path, current.line_number) if current else None
        if key != self._preview_key:
            self._preview_key = key
            self._preview = []
            if key is not None:
                task = asyncio.ensure_future(self._load_preview(key))
                self._preview_tasks.add(task)
                task.add_done_callback(self._preview_tasks.discard)
        self._redraw()

    async def _load_preview(self, key: Tuple[str, int]) -> None:
        lines = await read_preview(*key)
        if key == self._preview_key:
            self._preview = lines
            self._redraw()

    async def _open(self, result: SearchResult) -> None:
        await open_in_editor(result.file_path, result.line_number, self.ctx.settings.editor_command)

    # ------------------------------------------------------------------
    # Terminal loop
    # ------------------------------------------------------------------

    def feed(self, data: bytes) -> List[Key]:
        """Decode one raw read, holding back a split character or escape sequence."""
        text = self._pending + self._decoder.decode(data)
        text, self._pending = split_pending(text)
        return decode_keys(text)

    def flush(self) -> List[Key]:
        """Give up waiting: whatever is held back is decoded as typed."""
        text = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        return decode_keys(text)

    def _on_stdin(self, fd: int) -> None:
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        data = os.read(fd, 64)
        if not data:
            self.session.close()
            return
        for key in self.feed(data):
            self.session.handle_key(key)
        if self._pending:
            loop = asyncio.get_running_loop()
            self._flush_handle = loop.call_later(ESCAPE_TIMEOUT, self._flush_pending)

    def _flush_pending(self) -> None:
        self._flush_handle = None
        for key in self.flush():
            self.session.handle_key(key)

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        fd = sys.stdin.fileno()
        saved = termios.tcgetattr(fd)
        tty.setcbreak(fd)
        attrs = termios.tcgetattr(fd)
        # Deliver Ctrl-C as a key instead of SIGINT
        attrs[3] &= ~termios.ISIG
        termios.tcsetattr(fd, termios.TCSADRAIN, attrs)
        try:
            with Live(self.render(), console=self.console, auto_refresh=False) as live:
                self._live = live
                loop.add_reader(fd, self._on_stdin, fd)
                try:
                    await self.session.closed.wait()
                finally:
                    loop.remove_reader(fd)
                    if self._flush_handle is not None:
                        self._flush_handle.cancel()
                        self._flush_handle = None
                    self._live = None
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, saved)
        await self.session.drain()
        await self.drain_previews()

    async def drain_previews(self) -> None:
        """Wait for outstanding preview reads."""
        while self._preview_tasks:
            await asyncio.gather(*list(self._preview_tasks), return_exceptions=True)
