"""Code previews and "open file at line" dispatch for the interactive views."""

from __future__ import annotations

import asyncio
import logging
import shlex
from pathlib import Path
from typing import List, Tuple

from .config import DEFAULT_EDITOR_COMMAND, PREVIEW_RADIUS

logger = logging.getLogger(__name__)


def preview_lines(content: str, line_number: int, radius: int = PREVIEW_RADIUS) -> List[Tuple[int, str]]:
    """``(line number, text)`` pairs centered on *line_number*, clamped to the file."""
    lines = content.splitlines()
    start = max(0, line_number - 1 - radius)
    end = min(len(lines), max(0, line_number + radius))
    return [(start + i + 1, text) for i, text in enumerate(lines[start:end])]


async def read_preview(file_path: str, line_number: int, radius: int = PREVIEW_RADIUS) -> List[Tuple[int, str]]:
    """Read *file_path* off the event loop; an unreadable file gives an empty preview."""
    try:
        content = await asyncio.to_thread(
            Path(file_path).read_text, encoding="utf-8", errors="replace"
        )
    except OSError as exc:
        logger.debug("No preview for %s: %s", file_path, exc)
        return []
    return preview_lines(content, line_number, radius)


def build_editor_command(file_path: str, line_number: int, template: str = DEFAULT_EDITOR_COMMAND) -> List[str]:
    """Expand the ``{path}``/``{line}`` template into an argv list."""
    absolute = str(Path(file_path).resolve())
    return [
        part.format(path=absolute, line=max(line_number, 1))
        for part in shlex.split(template)
    ]


async def open_in_editor(file_path: str, line_number: int, template: str = DEFAULT_EDITOR_COMMAND) -> bool:
    """Launch the editor at the given line. Failures are logged, never raised."""
    argv = build_editor_command(file_path, line_number, template)
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await proc.communicate()
    except OSError as exc:
        logger.error("Could not launch editor (%s): %s", shlex.join(argv), exc)
        return False
    if proc.returncode != 0:
        logger.error(
            "Editor exited with %s (%s): %s",
            proc.returncode, shlex.join(argv), stderr.decode("utf-8", "replace").strip(),
        )
        return False
    return True
