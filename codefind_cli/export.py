"""Render result sets as a grouped Markdown listing or a flat JSON payload."""

from __future__ import annotations

import json
import os
from typing import Any, Dict, Iterable, List, Union

from .config import CONTEXT_RADIUS
from .models import CodeElement, SearchResult

Exportable = Union[CodeElement, SearchResult]


def _element(item: Exportable) -> CodeElement:
    return item.element if isinstance(item, SearchResult) else item


def context_window(content: str, line_number: int, radius: int = CONTEXT_RADIUS) -> List[str]:
    """Lines ``[line_number - radius, line_number + radius]`` of *content*.

    Line numbers are 1-based; the window is clamped to the file, so a
    window near either end is simply shorter.
    """
    lines = content.splitlines()
    start = max(0, line_number - 1 - radius)
    end = min(len(lines), max(0, line_number + radius))
    return lines[start:end]


def serialize(item: Exportable, radius: int = CONTEXT_RADIUS) -> Dict[str, Any]:
    el = _element(item)
    return {
        "id": el.id,
        "name": el.name,
        "type": el.type,
        "parentName": el.parent_name,
        "parentType": el.parent_type,
        "filePath": el.file_path,
        "lineNumber": el.line_number,
        "context": "\n".join(context_window(el.context.file_content, el.line_number, radius)),
    }


def flat_payload(items: Iterable[Exportable]) -> List[Dict[str, Any]]:
    """Machine-readable listing; also the AI ranking collaborator's input."""
    return [serialize(item) for item in items]


def to_json(items: Iterable[Exportable]) -> str:
    return json.dumps(flat_payload(items), indent=2, ensure_ascii=False)


def grouped_listing(items: Iterable[Exportable]) -> str:
    """Markdown listing grouped by file, in first-seen file order."""
    grouped: Dict[str, List[CodeElement]] = {}
    for item in items:
        el = _element(item)
        grouped.setdefault(el.file_path, []).append(el)

    out = ["# Code Structure Analysis", ""]
    for file_path, elements in grouped.items():
        out.append(f"## {os.path.basename(file_path)}")
        out.append(f"*Path: {file_path}*")
        out.append("")
        for el in elements:
            # File-owned elements sit under their file heading already
            prefix = f"{el.parent_name}." if el.parent_name and el.parent_type != "file" else ""
            out.append(f"- **{el.type}**: {prefix}{el.name}")
        out.append("")
    return "\n".join(out)
