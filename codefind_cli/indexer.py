"""Source indexer: turns parsed project files into searchable code elements."""

from __future__ import annotations

import itertools
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import toml

from .config import PROJECT_MARKERS
from .errors import IndexLoadError
from .models import CodeElement, ElementContext, ParsedClass, ParsedFile
from .parser import Parser, PythonSourceParser

logger = logging.getLogger(__name__)

ParserFactory = Callable[[Path, Sequence[str]], Parser]


@dataclass
class ProjectConfig:
    root: Path
    marker: Path
    exclude: List[str] = field(default_factory=list)


@dataclass
class IndexReport:
    elements: List[CodeElement] = field(default_factory=list)
    loaded_roots: List[Path] = field(default_factory=list)
    failed_roots: Dict[Path, str] = field(default_factory=dict)


def load_project_config(root: Path) -> ProjectConfig:
    """Resolve *root* to a loadable project.

    Raises:
        IndexLoadError: If the root is not a directory, has no project
            marker file, or its ``pyproject.toml`` cannot be read.
    """
    root = root.expanduser().resolve()
    if not root.is_dir():
        raise IndexLoadError(f"Project root '{root}' is not a directory", root=root)

    for marker_name in PROJECT_MARKERS:
        marker = root / marker_name
        if marker.is_file():
            break
    else:
        raise IndexLoadError(
            f"No project configuration in '{root}' (expected one of: {', '.join(PROJECT_MARKERS)})",
            root=root,
        )

    exclude: List[str] = []
    if marker.name == "pyproject.toml":
        try:
            with open(marker, "r", encoding="utf-8") as f:
                data = toml.load(f)
        except (toml.TomlDecodeError, OSError, UnicodeError) as exc:
            raise IndexLoadError(f"Cannot load '{marker}': {exc}", root=root) from exc
        tool_cfg = data.get("tool", {}).get("codefind", {})
        exclude = [str(d) for d in tool_cfg.get("exclude", [])]

    return ProjectConfig(root=root, marker=marker, exclude=exclude)


class SourceIndexer:
    """Builds the ordered element list for one indexing run.

    The counter behind synthetic names and ids is shared across every file
    and every root of the run, so ids never collide.
    """

    def __init__(
        self,
        parser_factory: Optional[ParserFactory] = None,
        fail_fast: bool = False,
    ) -> None:
        self.parser_factory: ParserFactory = parser_factory or PythonSourceParser
        self.fail_fast = fail_fast
        self._counter = itertools.count()

    def _next(self) -> int:
        return next(self._counter)

    def index_roots(self, roots: Iterable[Path]) -> IndexReport:
        """Index every root in order and concatenate the results.

        With ``fail_fast`` the first failing root raises; otherwise it is
        logged and skipped. Raises :class:`IndexLoadError` when no root
        could be loaded at all.
        """
        report = IndexReport()
        roots = list(roots)
        for root in roots:
            try:
                elements = self.index_root(Path(root))
            except IndexLoadError as exc:
                if self.fail_fast:
                    raise
                logger.error("Skipping root %s: %s", root, exc)
                report.failed_roots[Path(root)] = str(exc)
                continue
            report.elements.extend(elements)
            report.loaded_roots.append(Path(root))

        if not report.loaded_roots:
            raise IndexLoadError(
                "No project root could be indexed"
                + (f" ({len(roots)} tried)" if roots else " (none given)")
            )
        return report

    def index_root(self, root: Path) -> List[CodeElement]:
        project = load_project_config(root)
        parser = self.parser_factory(project.root, project.exclude)
        elements: List[CodeElement] = []
        for parsed in parser.parse_project():
            elements.extend(self.index_file(parsed))
        logger.info("Indexed %d elements from %s", len(elements), project.root)
        return elements

    def index_file(self, parsed: ParsedFile) -> List[CodeElement]:
        """Normalize one parsed file; files with no definitions yield nothing."""
        if parsed.is_empty():
            return []

        file_path = str(parsed.path)
        base = os.path.basename(file_path)
        context = ElementContext(file_content=parsed.source)
        elements: List[CodeElement] = [
            CodeElement(
                id=f"file-{self._next()}",
                type="file",
                name=base,
                file_path=file_path,
                line_number=0,
                description=f"File {base} in {os.path.dirname(file_path)}",
                searchable_text=f"file {base} {file_path}",
                context=context,
            )
        ]

        for cls in parsed.classes:
            elements.extend(self._owner_elements(cls, "class", file_path, context))
        for intf in parsed.interfaces:
            elements.extend(self._owner_elements(intf, "interface", file_path, context))

        for fn in parsed.functions:
            name = fn.name or f"AnonymousFunction{self._next()}"
            elements.append(CodeElement(
                id=f"function-{self._next()}",
                type="function",
                name=name,
                parent_name=base,
                parent_type="file",
                file_path=file_path,
                line_number=fn.line_number,
                description=f"Function {name} in {base}",
                searchable_text=f"function {name} {base} {file_path}",
                context=context,
            ))
        return elements

    def _owner_elements(
        self,
        owner: ParsedClass,
        kind: str,
        file_path: str,
        context: ElementContext,
    ) -> List[CodeElement]:
        base = os.path.basename(file_path)
        owner_name = owner.name or f"Anonymous{kind.capitalize()}{self._next()}"
        elements = [CodeElement(
            id=f"{kind}-{self._next()}",
            type=kind,
            name=owner_name,
            parent_name=base,
            parent_type="file",
            file_path=file_path,
            line_number=owner.line_number,
            description=f"{kind.capitalize()} {owner_name} in {base}",
            searchable_text=f"{kind} {owner_name} {base} {file_path}",
            context=context,
        )]

        id_prefix = "interface-method" if kind == "interface" else "method"
        for method in owner.methods:
            method_name = method.name or f"AnonymousFunction{self._next()}"
            elements.append(CodeElement(
                id=f"{id_prefix}-{self._next()}",
                type="method",
                name=method_name,
                parent_name=owner_name,
                parent_type=kind,
                file_path=file_path,
                line_number=method.line_number,
                description=f"Method {method_name} in {kind} {owner_name}",
                searchable_text=f"method {method_name} {owner_name} {kind} {base} {file_path}",
                context=context,
            ))
        return elements
