"""Source parser extracting top-level symbols with Tree-sitter.

Only top-level definitions are extracted, which is all the indexer needs:

- classes and their methods
- interfaces (classes deriving from ``typing.Protocol``) and their methods
- module-level functions

Falls back to Python's built-in ``ast`` module when tree-sitter is unavailable.
"""

from __future__ import annotations

import ast
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Set

from .models import ParsedClass, ParsedFile, ParsedFunction

logger = logging.getLogger(__name__)

SKIP_DIRS: Set[str] = {
    ".venv", "venv", "__pycache__", "node_modules", ".git",
    "site-packages", ".tox", ".pytest_cache", "build", "dist",
    ".mypy_cache", ".ruff_cache", "htmlcov", ".eggs",
    "egg-info", ".codefind",
}

INTERFACE_BASES = {"Protocol"}


def _is_interface_base(base: str) -> bool:
    """True for ``Protocol``, ``typing.Protocol`` and ``Protocol[T]``."""
    return base.split("[", 1)[0].strip().split(".")[-1] in INTERFACE_BASES


def iter_source_files(project_root: Path, exclude: Iterable[str] = ()) -> Iterator[Path]:
    """Yield ``*.py`` files under *project_root* in sorted order."""
    skip = SKIP_DIRS | set(exclude)
    for file_path in sorted(project_root.rglob("*.py")):
        rel_parts = file_path.relative_to(project_root).parts[:-1]
        if any(part in skip or part.endswith(".egg-info") for part in rel_parts):
            continue
        yield file_path


# ===================================================================
# Abstract Parser Interface
# ===================================================================

class Parser(ABC):
    """Abstract base class for all source parsers."""

    def __init__(self, project_root: Path, exclude: Iterable[str] = ()) -> None:
        self.project_root = project_root
        self.exclude = tuple(exclude)

    @abstractmethod
    def parse_file(self, file_path: Path, source: Optional[str] = None) -> ParsedFile:
        """Parse a single file into its top-level definitions."""
        ...

    @abstractmethod
    def supports_language(self, language: str) -> bool:
        """Return True if this parser can handle *language*."""
        ...

    def parse_project(self) -> List[ParsedFile]:
        """Parse every source file under *project_root*.

        A file that fails to parse is logged and skipped.
        """
        parsed: List[ParsedFile] = []
        for file_path in iter_source_files(self.project_root, self.exclude):
            try:
                parsed.append(self.parse_file(file_path))
            except (OSError, UnicodeError, ValueError) as exc:
                logger.warning("Failed to parse %s: %s", file_path, exc)
        return parsed


# ===================================================================
# Tree-sitter Parser (Primary)
# ===================================================================

class TreeSitterParser(Parser):
    """Error-tolerant parser built on the Tree-sitter Python grammar.

    Tree-sitter keeps producing a tree when the source has syntax errors,
    so a broken file still contributes whatever definitions it can. A
    definition whose name node was lost to error recovery is reported
    with ``name=None``.
    """

    def __init__(self, project_root: Path, exclude: Iterable[str] = ()) -> None:
        super().__init__(project_root, exclude)
        self._parser: Any = None
        self._init_parser()

    def _init_parser(self) -> None:
        try:
            import tree_sitter_python
            from tree_sitter import Language, Parser as TSParser
        except ImportError:
            logger.warning(
                "tree-sitter is not installed -- "
                "Tree-sitter parsing unavailable. "
                "Install with: pip install tree-sitter tree-sitter-python"
            )
            return
        try:
            # tree-sitter >=0.22 per-language packages expose a
            # language() function that returns the Language capsule.
            self._parser = TSParser(Language(tree_sitter_python.language()))
            logger.debug("Loaded tree-sitter parser for python")
        except (TypeError, ValueError) as exc:
            logger.warning("Could not load tree-sitter grammar for python: %s", exc)

    def supports_language(self, language: str) -> bool:
        return language == "python" and self._parser is not None

    def parse_file(self, file_path: Path, source: Optional[str] = None) -> ParsedFile:
        if source is None:
            source = file_path.read_text(encoding="utf-8", errors="ignore")
        parsed = ParsedFile(path=file_path, source=source)
        if self._parser is None:
            return parsed

        tree = self._parser.parse(source.encode("utf-8"))
        for child in tree.root_node.children:
            outer, actual = _unwrap_decorated(child)
            if actual is None:
                continue
            if actual.type == "function_definition":
                parsed.functions.append(_ts_function(outer, actual))
            elif actual.type == "class_definition":
                cls = ParsedClass(
                    name=_ts_name(actual),
                    line_number=outer.start_point[0] + 1,
                    methods=self._methods(actual),
                )
                if any(_is_interface_base(b) for b in _ts_bases(actual)):
                    parsed.interfaces.append(cls)
                else:
                    parsed.classes.append(cls)
        return parsed

    @staticmethod
    def _methods(class_node: Any) -> List[ParsedFunction]:
        body = class_node.child_by_field_name("body")
        if body is None:
            return []
        methods: List[ParsedFunction] = []
        for child in body.children:
            outer, actual = _unwrap_decorated(child)
            if actual is not None and actual.type == "function_definition":
                methods.append(_ts_function(outer, actual))
        return methods


def _unwrap_decorated(node: Any) -> tuple[Any, Any]:
    """Return (outer, definition), unwrapping ``@decorated_definition``."""
    if node.type == "decorated_definition":
        return node, node.child_by_field_name("definition")
    return node, node


def _ts_name(def_node: Any) -> Optional[str]:
    name_node = def_node.child_by_field_name("name")
    if name_node is None or not name_node.text:
        return None
    return name_node.text.decode("utf-8")


def _ts_function(outer: Any, func_node: Any) -> ParsedFunction:
    return ParsedFunction(name=_ts_name(func_node), line_number=outer.start_point[0] + 1)


def _ts_bases(class_node: Any) -> List[str]:
    supers = class_node.child_by_field_name("superclasses")
    if supers is None:
        return []
    return [
        ch.text.decode("utf-8")
        for ch in supers.children
        if ch.type in ("identifier", "attribute", "subscript")
    ]


# ===================================================================
# AST Fallback Parser (when tree-sitter is not installed)
# ===================================================================

class ASTFallbackParser(Parser):
    """Pure-Python fallback using the built-in ``ast`` module."""

    def supports_language(self, language: str) -> bool:
        return language == "python"

    def parse_file(self, file_path: Path, source: Optional[str] = None) -> ParsedFile:
        if source is None:
            source = file_path.read_text(encoding="utf-8", errors="ignore")
        parsed = ParsedFile(path=file_path, source=source)

        try:
            tree = ast.parse(source)
        except SyntaxError as exc:
            logger.warning("SyntaxError in %s: %s", file_path, exc)
            return parsed

        for stmt in tree.body:
            if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                parsed.functions.append(ParsedFunction(stmt.name, _ast_start_line(stmt)))
            elif isinstance(stmt, ast.ClassDef):
                cls = ParsedClass(
                    name=stmt.name,
                    line_number=_ast_start_line(stmt),
                    methods=[
                        ParsedFunction(item.name, _ast_start_line(item))
                        for item in stmt.body
                        if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef))
                    ],
                )
                if any(_is_interface_base(ast.unparse(base)) for base in stmt.bases):
                    parsed.interfaces.append(cls)
                else:
                    parsed.classes.append(cls)
        return parsed


def _ast_start_line(node: ast.AST) -> int:
    # Tree-sitter reports the decorator line for decorated definitions; match it.
    decorators = getattr(node, "decorator_list", [])
    if decorators:
        return min(d.lineno for d in decorators)
    return node.lineno


# ===================================================================
# Backend selection
# ===================================================================

class PythonSourceParser(Parser):
    """Selects **TreeSitterParser** when tree-sitter is available,
    otherwise falls back to the built-in AST parser.
    """

    def __init__(self, project_root: Path, exclude: Iterable[str] = ()) -> None:
        super().__init__(project_root, exclude)
        ts = TreeSitterParser(project_root, exclude)
        if ts.supports_language("python"):
            self._delegate: Parser = ts
            logger.info("Using Tree-sitter parser (error-tolerant)")
        else:
            self._delegate = ASTFallbackParser(project_root, exclude)
            logger.info("Using AST fallback parser")

    def parse_file(self, file_path: Path, source: Optional[str] = None) -> ParsedFile:
        return self._delegate.parse_file(file_path, source)

    def supports_language(self, language: str) -> bool:
        return self._delegate.supports_language(language)
