"""Core data models shared by parsing, indexing, search and export."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

ELEMENT_TYPES = ("file", "class", "interface", "function", "method")


@dataclass
class ParsedFunction:
    name: Optional[str]
    line_number: int


@dataclass
class ParsedClass:
    name: Optional[str]
    line_number: int
    methods: List[ParsedFunction] = field(default_factory=list)


@dataclass
class ParsedFile:
    """Top-level definitions of one source file, as handed back by a parser."""

    path: Path
    source: str
    classes: List[ParsedClass] = field(default_factory=list)
    interfaces: List[ParsedClass] = field(default_factory=list)
    functions: List[ParsedFunction] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.classes or self.interfaces or self.functions)


@dataclass
class ElementContext:
    # One instance per file, referenced by every element of that file.
    file_content: str


@dataclass
class CodeElement:
    id: str
    type: str
    name: str
    file_path: str
    line_number: int
    description: str
    searchable_text: str
    context: ElementContext
    parent_name: Optional[str] = None
    parent_type: Optional[str] = None


@dataclass(frozen=True)
class SearchResult:
    """A matched element and its distance (lower is better, 0 is exact)."""

    element: CodeElement
    score: float = 0.0

    @property
    def id(self) -> str:
        return self.element.id

    @property
    def name(self) -> str:
        return self.element.name

    @property
    def type(self) -> str:
        return self.element.type

    @property
    def file_path(self) -> str:
        return self.element.file_path

    @property
    def line_number(self) -> int:
        return self.element.line_number
