"""Exception types raised across indexing, search and re-ranking."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class CodeFindError(Exception):
    """Base class for every error raised by codefind."""


class IndexLoadError(CodeFindError):
    """A project root could not be loaded for indexing."""

    def __init__(self, message: str, root: Optional[Path] = None) -> None:
        super().__init__(message)
        self.root = root


class AIRerankError(CodeFindError):
    """The AI ranking collaborator failed or returned an unusable answer."""


class ConfigError(CodeFindError):
    """Settings loaded from the config file are invalid."""
