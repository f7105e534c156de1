"""Pytest configuration and fixtures for codefind tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

import pytest

from codefind_cli.config_manager import Settings
from codefind_cli.context import SearchContext, build_context
from codefind_cli.indexer import SourceIndexer
from codefind_cli.models import CodeElement, ElementContext
from codefind_cli.rerank import Ranker


class FakeRanker(Ranker):
    """Ranking collaborator double that records calls.

    By default it returns the candidate ids in reverse order, so a
    re-ranked result is distinguishable from the fuzzy order.
    """

    def __init__(self, answer: Optional[List[str]] = None, error: Optional[Exception] = None):
        self.answer = answer
        self.error = error
        self.calls: List[Dict[str, Any]] = []
        self.gate = None  # optional asyncio.Event the call waits on

    async def rank(self, query, candidates, limit):
        self.calls.append({"query": query, "candidates": candidates, "limit": limit})
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        if self.answer is not None:
            return list(self.answer)
        return [c["id"] for c in reversed(candidates)][:limit]


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path: Path, monkeypatch):
    """Point the config file at a temp dir and clear LLM env overrides."""
    monkeypatch.setattr("codefind_cli.config_manager.CONFIG_FILE", tmp_path / "home" / "config.toml")
    for var in ("CODEFIND_LLM_PROVIDER", "CODEFIND_LLM_MODEL", "CODEFIND_LLM_API_KEY"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to sample test project."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def make_project(temp_dir: Path):
    """Factory writing a minimal project (pyproject + files) under temp_dir."""

    def _make(name: str, files: Dict[str, str], pyproject: str = "[project]\nname = \"x\"\n") -> Path:
        root = temp_dir / name
        root.mkdir(parents=True, exist_ok=True)
        if pyproject is not None:
            (root / "pyproject.toml").write_text(pyproject)
        for rel, source in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(source)
        return root

    return _make


@pytest.fixture
def sample_elements(sample_project_path: Path) -> List[CodeElement]:
    return SourceIndexer().index_roots([sample_project_path]).elements


@pytest.fixture
def fake_ranker() -> FakeRanker:
    return FakeRanker()


@pytest.fixture
def sample_context(sample_project_path: Path, fake_ranker: FakeRanker) -> SearchContext:
    return build_context([sample_project_path], Settings(), ranker=fake_ranker)


def make_element(
    element_id: str,
    name: str,
    element_type: str = "class",
    file_path: str = "/src/pkg/mod.py",
    line_number: int = 1,
    parent_name: Optional[str] = None,
    parent_type: Optional[str] = None,
    content: str = "",
    searchable_text: Optional[str] = None,
    description: Optional[str] = None,
) -> CodeElement:
    """Build a CodeElement by hand for search and export tests."""
    return CodeElement(
        id=element_id,
        type=element_type,
        name=name,
        file_path=file_path,
        line_number=line_number,
        description=description if description is not None else f"{element_type} {name}",
        searchable_text=searchable_text if searchable_text is not None else f"{element_type} {name} {file_path}",
        context=ElementContext(file_content=content),
        parent_name=parent_name,
        parent_type=parent_type,
    )


@pytest.fixture
def element_factory():
    return make_element
