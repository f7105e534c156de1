"""Tests for the source parsers."""

from pathlib import Path

import pytest

from codefind_cli.parser import (
    ASTFallbackParser,
    PythonSourceParser,
    TreeSitterParser,
    iter_source_files,
)

SAMPLE = '''"""Sample module."""
from typing import Protocol


def hello(name: str) -> str:
    return f"Hello, {name}!"


class Calculator:
    def add(self, a, b):
        return a + b

    @staticmethod
    def zero():
        return 0

    class Nested:
        def ignored(self):
            pass


class Shape(Protocol):
    def area(self) -> float:
        ...


async def fetch():
    def inner():
        pass
    return inner
'''


def _parsers(root: Path):
    parsers = [ASTFallbackParser(root)]
    ts = TreeSitterParser(root)
    if ts.supports_language("python"):
        parsers.append(ts)
    return parsers


def test_parser_initialization(temp_dir: Path):
    """Test parser can be initialized with a project root."""
    parser = PythonSourceParser(temp_dir)
    assert parser.project_root == temp_dir
    assert parser.supports_language("python")


@pytest.mark.parametrize("backend", [0, 1])
def test_parse_top_level_definitions(temp_dir: Path, backend: int):
    parsers = _parsers(temp_dir)
    if backend >= len(parsers):
        pytest.skip("tree-sitter not installed")
    path = temp_dir / "sample.py"
    path.write_text(SAMPLE)

    parsed = parsers[backend].parse_file(path)

    assert parsed.source == SAMPLE
    assert [f.name for f in parsed.functions] == ["hello", "fetch"]
    assert [c.name for c in parsed.classes] == ["Calculator"]
    assert [i.name for i in parsed.interfaces] == ["Shape"]

    calc = parsed.classes[0]
    assert [m.name for m in calc.methods] == ["add", "zero"]
    assert calc.line_number == 9
    # decorated method starts at its decorator
    assert calc.methods[1].line_number == 13
    assert [m.name for m in parsed.interfaces[0].methods] == ["area"]


def test_ast_parser_syntax_error_yields_empty_file(temp_dir: Path):
    path = temp_dir / "broken.py"
    path.write_text("def broken(:\n    pass\n")

    parsed = ASTFallbackParser(temp_dir).parse_file(path)

    assert parsed.is_empty()
    assert parsed.source.startswith("def broken")


def test_interface_detection_variants(temp_dir: Path):
    path = temp_dir / "protocols.py"
    path.write_text(
        "import typing\n"
        "from typing import Protocol, TypeVar\n"
        "T = TypeVar('T')\n"
        "class A(typing.Protocol):\n    pass\n"
        "class B(Protocol[T]):\n    pass\n"
        "class C(Base):\n    pass\n"
    )
    for parser in _parsers(temp_dir):
        parsed = parser.parse_file(path)
        assert [i.name for i in parsed.interfaces] == ["A", "B"]
        assert [c.name for c in parsed.classes] == ["C"]


def test_parse_skips_venv_and_excluded(temp_dir: Path):
    """Parser skips .venv, __pycache__ and configured exclude dirs."""
    venv_dir = temp_dir / ".venv" / "lib"
    venv_dir.mkdir(parents=True)
    (venv_dir / "venv_mod.py").write_text("def venv_func(): pass")
    gen_dir = temp_dir / "generated"
    gen_dir.mkdir()
    (gen_dir / "gen.py").write_text("def gen_func(): pass")
    (temp_dir / "normal.py").write_text("def normal_func(): pass")

    files = list(iter_source_files(temp_dir, exclude=["generated"]))

    assert files == [temp_dir / "normal.py"]


def test_parse_project_sorted(sample_project_path: Path):
    parsed = PythonSourceParser(sample_project_path, exclude=["generated"]).parse_project()
    names = [p.path.name for p in parsed]
    assert names == ["auth.py", "settings.py", "user_service.py"]
