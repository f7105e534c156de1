"""Tests for the live view helpers and editor dispatch."""

import asyncio
from io import StringIO
from pathlib import Path

from rich.console import Console

from codefind_cli.editor import build_editor_command, open_in_editor, preview_lines, read_preview
from codefind_cli.models import SearchResult
from codefind_cli.session import KEY_BACKSPACE, KEY_CTRL_C, KEY_DOWN, KEY_ENTER, KEY_ESCAPE, KEY_TAB, KEY_UP, Key
from codefind_cli.tui import LiveSearchApp, decode_keys, icon_for, split_pending

from conftest import make_element


def _render(app: LiveSearchApp) -> str:
    out = StringIO()
    Console(file=out, width=200).print(app.render())
    return out.getvalue()


class TestDecodeKeys:
    def test_printable_and_control(self):
        assert decode_keys("ab\t\x7f\r\x03") == [
            Key(char="a"), Key(char="b"), KEY_TAB, KEY_BACKSPACE, KEY_ENTER, KEY_CTRL_C,
        ]

    def test_escape_sequences(self):
        assert decode_keys("\x1b[A\x1b[Bx\x1bOA") == [KEY_UP, KEY_DOWN, Key(char="x"), KEY_UP]
        assert decode_keys("\x1b[3~") == [Key(name="delete")]

    def test_lone_escape(self):
        assert decode_keys("\x1b") == [KEY_ESCAPE]


class TestRender:
    def test_initial_view(self, sample_context):
        app = LiveSearchApp(sample_context, console=Console(file=StringIO()))
        text = _render(app)
        assert f"Index loaded: {len(sample_context.elements)} elements" in text
        assert "🔍 > " in text

    def test_no_results_message(self, sample_context):
        app = LiveSearchApp(sample_context, console=Console(file=StringIO()))
        app.session.state.input = "qqqq"
        assert "No results found" in _render(app)

    def test_selected_result_details(self, sample_context):
        app = LiveSearchApp(sample_context, console=Console(file=StringIO()))
        results = sample_context.engine.search("UserService", 2)
        app.session.state.input = "UserService"
        app.session.state.results = results
        app._preview = [(12, "class UserService:")]

        text = _render(app)

        assert "❯ 1." in text
        assert f"{results[0].file_path}:{results[0].line_number}" in text
        assert results[0].element.description in text
        assert "class UserService:" in text

    def test_loading_label(self, sample_context):
        app = LiveSearchApp(sample_context, console=Console(file=StringIO()))
        app.session.state.loading = True
        app.session.state.mode = "ai"
        assert "AI search in progress" in _render(app)


def test_icons():
    assert icon_for("interface") == "📐"
    assert icon_for("unknown") == "📄"


class TestEditor:
    def test_preview_lines_are_numbered(self):
        content = "\n".join(f"l{i}" for i in range(1, 11))
        assert preview_lines(content, 5) == [(2, "l2"), (3, "l3"), (4, "l4"), (5, "l5"), (6, "l6"), (7, "l7"), (8, "l8")]
        assert preview_lines(content, 1)[0] == (1, "l1")

    def test_read_preview_missing_file(self, temp_dir: Path):
        assert asyncio.run(read_preview(str(temp_dir / "gone.py"), 3)) == []

    def test_read_preview(self, temp_dir: Path):
        path = temp_dir / "mod.py"
        path.write_text("a\nb\nc\n")
        assert asyncio.run(read_preview(str(path), 2, radius=0)) == [(2, "b")]

    def test_build_editor_command(self, temp_dir: Path):
        argv = build_editor_command(str(temp_dir / "x.py"), 0, "code --goto {path}:{line}")
        assert argv == ["code", "--goto", f"{(temp_dir / 'x.py').resolve()}:1"]

    def test_open_in_editor_missing_binary(self, temp_dir: Path):
        ok = asyncio.run(open_in_editor(str(temp_dir / "x.py"), 3, "codefind-no-such-editor {path}"))
        assert ok is False


def test_result_rows_use_score(sample_context):
    app = LiveSearchApp(sample_context, console=Console(file=StringIO()))
    result = SearchResult(sample_context.elements[1], 0.25)
    app.session.state.results = [result, result]
    app.session.state.selected = 1
    text = _render(app)
    assert "(0.250)" in text
    assert "  1." in text


class TestTerminalInput:
    def _app(self, sample_context):
        return LiveSearchApp(sample_context, console=Console(file=StringIO()))

    def test_arrow_split_across_reads(self, sample_context):
        app = self._app(sample_context)
        raw = b"\x1b[B" * 30
        keys = []
        for start in range(0, len(raw), 64):
            keys.extend(app.feed(raw[start:start + 64]))

        assert keys == [KEY_DOWN] * 30
        assert KEY_ESCAPE not in keys

    def test_every_split_point_of_an_escape_sequence(self, sample_context):
        for seq, expected in [(b"\x1b[A", KEY_UP), (b"\x1bOB", KEY_DOWN), (b"\x1b[3~", Key(name="delete"))]:
            for cut in range(1, len(seq)):
                app = self._app(sample_context)
                keys = app.feed(b"x" + seq[:cut]) + app.feed(seq[cut:])
                assert keys == [Key(char="x"), expected]

    def test_multibyte_character_split_across_reads(self, sample_context):
        app = self._app(sample_context)
        raw = ("a" * 63 + "é").encode("utf-8")

        keys = app.feed(raw[:64]) + app.feed(raw[64:])

        assert len(keys) == 64
        assert keys[-1] == Key(char="é")

    def test_lone_escape_is_released_by_flush(self, sample_context):
        app = self._app(sample_context)
        assert app.feed(b"\x1b") == []
        assert app.flush() == [KEY_ESCAPE]
        assert app.feed(b"a") == [Key(char="a")]

    def test_split_pending(self):
        assert split_pending("ab\x1b[") == ("ab", "\x1b[")
        assert split_pending("ab\x1b[A") == ("ab\x1b[A", "")
        assert split_pending("ab\x1bx") == ("ab\x1bx", "")


def test_preview_load_is_tracked_and_drained(sample_context, temp_dir: Path):
    path = temp_dir / "mod.py"
    path.write_text("one\ntwo\nthree\n")
    element = make_element("class-0", "Two", file_path=str(path), line_number=2)

    async def scenario():
        app = LiveSearchApp(sample_context, console=Console(file=StringIO()))
        app.session.state.results = [SearchResult(element)]
        app._on_change(app.session.state)
        assert len(app._preview_tasks) == 1
        await app.drain_previews()
        return app

    app = asyncio.run(scenario())
    assert app._preview == [(1, "one"), (2, "two"), (3, "three")]
    assert not app._preview_tasks
