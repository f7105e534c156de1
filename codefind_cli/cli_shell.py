"""Line-oriented search shell: search, export, stats and config commands."""

from __future__ import annotations

from collections import Counter
from typing import Dict, List, Optional

from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from .context import SearchContext
from .export import grouped_listing
from .models import SearchResult
from .tui import icon_for

SHELL_MAX_RESULTS = 20

COMMANDS: Dict[str, str] = {
    "search": "Fuzzy search the code",
    "export": "Export the last results for an AI assistant",
    "stats": "Show index statistics",
    "config": "Show the search configuration",
    "help": "Show this help",
    "quit": "Quit",
}


class SearchShell:
    """Read-eval loop over one :class:`SearchContext`."""

    def __init__(self, ctx: SearchContext, console: Optional[Console] = None) -> None:
        self.ctx = ctx
        self.console = console or Console()
        self.last_results: List[SearchResult] = []

    def run(self) -> None:
        self.console.print(f"[bold cyan]🔍 codefind shell[/bold cyan]: {len(self.ctx.elements)} elements indexed")
        self.show_help()
        while True:
            line = Prompt.ask("\n🔎", console=self.console, default="", show_default=False)
            if not self.handle(line):
                self.console.print("[cyan]Goodbye![/cyan]")
                return

    def handle(self, line: str) -> bool:
        """Run one command line; returns False when the shell should exit."""
        line = line.strip()
        if not line:
            return True
        command, _, arg = line.partition(" ")
        arg = arg.strip()
        command = command.lower()

        if command in ("search", "s"):
            if not arg:
                self.console.print("[red]❌ Usage: search <query>[/red]")
            else:
                self.search(arg)
        elif command in ("export", "e"):
            self.export(arg)
        elif command == "stats":
            self.stats()
        elif command == "config":
            self.show_config()
        elif command in ("help", "h"):
            self.show_help()
        elif command in ("quit", "q", "exit"):
            return False
        else:
            self.search(line)
        return True

    def search(self, query: str) -> None:
        self.last_results = self.ctx.engine.search(query, SHELL_MAX_RESULTS)
        if not self.last_results:
            self.console.print(f"❌ No results for [bold]{query}[/bold]")
            return

        for i, result in enumerate(self.last_results, 1):
            el = result.element
            self.console.print(
                f"  {i:>2}. {icon_for(el.type)} {el.name}  [dim]score={result.score:.3f}[/dim]  "
                f"[dim]{el.description}[/dim]"
            )
        counts = Counter(r.type for r in self.last_results)
        summary = ", ".join(f"{icon_for(t)} {t}: {n}" for t, n in counts.items())
        self.console.print(f"\n✅ {len(self.last_results)} result(s): {summary}")
        self.console.print("[dim]💡 'export' formats these results for an AI, 'export <n>' limits them[/dim]")

    def export(self, limit_arg: str = "") -> None:
        if not self.last_results:
            self.console.print("❌ Nothing to export. Run a search first.")
            return
        limit = len(self.last_results)
        if limit_arg:
            try:
                limit = int(limit_arg)
            except ValueError:
                self.console.print(f"[red]❌ Not a number: {limit_arg}[/red]")
                return
        selected = self.last_results[:limit]
        self.console.print(grouped_listing(selected), markup=False, highlight=False)
        self.console.print(f"✅ Exported {len(selected)} element(s)")

    def stats(self) -> None:
        stats = self.ctx.engine.stats()
        table = Table(title=f"Index statistics ({len(self.ctx.elements)} elements)")
        table.add_column("Kind")
        table.add_column("Value")
        table.add_column("Count", justify="right")
        for element_type, count in stats["types"].items():
            table.add_row("type", f"{icon_for(element_type)} {element_type}", str(count))
        for ext, count in stats["extensions"].items():
            table.add_row("extension", f".{ext}", str(count))
        self.console.print(table)

    def show_config(self) -> None:
        cfg = self.ctx.engine.describe()
        self.console.print("[bold]⚙️  Fuzzy search configuration[/bold]")
        self.console.print(f"  Threshold:   {cfg['threshold']} (0.0 = exact, 1.0 = accept anything)")
        self.console.print(f"  Distance:    {cfg['distance']}")
        self.console.print(f"  Min length:  {cfg['min_match_char_length']} character(s)")
        self.console.print(f"  Scorer:      {cfg['scorer']}")
        self.console.print("  Fields (by weight):")
        for name, weight in cfg["fields"].items():
            self.console.print(f"    • {name} ({weight})")

    def show_help(self) -> None:
        self.console.print("\n[bold]Commands[/bold]")
        for cmd, desc in COMMANDS.items():
            self.console.print(f"  {cmd:<8} - {desc}")
        self.console.print("[dim]  Any other input is searched directly, e.g. 'UserService'.[/dim]")
