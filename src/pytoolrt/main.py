from __future__ import annotations

from pathlib import Path
import json
import sys
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from datetime import datetime

from .app_context import AppContext
from .runner import run_tool, run_directive
from .events.store import EventStore


app = typer.Typer(add_completion=False, help="pytoolrt: sandboxed tool execution runtime for coding agents.")
console = Console()


def _resolve_cwd(cwd: Path | None) -> Path:
    cwd = Path(str(cwd or Path.cwd())).expanduser()
    if not cwd.is_absolute():
        cwd = (Path.cwd() / cwd).resolve()
    else:
        cwd = cwd.resolve()
    if not cwd.is_dir():
        raise typer.BadParameter(f"--cwd must be an existing directory: {cwd}")
    return cwd


def _read_stdin_or(value: str | None) -> str:
    if value is not None:
        return value
    if sys.stdin is None or sys.stdin.isatty():
        raise typer.BadParameter("no payload given and stdin is a terminal")
    return sys.stdin.read()


def _open(cwd: Path | None, config: Path | None, yes: bool, trace: bool, interactive: bool = False) -> AppContext:
    try:
        return AppContext.from_env(
            _resolve_cwd(cwd),
            config_path=config,
            auto_approve=yes,
            interactive=interactive,
            trace=trace,
        )
    except (FileNotFoundError, ValueError) as e:
        raise typer.BadParameter(str(e)) from e


@app.command()
def call(
    tool: str = typer.Argument(..., help="Tool name, e.g. READ or GREP_FILES (case-insensitive)."),
    payload: str = typer.Argument(None, help="Raw payload. Read from stdin when omitted."),
    cwd: Path = typer.Option(None, "--cwd", help="Working directory tools run in. Defaults to current directory."),
    config: Path = typer.Option(None, "--config", help="Explicit config file (JSON or YAML)."),
    yes: bool = typer.Option(False, "--yes", help="Auto-approve tools whose permission is 'ask'."),
    trace: bool = typer.Option(False, "--trace", help="Print each tool result in a panel on stderr."),
):
    """Run one tool call and print its result text."""
    text = _read_stdin_or(payload)
    with _open(cwd, config, yes, trace) as ctx:
        typer.echo(run_tool(ctx, tool, text), nl=False)


@app.command()
def directive(
    text: str = typer.Argument(None, help="Assistant text holding a directive. Read from stdin when omitted."),
    cwd: Path = typer.Option(None, "--cwd", help="Working directory tools run in. Defaults to current directory."),
    config: Path = typer.Option(None, "--config", help="Explicit config file (JSON or YAML)."),
    yes: bool = typer.Option(False, "--yes", help="Auto-approve tools whose permission is 'ask'."),
    trace: bool = typer.Option(False, "--trace", help="Print each tool result in a panel on stderr."),
):
    """Extract a tool directive from assistant text and run it."""
    body = _read_stdin_or(text)
    with _open(cwd, config, yes, trace) as ctx:
        out = run_directive(ctx, body)
    if out is None:
        console.print("[yellow]No tool directive found.[/yellow]")
        raise typer.Exit(code=1)
    typer.echo(out, nl=False)


@app.command()
def tools(
    cwd: Path = typer.Option(None, "--cwd", help="Working directory tools run in. Defaults to current directory."),
    config: Path = typer.Option(None, "--config", help="Explicit config file (JSON or YAML)."),
):
    """List registered tools with their permission keys and decisions."""
    with _open(cwd, config, False, False) as ctx:
        table = Table(title="Tools")
        table.add_column("name", style="bold cyan")
        table.add_column("permission")
        table.add_column("decision")
        table.add_column("description")
        for spec in ctx.tools.list_specs():
            decision = ctx.permissions.config.decide(spec.permission_key, spec.name)
            table.add_row(spec.name, spec.permission_key, decision, spec.description)
        console.print(table)


@app.command()
def repl(
    cwd: Path = typer.Option(None, "--cwd", help="Working directory tools run in. Defaults to current directory."),
    config: Path = typer.Option(None, "--config", help="Explicit config file (JSON or YAML)."),
    yes: bool = typer.Option(False, "--yes", help="Auto-approve tools whose permission is 'ask'."),
    trace: bool = typer.Option(False, "--trace", help="Print each tool result in a panel on stderr."),
):
    """Read directives interactively; command sessions stay alive between turns."""
    with _open(cwd, config, yes, trace, interactive=True) as ctx:
        console.print(Panel.fit(
            f"cwd: {ctx.cwd}\nrun: {ctx.run_id}\nconfig: {ctx.config.loaded_from or '(defaults)'}\n"
            "Enter a directive (<TOOL>payload</TOOL>, ```tool fence, or READ: cmd). /plan shows the plan, /exit quits.",
            title="[bold magenta]pytoolrt[/bold magenta]",
            border_style="bright_blue",
        ))
        while True:
            try:
                line = console.input("[bold]> [/bold]")
            except (EOFError, KeyboardInterrupt):
                console.print()
                break
            if line.strip() in {"/exit", "/quit"}:
                break
            if line.strip() == "/plan":
                console.print(Panel.fit(Text(ctx.plan.render()), title=f"plan (revision {ctx.plan.revision})"))
                continue
            if not line.strip():
                continue
            out = run_directive(ctx, line)
            if out is None:
                console.print("[yellow]No tool directive found.[/yellow]")
                continue
            typer.echo(out, nl=False)


@app.command()
def events(
    run: str = typer.Option(..., "--run", help="Run id to inspect events."),
    tail: int = typer.Option(200, "--tail", help="Show last N events."),
):
    """Show recent structured events (tool calls, session spawns) recorded for a run."""
    es = EventStore.open(run)
    evs = list(es.iter_events())
    evs = evs[-tail:] if tail and tail > 0 else evs
    console.print(Panel.fit(f"run: {run}\nfile: {es.path}\nevents: {len(evs)}", title="Events"))
    for e in evs:
        ts = datetime.fromtimestamp(e.ts).strftime("%Y-%m-%d %H:%M:%S")
        console.print(Panel.fit(Text(json.dumps(e.data, ensure_ascii=False, indent=2)[:4000]), title=f"{ts}  {e.type}"))


@app.command()
def stats(
    run: str = typer.Option(..., "--run", help="Run id to summarize."),
):
    """Per-tool call counts, error counts and average latency for a run."""
    es = EventStore.open(run)
    per_tool: dict[str, list[dict]] = {}
    denied = 0
    for e in es.iter_events():
        if e.type == "tool.result":
            per_tool.setdefault(str(e.data.get("tool")), []).append(e.data)
        elif e.type == "tool.denied":
            denied += 1

    table = Table(title=f"run {run}")
    table.add_column("tool", style="bold cyan")
    table.add_column("calls", justify="right")
    table.add_column("errors", justify="right")
    table.add_column("avg ms", justify="right")
    for name, rows in sorted(per_tool.items()):
        ms = [float(r["elapsed_ms"]) for r in rows if isinstance(r.get("elapsed_ms"), (int, float))]
        avg = f"{sum(ms) / len(ms):.1f}" if ms else "-"
        errors = sum(1 for r in rows if r.get("is_error"))
        table.add_row(name, str(len(rows)), str(errors), avg)
    console.print(table)
    if denied:
        console.print(f"[red]denied calls[/red]: {denied}")


if __name__ == "__main__":
    app()
