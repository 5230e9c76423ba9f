"""
MemoAI: terminal interface for the review engine.

Commands:
- memoai extract NOTE       - Extract (or re-extract) chunks from a note
- memoai chunks             - List chunks
- memoai due                - List chunks due for review
- memoai refresh            - Rebuild the push queue
- memoai pushes             - List pushes
- memoai start / reply      - Tutor conversation for a push
- memoai finish             - Ask the tutor to evaluate now
- memoai grade              - Grade a push manually
- memoai needs-review       - Turn reviews of a chunk on or off
- memoai cleanup            - Drop chunks of deleted notes
"""

import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import get_settings
from memoai.chunks.models import Chunk, ChunkUpdate
from memoai.engine import MemoEngine
from memoai.errors import MemoAIError
from memoai.push.models import MessageSender, Push

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="memoai",
    help="MemoAI: spaced repetition reviews for your notes",
    no_args_is_help=True,
)
console = Console()

STYLES = {
    "info": "bold cyan",
    "warning": "bold yellow",
    "error": "bold red",
    "dim": "dim",
    "state": {
        "pending": "yellow",
        "active": "cyan",
        "completed": "green",
        "expired": "red",
    },
    "importance": {
        "low": "dim",
        "medium": "white",
        "high": "bold magenta",
    },
}


@contextmanager
def open_engine() -> Iterator[MemoEngine]:
    """Yield an engine; engine errors become a message and exit code 1."""
    engine = None
    try:
        engine = MemoEngine.from_settings(get_settings())
        yield engine
    except MemoAIError as e:
        console.print(f"[{STYLES['error']}]Error:[/] {e}")
        raise typer.Exit(code=1)
    finally:
        if engine is not None:
            engine.close()


# =============================================================================
# Display Helpers
# =============================================================================


def preview(text: str, width: int = 60) -> str:
    text = " ".join(text.split())
    return text if len(text) <= width else text[: width - 3] + "..."


def style_state(state: str) -> str:
    color = STYLES["state"].get(state, "white")
    return f"[{color}]{state}[/{color}]"


def chunk_table(chunks: list[Chunk], title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Note")
    table.add_column("Importance")
    table.add_column("Familiar", justify="right")
    table.add_column("Interval", justify="right")
    table.add_column("Due")
    table.add_column("Score", justify="right")
    table.add_column("Content")

    for chunk in chunks:
        color = STYLES["importance"][chunk.importance_level.value]
        table.add_row(
            chunk.id[:8],
            chunk.note_path,
            f"[{color}]{chunk.importance_level.value}[/{color}]",
            f"{chunk.familiar_score:.2f}",
            f"{chunk.interval_days}d",
            chunk.due_at.strftime("%Y-%m-%d %H:%M") if chunk.due_at else "-",
            f"{chunk.chunk_score:.2f}" if chunk.chunk_score is not None else "-",
            preview(chunk.content),
        )
    return table


def resolve_id(candidates: list[str], prefix: str, kind: str) -> str:
    """Accept a full id or an unambiguous prefix of one."""
    if prefix in candidates:
        return prefix
    matches = [c for c in candidates if c.startswith(prefix)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        console.print(f"[{STYLES['error']}]No {kind} matches '{prefix}'[/]")
    else:
        console.print(f"[{STYLES['error']}]'{prefix}' matches {len(matches)} {kind}s[/]")
    raise typer.Exit(code=1)


def push_id(engine: MemoEngine, prefix: str) -> str:
    return resolve_id([p.id for p in engine.pushes.list_pushes()], prefix, "push")


def show_conversation(engine: MemoEngine, push: Push) -> None:
    for message in engine.pushes.get_messages(push.id):
        if message.sender == MessageSender.USER:
            console.print(f"[bold]You:[/bold] {message.content}")
        else:
            console.print(Panel(message.content, title="Tutor", border_style="cyan"))
    if push.evaluation:
        ev = push.evaluation
        console.print(
            f"[{STYLES['info']}]Grade {ev.grade}/5[/] ({ev.method.value})"
            + (f"  {ev.recommendation}" if ev.recommendation else "")
        )


# =============================================================================
# Chunk Commands
# =============================================================================


@app.command()
def extract(
    note: str = typer.Argument(..., help="Note path relative to the vault"),
    full: bool = typer.Option(False, "--full", help="Only add chunks, never revise existing ones"),
) -> None:
    """Extract chunks from a note using the LLM."""
    with open_engine() as engine:
        with console.status("Extracting chunks using LLM..."):
            stats = engine.extractor.extract_note(note, incremental=not full)
        console.print(f"[{STYLES['info']}]Extracted:[/] {stats.summary()}")
        if stats.skipped:
            console.print(f"[{STYLES['warning']}]{stats.skipped} decisions skipped[/]")


@app.command()
def chunks(
    note: Optional[str] = typer.Option(None, "--note", "-n", help="Only chunks of this note"),
) -> None:
    """List chunks."""
    with open_engine() as engine:
        items = engine.chunks.list_by_note_path(note) if note else engine.chunks.list_all()
        if not items:
            console.print(f"[{STYLES['dim']}]No chunks[/]")
            return
        console.print(chunk_table(items, f"Chunks ({len(items)})"))


@app.command()
def due() -> None:
    """List chunks due for review, highest score first."""
    with open_engine() as engine:
        engine.chunks.refresh_scores()
        items = sorted(engine.chunks.list_due(), key=lambda c: -(c.chunk_score or 0))
        if not items:
            console.print(f"[{STYLES['dim']}]Nothing due[/]")
            return
        console.print(chunk_table(items, f"Due chunks ({len(items)})"))


@app.command("set-importance")
def set_importance(
    chunk_id: str = typer.Argument(..., help="Chunk id or prefix"),
    level: str = typer.Argument(..., help="low, medium or high"),
) -> None:
    """Change a chunk's importance level."""
    with open_engine() as engine:
        full_id = resolve_id([c.id for c in engine.chunks.list_all()], chunk_id, "chunk")
        engine.chunks.update(full_id, ChunkUpdate(importance_level=level))
        console.print(f"Chunk {full_id[:8]} importance set to {level}")


@app.command("needs-review")
def needs_review(
    chunk_id: str = typer.Argument(..., help="Chunk id or prefix"),
    value: str = typer.Argument(..., help="on or off"),
) -> None:
    """Include a chunk in reviews (on) or leave it out (off)."""
    with open_engine() as engine:
        full_id = resolve_id([c.id for c in engine.chunks.list_all()], chunk_id, "chunk")
        update = ChunkUpdate(needs_review=value)
        engine.chunks.update(full_id, update)
        state = "on" if update.needs_review else "off"
        console.print(f"Chunk {full_id[:8]} review {state}")


@app.command("delete-chunk")
def delete_chunk(chunk_id: str = typer.Argument(..., help="Chunk id or prefix")) -> None:
    """Delete a chunk and its pushes."""
    with open_engine() as engine:
        full_id = resolve_id([c.id for c in engine.chunks.list_all()], chunk_id, "chunk")
        engine.chunks.delete(full_id)
        console.print(f"Deleted chunk {full_id[:8]}")


@app.command()
def cleanup() -> None:
    """Remove chunks whose notes were deleted."""
    with open_engine() as engine:
        removed = engine.chunks.cleanup_orphans(engine.vault.exists)
        console.print(f"Removed {len(removed)} orphaned chunks")


# =============================================================================
# Push Commands
# =============================================================================


@app.command()
def refresh() -> None:
    """Delete finished pushes and create new ones for due chunks."""
    with open_engine() as engine:
        stats = engine.pushes.refresh()
        console.print(
            f"Pushes refreshed: {stats.deleted} deleted, "
            f"{stats.created} created, {stats.kept} kept"
        )


@app.command()
def pushes(
    state: str = typer.Option("all", "--state", "-s", help="all, open, pending, active, completed, expired"),
) -> None:
    """List pushes."""
    with open_engine() as engine:
        items = engine.pushes.list_pushes(state)
        if not items:
            console.print(f"[{STYLES['dim']}]No pushes[/]")
            return

        table = Table(title=f"Pushes ({len(items)})")
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("State")
        table.add_column("Expires")
        table.add_column("Chunk")
        for push in items:
            chunk = engine.chunks.get(push.chunk_id)
            table.add_row(
                push.id[:8],
                style_state(push.state.value),
                push.expires_at.strftime("%Y-%m-%d %H:%M"),
                preview(chunk.content) if chunk else "-",
            )
        console.print(table)


@app.command()
def start(push: str = typer.Argument(..., help="Push id or prefix")) -> None:
    """Start the tutor conversation for a pending push."""
    with open_engine() as engine:
        full_id = push_id(engine, push)
        with console.status("Asking the tutor..."):
            message = engine.pushes.start_conversation(full_id)
        console.print(Panel(message.content, title="Tutor", border_style="cyan"))


@app.command()
def reply(
    push: str = typer.Argument(..., help="Push id or prefix"),
    text: str = typer.Argument(..., help="Your answer"),
) -> None:
    """Answer the tutor in an active push."""
    with open_engine() as engine:
        full_id = push_id(engine, push)
        with console.status("Waiting for the tutor..."):
            message = engine.pushes.send_user_message(full_id, text)
        console.print(Panel(message.content, title="Tutor", border_style="cyan"))
        current = engine.pushes.get_push(full_id)
        if current and current.evaluation:
            show_conversation(engine, current)


@app.command()
def finish(push: str = typer.Argument(..., help="Push id or prefix")) -> None:
    """Ask the tutor to evaluate an active push now."""
    with open_engine() as engine:
        full_id = push_id(engine, push)
        with console.status("Evaluating..."):
            evaluation = engine.pushes.force_auto_evaluate(full_id)
        console.print(f"[{STYLES['info']}]Grade {evaluation.grade}/5[/]  {evaluation.recommendation}")


@app.command()
def grade(
    push: str = typer.Argument(..., help="Push id or prefix"),
    value: int = typer.Argument(..., min=0, max=5, help="Grade 0-5"),
) -> None:
    """Grade a pending or active push yourself."""
    with open_engine() as engine:
        full_id = push_id(engine, push)
        engine.pushes.manual_evaluate(full_id, value)
        console.print("Evaluation saved")


@app.command()
def show(push: str = typer.Argument(..., help="Push id or prefix")) -> None:
    """Show a push conversation."""
    with open_engine() as engine:
        current = engine.pushes.get_push(push_id(engine, push))
        show_conversation(engine, current)


@app.command("delete-push")
def delete_push(push: str = typer.Argument(..., help="Push id or prefix")) -> None:
    """Delete a push and its messages."""
    with open_engine() as engine:
        full_id = push_id(engine, push)
        engine.pushes.delete_push(full_id)
        console.print(f"Deleted push {full_id[:8]}")


@app.command()
def stats() -> None:
    """Show learning statistics."""
    with open_engine() as engine:
        data = engine.state.get_stats()
        table = Table(title="MemoAI Stats", show_header=False)
        table.add_row("Chunks", str(data["total_chunks"]))
        table.add_row("Reviewed", str(data["reviewed_chunks"]))
        table.add_row("Avg familiarity", f"{data['avg_familiar_score']:.2f}")
        for state_name, count in sorted(data["pushes_by_state"].items()):
            table.add_row(f"Pushes {state_name}", str(count))
        console.print(table)


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level=get_settings().log_level.upper(),
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )

    app()


if __name__ == "__main__":
    main()
